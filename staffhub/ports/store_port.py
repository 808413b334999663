"""Store port — abstract interface for the key-value store.

Core modules depend on this protocol, never on a specific backend.
Every key carries a store-managed version that increases on each write;
``compare_and_set`` is the only atomic check-and-set primitive.
"""

from __future__ import annotations

from typing import Any, Protocol


class VersionConflict(Exception):
    """Raised by callers that give up after repeated compare-and-set misses."""


class KeyValueStore(Protocol):
    """Abstract namespaced key-value store used by the repository."""

    def get(self, key: str) -> Any | None: ...

    def get_versioned(self, key: str) -> tuple[Any | None, int]: ...

    def set(self, key: str, value: Any) -> None: ...

    def set_many(self, items: dict[str, Any]) -> None: ...

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def list_by_prefix(self, prefix: str) -> list[Any]: ...

"""
StaffHub — Key-Value Store.

SQLite-backed implementation of the KeyValueStore port. Values are JSON
blobs keyed by namespaced strings (``event:<id>``, ``user:<id>``...).
Each row carries a version used for compare-and-set.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SQLiteStore:
    """SQLite-backed key-value store with per-key versions."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from staffhub.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the kv table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key      TEXT    PRIMARY KEY,
                    value    TEXT    NOT NULL,
                    version  INTEGER NOT NULL DEFAULT 1
                )
            """)
        logger.debug("KV store initialized at %s", self._db_path)

    def get(self, key: str) -> Any | None:
        """Fetch a value by key, or None."""
        value, _ = self.get_versioned(key)
        return value

    def get_versioned(self, key: str) -> tuple[Any | None, int]:
        """Fetch (value, version). Missing keys return (None, 0)."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value, version FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None, 0
        return json.loads(row["value"]), row["version"]

    def set(self, key: str, value: Any) -> None:
        """Insert or overwrite a value, bumping its version."""
        with self._connect() as conn:
            self._upsert(conn, key, value)

    def set_many(self, items: dict[str, Any]) -> None:
        """Write several keys in a single transaction."""
        with self._connect() as conn:
            for key, value in items.items():
                self._upsert(conn, key, value)
        logger.debug("Wrote %d keys atomically", len(items))

    @staticmethod
    def _upsert(conn: sqlite3.Connection, key: str, value: Any) -> None:
        conn.execute(
            """
            INSERT INTO kv_store (key, value, version) VALUES (?, ?, 1)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                version = kv_store.version + 1
            """,
            (key, json.dumps(value)),
        )

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        """Write only if the stored version still equals expected_version.

        expected_version == 0 means "key must not exist yet".
        Returns True when the write happened.
        """
        payload = json.dumps(value)
        with self._connect() as conn:
            if expected_version == 0:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO kv_store (key, value, version) VALUES (?, ?, 1)",
                    (key, payload),
                )
            else:
                cursor = conn.execute(
                    "UPDATE kv_store SET value = ?, version = version + 1 "
                    "WHERE key = ? AND version = ?",
                    (payload, key, expected_version),
                )
        return cursor.rowcount > 0

    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def list_by_prefix(self, prefix: str) -> list[Any]:
        """Return all values whose key starts with prefix, in key order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT value FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return [json.loads(r["value"]) for r in rows]

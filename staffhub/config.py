"""
StaffHub — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from staffhub/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    APP_NAME: str = "Nahky Araby Event Hub"

    # Key-value store (SQLite file)
    DATABASE_PATH: str = "data/staffhub.db"

    # Used for the "event is in the past" check on sign-up
    TIMEZONE: str = "UTC"

    # Notification delivery
    NOTIFICATION_DELAY_SECONDS: float = 0.6   # gap between two sends
    CHANNEL_TIMEOUT_SECONDS: float = 10.0     # per-send bound
    NOTIFY_IN_BACKGROUND: bool = False

    # Email via Resend (empty key → email channel not connected)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "onboarding@resend.dev"

    # WhatsApp Cloud API
    WHATSAPP_API_VERSION: str = "v18.0"

    LOG_LEVEL: str = "INFO"

    @field_validator("NOTIFY_IN_BACKGROUND", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}

    @field_validator("NOTIFICATION_DELAY_SECONDS", "CHANNEL_TIMEOUT_SECONDS", mode="before")
    @classmethod
    def parse_seconds(cls, v: str | float) -> float:
        value = float(v)
        if value < 0:
            raise ValueError("must not be negative")
        return value


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "Nahky Araby Event Hub"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/staffhub.db"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        NOTIFICATION_DELAY_SECONDS=os.getenv("NOTIFICATION_DELAY_SECONDS", "0.6"),
        CHANNEL_TIMEOUT_SECONDS=os.getenv("CHANNEL_TIMEOUT_SECONDS", "10"),
        NOTIFY_IN_BACKGROUND=os.getenv("NOTIFY_IN_BACKGROUND", "false"),
        RESEND_API_KEY=os.getenv("RESEND_API_KEY", ""),
        EMAIL_FROM=os.getenv("EMAIL_FROM", "onboarding@resend.dev"),
        WHATSAPP_API_VERSION=os.getenv("WHATSAPP_API_VERSION", "v18.0"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Shared instance, imported everywhere as:
#   from staffhub.config import settings
settings = _load_settings()

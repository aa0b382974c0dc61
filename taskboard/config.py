"""
Taskboard - Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from taskboard/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Document store (SQLite file holding JSON documents)
    DATABASE_PATH: str = "data/taskboard.db"

    # Push delivery: "telegram" | "log"
    PUSH_PROVIDER: str = "log"
    TELEGRAM_BOT_TOKEN: str = ""

    # Reminder cron
    REMINDER_INTERVAL_SECONDS: int = 60
    REMINDER_TOLERANCE_SECONDS: int = 60

    # Team invitations
    INVITATION_EXPIRY_DAYS: int = 7
    INVITATION_BASE_PATH: str = "/team-invitation"

    # Automatic task comments: identical comment by the same user inside
    # this window is not repeated
    COMMENT_DEDUP_SECONDS: int = 60

    TIMEZONE: str = "Asia/Tokyo"
    LOG_LEVEL: str = "INFO"

    @field_validator("PUSH_PROVIDER", mode="before")
    @classmethod
    def parse_provider(cls, v: str) -> str:
        provider = (v or "log").strip().lower()
        if provider not in ("telegram", "log"):
            raise ValueError(f"Unknown PUSH_PROVIDER '{v}'")
        return provider

    @field_validator(
        "REMINDER_INTERVAL_SECONDS",
        "REMINDER_TOLERANCE_SECONDS",
        "INVITATION_EXPIRY_DAYS",
        "COMMENT_DEDUP_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_positive_int(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/taskboard.db"),
        PUSH_PROVIDER=os.getenv("PUSH_PROVIDER", "log"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        REMINDER_INTERVAL_SECONDS=os.getenv("REMINDER_INTERVAL_SECONDS", "60"),
        REMINDER_TOLERANCE_SECONDS=os.getenv("REMINDER_TOLERANCE_SECONDS", "60"),
        INVITATION_EXPIRY_DAYS=os.getenv("INVITATION_EXPIRY_DAYS", "7"),
        INVITATION_BASE_PATH=os.getenv("INVITATION_BASE_PATH", "/team-invitation"),
        COMMENT_DEDUP_SECONDS=os.getenv("COMMENT_DEDUP_SECONDS", "60"),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Tokyo"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton - imported by all other modules as:
#   from taskboard.config import settings
settings = _load_settings()

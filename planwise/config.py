"""
Planwise — Centralized configuration.

Loads all settings from .env and validates them.
Every module that needs a tunable reads it from the `settings` singleton.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from planwise/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Document store (SQLite adapter)
    DATABASE_PATH: str = "data/planwise.db"

    # Adherence window: most recent N expected occurrences (0 → all since creation)
    ADHERENCE_LOOKBACK: int = 0

    # Weekly review: how far "push forward" moves an overdue task
    TASK_PUSH_FORWARD_DAYS: int = 7

    # Upper bound for next/previous occurrence searches (yearly needs > 366)
    OCCURRENCE_SEARCH_DAYS: int = 800

    # Telegram (only needed for shared-goal reminders)
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_IDS: dict[str, int] = {}

    @field_validator(
        "ADHERENCE_LOOKBACK", "TASK_PUSH_FORWARD_DAYS", "OCCURRENCE_SEARCH_DAYS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        value = int(v)
        if value < 0:
            raise ValueError(f"must not be negative, got {value}")
        return value

    @field_validator("OCCURRENCE_SEARCH_DAYS")
    @classmethod
    def covers_a_year(cls, v: int) -> int:
        if v < 370:
            raise ValueError("must cover at least one full year of occurrences")
        return v

    @field_validator("TELEGRAM_CHAT_IDS", mode="before")
    @classmethod
    def parse_chat_ids(cls, v: str | dict[str, int]) -> dict[str, int]:
        """Parse "user-a:1234,user-b:5678" into {"user-a": 1234, ...}."""
        if isinstance(v, dict):
            return v
        mapping: dict[str, int] = {}
        if isinstance(v, str) and v.strip():
            for pair in v.split(","):
                if not pair.strip():
                    continue
                user_id, _, chat_id = pair.strip().rpartition(":")
                mapping[user_id.strip()] = int(chat_id)
        return mapping


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/planwise.db"),
        ADHERENCE_LOOKBACK=os.getenv("ADHERENCE_LOOKBACK", "0"),
        TASK_PUSH_FORWARD_DAYS=os.getenv("TASK_PUSH_FORWARD_DAYS", "7"),
        OCCURRENCE_SEARCH_DAYS=os.getenv("OCCURRENCE_SEARCH_DAYS", "800"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        TELEGRAM_CHAT_IDS=os.getenv("TELEGRAM_CHAT_IDS", ""),
    )


# Singleton — imported by all other modules as:
#   from planwise.config import settings
settings = _load_settings()

"""Shared test fixtures and configuration.

Sets up environment variables before any planwise imports so
planwise.config builds its settings from known values, and provides common
fixtures like a temp document DB and a fixed clock.
"""

import os

# Patch env vars BEFORE any planwise imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("TELEGRAM_CHAT_IDS", "dana:1001,noa:1002")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("ADHERENCE_LOOKBACK", "0")
os.environ.setdefault("TASK_PUSH_FORWARD_DAYS", "7")
os.environ.setdefault("OCCURRENCE_SEARCH_DAYS", "800")

import pytest
from datetime import datetime


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_planwise.db")


@pytest.fixture
def document_db(tmp_db_path):
    """Return a DocumentDB instance backed by a temp file."""
    from planwise.data.db import DocumentDB
    return DocumentDB(db_path=tmp_db_path)


@pytest.fixture
def repository(document_db):
    """Return a PlanRepository on top of the temp DocumentDB."""
    from planwise.data.repository import PlanRepository
    return PlanRepository(document_db)


@pytest.fixture
def fixed_clock():
    """Wednesday 2024-03-13 10:00."""
    from planwise.adapters.clock import FixedClock
    return FixedClock(datetime(2024, 3, 13, 10, 0))

"""Pytest configuration shared across the suite."""

from pathlib import Path

import pytest

from app.clients.sqlite_store import SQLiteStore


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def store(tmp_path: Path) -> SQLiteStore:
    """Fresh SQLite store per test."""
    return SQLiteStore(str(tmp_path / "scheduler.db"))

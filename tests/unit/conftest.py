"""Pytest configuration and fixtures for unit tests."""

import pytest

from housecup.core import db_client
from housecup.core.config import settings
from housecup.domain.household import Competitor, Household
from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch):
    """A fresh SQLite database file for each test."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "test.db"))
    await db_client.init_db()
    yield
    await db_client.close_connection()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches housecup.core.db_client functions to use InMemoryDBClient."""
    for name in (
        "create_record",
        "upsert_record",
        "get_record",
        "update_record",
        "delete_record",
        "delete_records",
        "replace_collection",
        "list_records",
        "get_first_record",
    ):
        monkeypatch.setattr(f"housecup.core.db_client.{name}", getattr(in_memory_db, name))

    return in_memory_db


@pytest.fixture
def competitors() -> list[Competitor]:
    """Two competitors, Alex and Sam."""
    return [
        Competitor(id="alex", name="Alex", color="#9B7FD1", user_id="user_alex"),
        Competitor(id="sam", name="Sam", color="#5B9BD5", user_id="user_sam"),
    ]


@pytest.fixture
def household(competitors) -> Household:
    """A two-person household in New York with Sunday week start."""
    return Household(id="house1", competitors=competitors, timezone="America/New_York", week_start_day=0)

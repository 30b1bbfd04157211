"""Shared pytest fixtures: a file-backed SQLite store per test and store fakes."""

import logging

import pytest

from src.cloudnotes.config import Settings
from src.cloudnotes.core.change_feed import LocalChangeFeed
from src.cloudnotes.core.store import NoteStore
from src.cloudnotes.database import Database
from tests.fakes import FakeStore

# Silence extremely verbose DEBUG logs from aiosqlite to keep test output readable
logging.getLogger("aiosqlite").setLevel(logging.WARNING)


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing at a throwaway SQLite file.

    A file (not :memory:) gives every session its own connection, like a
    real server, so concurrent readers and writers don't share a transaction.
    """
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'notes.db'}",
        debug=True,
        change_feed_backend="memory",
        log_dir=str(tmp_path / "logs"),
        client_reconnect_delay_seconds=0.01,
    )


@pytest.fixture
async def database(test_settings):
    db = Database(test_settings)
    await db.create_tables()
    try:
        yield db
    finally:
        await db.dispose()


@pytest.fixture
def change_feed():
    return LocalChangeFeed()


@pytest.fixture
def store(database, change_feed):
    return NoteStore(database.session_factory, change_feed)


@pytest.fixture
async def db_session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def fake_store():
    return FakeStore()

# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up test environment variables before any imports
# - SQLite-backed Database fixtures (no MySQL needed)
# - A scriptable fake data layer and a sleep that records instead of waiting
# - A SQLite database that only connects once the test lets it
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_NAME", "users_test")
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "false")

import threading

import pytest

from app.exceptions import DatabaseConnectionError, SchemaError
from core.models.connection import ConnectionState
from core.services import ConnectionStateHolder, UserService
from lib.database import Database

SQLITE_OPTIONS = {"connect_args": {"check_same_thread": False}}


# =============================================================================
# Fakes
# =============================================================================

class FakeDatabase:
    """
    Stand-in for lib.database.Database driven by failure counters.

    connect_failures / reconcile_failures: how many calls fail before the
    call starts succeeding (None = fail forever).
    """

    def __init__(self, connect_failures=0, reconcile_failures=0, connect_error=None):
        self.connect_failures = connect_failures
        self.reconcile_failures = reconcile_failures
        self.connect_error = connect_error
        self.calls: list[str] = []

    def connect(self):
        self.calls.append("connect")
        if self.connect_failures is None or self.connect_failures > 0:
            if self.connect_failures is not None:
                self.connect_failures -= 1
            raise self.connect_error or DatabaseConnectionError("getaddrinfo EAI_AGAIN db")

    def reconcile_schema(self):
        self.calls.append("reconcile")
        if self.reconcile_failures is None or self.reconcile_failures > 0:
            if self.reconcile_failures is not None:
                self.reconcile_failures -= 1
            raise SchemaError("lock wait timeout")

    def dispose(self):
        self.calls.append("dispose")

    def count(self, call: str) -> int:
        return self.calls.count(call)


class GatedDatabase(Database):
    """
    SQLite Database whose connect() blocks until the test opens the gate.

    `entered` is set as soon as a connect attempt starts. After the gate
    opens, the first `failures` attempts still fail.
    """

    def __init__(self, url, failures=0):
        super().__init__(url, engine_options=SQLITE_OPTIONS)
        self.gate = threading.Event()
        self.entered = threading.Event()
        self.failures = failures

    def connect(self):
        self.entered.set()
        if not self.gate.wait(timeout=10):
            raise DatabaseConnectionError("gate never opened")
        if self.failures:
            self.failures -= 1
            raise DatabaseConnectionError("Connection refused")
        super().connect()


class RecordingSleep:
    """Async sleep replacement that records the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def recording_sleep():
    """A sleep that returns immediately and remembers each delay."""
    return RecordingSleep()


@pytest.fixture
def fake_database():
    """Factory for FakeDatabase instances."""
    return FakeDatabase


@pytest.fixture
def sqlite_url(tmp_path):
    """URL of a fresh SQLite database file."""
    return f"sqlite:///{tmp_path / 'users.db'}"


@pytest.fixture
def make_database(sqlite_url):
    """Factory for SQLite-backed Database objects, disposed after the test."""
    created = []

    def _make(allow_alter=False):
        db = Database(sqlite_url, allow_alter=allow_alter, engine_options=SQLITE_OPTIONS)
        created.append(db)
        return db

    yield _make

    for db in created:
        db.dispose()


@pytest.fixture
def database(make_database):
    """Connected database with the users table in place."""
    db = make_database()
    db.connect()
    db.reconcile_schema()
    return db


@pytest.fixture
def ready_state():
    """Connection state that has completed the startup sync."""
    state = ConnectionStateHolder()
    state.transition(ConnectionState.SYNCING)
    state.transition(ConnectionState.READY)
    return state


@pytest.fixture
def user_service(database, ready_state):
    """UserService on a ready SQLite database."""
    return UserService(database, ready_state)


@pytest.fixture
def gated_database(sqlite_url):
    """SQLite database that stays unreachable until `gate.set()`."""
    db = GatedDatabase(sqlite_url)
    yield db
    db.gate.set()
    db.dispose()

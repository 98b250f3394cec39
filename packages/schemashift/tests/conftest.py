"""
Shared fixtures for schemashift tests.

Every test gets its own temporary workspace; databases are SQLite files
inside it so nothing leaks between tests.
"""

import tempfile
from pathlib import Path

import pytest

from schemashift.command.context import CommandContext
from schemashift.config import Configuration
from schemashift.database import Database


@pytest.fixture
def temp_workspace():
    """Create temporary workspace for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sqlite_url(temp_workspace):
    """SQLite URL of a database file inside the workspace."""
    return f"sqlite:///{(temp_workspace / 'target.db').as_posix()}"


@pytest.fixture
def database(sqlite_url):
    """Database on the workspace SQLite file, disposed after the test."""
    db = Database("test", Configuration({"url": sqlite_url, "logSql": False}))
    yield db
    db.close()


@pytest.fixture
def make_context():
    """Build a CommandContext from a dict of type -> value."""
    def _make(values=None):
        return CommandContext(dict(values or {}))
    return _make

"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

from pathlib import Path

import pytest

from fideratings.db import Database
from tests.helpers import TXT_HEADER, playerslist


@pytest.fixture
def database(tmp_path):
    """
    A fresh file-backed SQLite database with all tables created.

    File-backed (not :memory:) so that every session and every thread
    sees the same data, as in production.
    """
    db = Database(f"sqlite:///{tmp_path / 'ratings.db'}", echo=False)
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def db_session(database):
    """A plain session on the test database; the test commits as needed."""
    session = database.new_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def write_xml(tmp_path):
    """Write a playerslist XML file and return its path."""
    def _write(filename: str, *players: str) -> Path:
        path = tmp_path / filename
        path.write_bytes(playerslist(*players))
        return path
    return _write


@pytest.fixture
def write_txt(tmp_path):
    """Write a fixed-width rating list (with header) and return its path."""
    def _write(filename: str, *lines: str) -> Path:
        path = tmp_path / filename
        path.write_bytes(("\n".join((TXT_HEADER,) + lines) + "\n").encode("utf-8"))
        return path
    return _write

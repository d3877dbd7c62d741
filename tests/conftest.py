"""
Shared fixtures: an in-memory SQLite database with the schema created, and
helpers to write delimited source files.
"""

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from stib_ingest.ingest.schema import initialize_database, ensure_sentinel_stop

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    initialize_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sentinel_id(engine):
    with engine.begin() as conn:
        return ensure_sentinel_stop(conn)


@pytest.fixture
def write_csv(tmp_path):
    """Write header + rows as a semicolon-separated file and return its path."""
    def _write(name, header, rows):
        path = tmp_path / name
        lines = [";".join(header)] + [";".join(row) for row in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def fixture_path():
    def _path(name):
        return os.path.join(FIXTURES_DIR, name)
    return _path

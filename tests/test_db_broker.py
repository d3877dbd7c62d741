"""
Test the shared engine.
"""

import pytest

from stib_ingest.data import db_broker
from stib_ingest.data.db_broker import ConnectionBroker


@pytest.fixture
def sqlite_url(monkeypatch):
    monkeypatch.setattr(db_broker.db_config, "connection_string", lambda: "sqlite://")
    monkeypatch.setattr(ConnectionBroker, "_engine", None)


class TestConnectionBroker:

    def test_engine_uses_configured_url(self, sqlite_url):
        engine = ConnectionBroker.get_engine()
        assert engine.dialect.name == "sqlite"

    def test_engine_is_created_once(self, sqlite_url):
        assert ConnectionBroker.get_engine() is ConnectionBroker.get_engine()

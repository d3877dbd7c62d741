"""
Test database schema and models.
"""

import pytest
from unittest.mock import Mock
from sqlalchemy import inspect, insert, select, func

from stib_ingest.ingest.schema import (
    Line, Stop, StopByLine, clear_network, ensure_sentinel_stop, initialize_database
)


class TestTableStructure:
    """Test that tables are created correctly."""

    def test_stops_table_exists(self, engine):
        columns = [c["name"] for c in inspect(engine).get_columns("stops")]
        assert {"id", "code", "geo", "name"} <= set(columns)

    def test_lines_table_exists(self, engine):
        columns = [c["name"] for c in inspect(engine).get_columns("lines")]
        assert {"id", "code", "destination", "direction", "mode", "color", "text_color"} <= set(columns)

    def test_stops_by_lines_table_exists(self, engine):
        columns = [c["name"] for c in inspect(engine).get_columns("stops_by_lines")]
        assert {"id", "stop_id", "line_id", "order"} <= set(columns)

    def test_line_code_direction_is_unique(self, engine):
        constraints = inspect(engine).get_unique_constraints("lines")
        assert any(set(c["column_names"]) == {"code", "direction"} for c in constraints)

    def test_reinitialize_with_drop(self, engine, sentinel_id):
        initialize_database(engine, drop_existing=True)
        with engine.connect() as conn:
            assert conn.execute(select(func.count()).select_from(Stop.__table__)).scalar() == 0


class TestModels:
    """Test model instances."""

    def test_stop_model_creation(self):
        stop = Stop(code="8042", geo={"latitude": 50.8, "longitude": 4.3},
                    name={"fr": "ARTS-LOI", "nl": "KUNST-WET"})

        assert stop.code == "8042"
        assert stop.name["nl"] == "KUNST-WET"

    def test_line_display_fallbacks(self):
        """Lines without metadata are shown as grey buses."""
        line = Line(code="12", destination={"fr": "A", "nl": "B"}, direction=0)

        assert line.display_mode == "bus"
        assert line.display_color == "#ccc"

        line.mode, line.color = "metro", "#C4008F"
        assert line.display_mode == "metro"
        assert line.display_color == "#C4008F"

    def test_stop_by_line_creation(self):
        association = StopByLine(stop_id=1, line_id=2, order=3)
        assert (association.stop_id, association.line_id, association.order) == (1, 2, 3)


class TestSentinelAndClearing:

    def test_sentinel_is_first_row(self, engine):
        with engine.begin() as conn:
            sentinel_id = ensure_sentinel_stop(conn)
            row = conn.execute(select(Stop.__table__).where(Stop.id == sentinel_id)).one()

        assert sentinel_id == 1
        assert row.code == "0001"
        assert row.geo == {"latitude": 50.8468, "longitude": 4.3524}
        assert row.name == {"fr": "ARRÊT NON TROUVÉ", "nl": "STOP NIET GEVONDEN"}

    def test_sentinel_is_created_once(self, engine):
        with engine.begin() as conn:
            first = ensure_sentinel_stop(conn)
            second = ensure_sentinel_stop(conn)
            total = conn.execute(select(func.count()).select_from(Stop.__table__)).scalar()

        assert first == second
        assert total == 1

    def test_clear_network_removes_all_rows(self, engine, sentinel_id):
        with engine.begin() as conn:
            line_id = conn.execute(insert(Line.__table__).values(
                code="1", destination={"fr": "A", "nl": "B"}, direction=1
            )).inserted_primary_key[0]
            conn.execute(insert(StopByLine.__table__).values(
                stop_id=sentinel_id, line_id=line_id, order=1
            ))

        with engine.begin() as conn:
            clear_network(conn)

        with engine.connect() as conn:
            for model in (Stop, Line, StopByLine):
                assert conn.execute(select(func.count()).select_from(model.__table__)).scalar() == 0

    def test_sentinel_is_row_one_again_after_clearing(self, engine, sentinel_id):
        with engine.begin() as conn:
            for code in ("8042", "8032"):
                conn.execute(insert(Stop.__table__).values(
                    code=code, geo={"latitude": 0, "longitude": 0}, name={"fr": code, "nl": code}
                ))

        with engine.begin() as conn:
            clear_network(conn)
            assert ensure_sentinel_stop(conn) == 1

    def test_postgres_truncates_and_restarts_identity(self):
        conn = Mock()
        conn.dialect.name = "postgresql"

        clear_network(conn)

        statement = str(conn.execute.call_args[0][0])
        assert statement == "TRUNCATE stops_by_lines, lines, stops RESTART IDENTITY CASCADE"
        assert conn.execute.call_count == 1

"""
Database Schema Module

SQLAlchemy models for the tables written by the seeding pipeline and read
by the serving layer, plus schema initialization and the sentinel stop.

Tables:
    - stops: transit stops, row keyed by the STIB stop code
    - lines: one row per (line code, direction)
    - stops_by_lines: ordered stop sequence of every line
"""

import logging
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint, Index,
    bindparam, delete, insert, select, text
)
from sqlalchemy.orm import relationship, declarative_base

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

DEFAULT_TEXT_COLOR = "#FFFFFF"
FALLBACK_MODE = "bus"
FALLBACK_COLOR = "#ccc"

SENTINEL_STOP_CODE = "0001"
SENTINEL_STOP_GEO = {"latitude": 50.8468, "longitude": 4.3524}  # Brussels Grand-Place
SENTINEL_STOP_NAME = {"fr": "ARRÊT NON TROUVÉ", "nl": "STOP NIET GEVONDEN"}


class Stop(Base):
    """Transit stop (metro station, bus or tram stop)."""

    __tablename__ = 'stops'

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    geo = Column(JSON, nullable=False)  # {"latitude": ..., "longitude": ...}
    name = Column(JSON, nullable=False)  # {"fr": ..., "nl": ...}
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    lines = relationship('StopByLine', back_populates='stop')

    # never reuse ids on SQLite either, as a Postgres sequence does
    __table_args__ = {'sqlite_autoincrement': True}

    def __repr__(self):
        return f"<Stop(id={self.id}, code='{self.code}')>"


class Line(Base):
    """A line travelled in one direction; every line code has two rows."""

    __tablename__ = 'lines'

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(10), nullable=False, index=True)
    destination = Column(JSON, nullable=False)  # {"fr": ..., "nl": ...}
    direction = Column(Integer, nullable=False)  # 0 towards suburbs, 1 towards city
    mode = Column(String(10), nullable=True)
    color = Column(String(7), nullable=True)
    text_color = Column(String(7), nullable=True, default=DEFAULT_TEXT_COLOR)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    stops = relationship('StopByLine', back_populates='line', order_by='StopByLine.order')

    __table_args__ = (
        UniqueConstraint('code', 'direction', name='uq_line_code_direction'),
    )

    @property
    def display_mode(self):
        return self.mode or FALLBACK_MODE

    @property
    def display_color(self):
        return self.color or FALLBACK_COLOR

    def __repr__(self):
        return f"<Line(id={self.id}, code='{self.code}', direction={self.direction}, mode='{self.mode}')>"


class StopByLine(Base):
    """Position of a stop in the ordered stop sequence of a line."""

    __tablename__ = 'stops_by_lines'

    id = Column(Integer, primary_key=True, autoincrement=True)
    stop_id = Column(Integer, ForeignKey('stops.id'), nullable=False, index=True)
    line_id = Column(Integer, ForeignKey('lines.id'), nullable=False, index=True)
    order = Column(Integer, nullable=False)

    stop = relationship('Stop', back_populates='lines')
    line = relationship('Line', back_populates='stops')

    __table_args__ = (
        Index('idx_stops_by_lines_line_order', 'line_id', 'order'),
    )

    def __repr__(self):
        return f"<StopByLine(stop={self.stop_id}, line={self.line_id}, order={self.order})>"


def initialize_database(engine, drop_existing=False):
    """
    Initialize database schema.

    Args:
        engine: SQLAlchemy engine instance
        drop_existing: If True, drops all existing tables before creation
    """
    if drop_existing:
        logger.warning("Dropping all existing tables")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema initialized")


def clear_network(connection):
    """
    Delete every stop, line and association row and restart their ids.

    The sentinel stop inserted next is therefore row 1 again.
    """
    tables = (StopByLine.__table__, Line.__table__, Stop.__table__)
    names = [table.name for table in tables]

    if connection.dialect.name == "postgresql":
        connection.execute(text(f"TRUNCATE {', '.join(names)} RESTART IDENTITY CASCADE"))
        logger.info(f"Truncated {', '.join(names)}")
        return

    for table in tables:
        result = connection.execute(delete(table))
        logger.info(f"Cleared {result.rowcount} rows from {table.name}")

    if connection.dialect.name == "sqlite":
        has_sequence = connection.execute(text(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'"
        )).scalar()
        if has_sequence:
            connection.execute(
                text("DELETE FROM sqlite_sequence WHERE name IN :names")
                .bindparams(bindparam("names", expanding=True)),
                {"names": names},
            )


def ensure_sentinel_stop(connection) -> int:
    """
    Return the id of the "stop not found" row, inserting it first if needed.

    On an empty stops table the sentinel is the first row and gets id 1.
    """
    stops = Stop.__table__
    existing = connection.execute(
        select(stops.c.id).where(stops.c.code == SENTINEL_STOP_CODE)
    ).scalar()
    if existing is not None:
        return existing

    result = connection.execute(
        insert(stops).values(
            code=SENTINEL_STOP_CODE,
            geo=SENTINEL_STOP_GEO,
            name=SENTINEL_STOP_NAME,
            created_at=datetime.utcnow(),
        )
    )
    sentinel_id = result.inserted_primary_key[0]
    logger.info(f"Inserted sentinel stop with id {sentinel_id}")
    return sentinel_id

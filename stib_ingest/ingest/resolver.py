"""
Reference resolution against rows committed by earlier stages.

Lines have no fallback: a reference to an unknown line aborts the batch.
Stops fall back to the sentinel stop, so the ordering of a line survives
even when one of its stops is unknown.
"""

import logging
from typing import List, Optional

from sqlalchemy import select

from stib_ingest.errors import UnresolvedLineError
from .schema import Line, Stop
from .transform import normalize_code

logger = logging.getLogger(__name__)

lines_table = Line.__table__
stops_table = Stop.__table__


class ReferenceResolver:
    """Looks up storage ids inside the caller's open transaction."""

    def __init__(self, sentinel_stop_id: int):
        self.sentinel_stop_id = sentinel_stop_id
        self.fallbacks = 0

    def find_line(self, conn, code: str, direction: int) -> Optional[int]:
        return conn.execute(
            select(lines_table.c.id).where(
                lines_table.c.code == code,
                lines_table.c.direction == direction,
            )
        ).scalar()

    def resolve_line(self, conn, code: str, direction: int, row_number: int = None) -> int:
        line_id = self.find_line(conn, code, direction)
        if line_id is None:
            raise UnresolvedLineError(code, direction, row_number)
        return line_id

    def resolve_line_directions(self, conn, code: str, row_number: int = None) -> List[int]:
        """Ids of every direction of a line code; at least one must exist."""
        line_ids = conn.execute(
            select(lines_table.c.id)
            .where(lines_table.c.code == code)
            .order_by(lines_table.c.direction)
        ).scalars().all()
        if not line_ids:
            raise UnresolvedLineError(code, row_number=row_number)
        return list(line_ids)

    def resolve_stop(self, conn, raw_code: str) -> int:
        """Stop id for a source stop code, or the sentinel stop id."""
        code = normalize_code(raw_code)
        if code is not None:
            stop_id = conn.execute(
                select(stops_table.c.id).where(stops_table.c.code == code)
            ).scalar()
            if stop_id is not None:
                return stop_id

        self.fallbacks += 1
        logger.debug(f"Stop {raw_code!r} not found, using sentinel stop {self.sentinel_stop_id}")
        return self.sentinel_stop_id

    def stop_exists(self, conn, code: str) -> bool:
        return conn.execute(
            select(stops_table.c.id).where(stops_table.c.code == code)
        ).first() is not None

    def line_exists(self, conn, code: str, direction: int) -> bool:
        return self.find_line(conn, code, direction) is not None

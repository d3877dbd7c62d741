"""
Loading stages for the static network.

Stages run in foreign-key order:
    1. stops                 stop details (insert)
    2. lines                 one row per line and direction (insert)
    3. line metadata         mode and color (keyed update)
    4. stops by lines        ordered stops of every line (insert, resolved)
    5. line text colors      text color (keyed update, resolved)

Every stage reads raw rows, validates and transforms them, and hands the
result to the batch writer. Stages 4 and 5 resolve references to rows
committed by earlier stages inside the batch transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Iterator, List

from sqlalchemy import bindparam, delete, insert, update

from .batch_writer import BatchWriter, PreparedRow
from .resolver import ReferenceResolver
from .schema import DEFAULT_TEXT_COLOR, Line, Stop, StopByLine
from .sources import RawRow
from .transform import (
    direction_to_flag, mode_from_letter, normalize_hex, strip_trailing_letter
)
from .validation import (
    COLOR, DIRECTION, LINE_CODE, LINE_ID, LINE_ID_WITH_MODE, STOP_CODE, TEXT_COLOR,
    FieldValidator, decode_geo, decode_line_stops, decode_localized, split_composite
)

logger = logging.getLogger(__name__)

# Column counts of the delimited sources
STOPS_ARITY = 3            # location;code;name
STOPS_BY_LINE_ARITY = 4    # destination;direction;lineid;points
LINE_METADATA_ARITY = 3    # lineid;name;color
LINE_COLORS_ARITY = 3      # route_short_name;route_long_name;route_text_color

# API record keys, in the column order of the matching file
STOPS_API_FIELDS = ("gpscoordinates", "id", "name")
STOPS_BY_LINE_API_FIELDS = ("destination", "direction", "lineid", "points")

stops_table = Stop.__table__
lines_table = Line.__table__
stops_by_lines_table = StopByLine.__table__


@dataclass
class StageResult:
    stage: str
    rows_read: int = 0
    rows_skipped: int = 0
    written: int = 0
    statements: int = 0
    fallbacks: int = 0
    batches: List[int] = field(default_factory=list)
    duration: float = 0.0


def _run_stage(result: StageResult, writer: BatchWriter, statement,
               prepared: Iterable[PreparedRow], expand=None) -> StageResult:
    start_time = datetime.now()
    logger.info(f"Stage '{result.stage}' started")

    outcome = writer.write(statement, prepared, expand)

    result.batches = outcome.batch_sizes
    result.written = outcome.rows_affected
    result.statements = outcome.statements
    result.duration = (datetime.now() - start_time).total_seconds()
    logger.info(
        f"Stage '{result.stage}' complete: {result.rows_read} read, "
        f"{result.written} written ({result.statements} statements), {result.rows_skipped} skipped, "
        f"{result.fallbacks} fallbacks, {len(result.batches)} batches "
        f"in {result.duration:.2f}s"
    )
    return result


# ============================================================================
# STAGE 1: STOPS
# ============================================================================

def ingest_stops(writer: BatchWriter, rows: Iterable[RawRow], validator: FieldValidator,
                 resolver: ReferenceResolver) -> StageResult:
    """
    Insert stops. Stops whose code is already stored are left untouched.
    """
    result = StageResult("stops")

    def prepare() -> Iterator[PreparedRow]:
        for row in rows:
            result.rows_read += 1
            location, code, name = row.fields

            geo = decode_geo(location, "location", row.number)
            if not validator.check(STOP_CODE, code, row.number):
                result.rows_skipped += 1
                continue
            localized_name = decode_localized(name, "name", row.number)

            yield PreparedRow(row.number, {"code": code, "geo": geo, "name": localized_name})

    def expand(conn, row: PreparedRow):
        if resolver.stop_exists(conn, row.params["code"]):
            result.rows_skipped += 1
            logger.debug(f"Stop {row.params['code']} already exists, skipping row {row.row_number}")
            return []
        return [row.params]

    return _run_stage(result, writer, insert(stops_table), prepare(), expand)


# ============================================================================
# STAGE 2: LINES
# ============================================================================

def ingest_lines(writer: BatchWriter, rows: Iterable[RawRow], validator: FieldValidator,
                 resolver: ReferenceResolver) -> StageResult:
    """
    Insert one line row per (code, direction).

    Non-numeric line codes (night lines) are skipped by default.
    """
    result = StageResult("lines")

    def prepare() -> Iterator[PreparedRow]:
        for row in rows:
            result.rows_read += 1
            destination, direction, code = row.fields[0], row.fields[1], row.fields[2]

            localized_destination = decode_localized(destination, "destination", row.number)
            if not (
                validator.check(DIRECTION, direction, row.number)
                and validator.check(LINE_ID, code, row.number)
                and validator.check(LINE_CODE, code, row.number)
            ):
                result.rows_skipped += 1
                continue

            yield PreparedRow(row.number, {
                "code": str(int(code)),
                "destination": localized_destination,
                "direction": direction_to_flag(direction),
            })

    def expand(conn, row: PreparedRow):
        if resolver.line_exists(conn, row.params["code"], row.params["direction"]):
            result.rows_skipped += 1
            logger.debug(
                f"Line {row.params['code']}/{row.params['direction']} already exists, "
                f"skipping row {row.row_number}"
            )
            return []
        return [row.params]

    return _run_stage(result, writer, insert(lines_table), prepare(), expand)


# ============================================================================
# STAGE 3: LINE METADATA
# ============================================================================

def ingest_line_metadata(writer: BatchWriter, rows: Iterable[RawRow],
                         validator: FieldValidator) -> StageResult:
    """
    Set mode and color on both directions of every line.

    Line ids carry the mode as a trailing letter: "002m" is metro line 2.
    """
    result = StageResult("line metadata")

    def prepare() -> Iterator[PreparedRow]:
        for row in rows:
            result.rows_read += 1
            line_id, _name, color = row.fields

            if not validator.check(LINE_ID_WITH_MODE, line_id, row.number):
                result.rows_skipped += 1
                continue
            numeric_id, letter = split_composite(line_id, row.number)
            mode = mode_from_letter(letter, row.number)

            color = normalize_hex(color, "")
            if not validator.check(COLOR, color, row.number):
                result.rows_skipped += 1
                continue

            yield PreparedRow(row.number, {
                "b_code": str(numeric_id),
                "b_mode": mode,
                "b_color": color,
            })

    statement = (
        update(lines_table)
        .where(lines_table.c.code == bindparam("b_code"))
        .values(mode=bindparam("b_mode"), color=bindparam("b_color"))
    )
    return _run_stage(result, writer, statement, prepare())


# ============================================================================
# STAGE 4: STOPS BY LINES
# ============================================================================

def ingest_stops_by_lines(writer: BatchWriter, rows: Iterable[RawRow], validator: FieldValidator,
                          resolver: ReferenceResolver) -> StageResult:
    """
    Rebuild the ordered stop sequence of every line.

    The table is cleared first. An unknown line aborts the batch; an unknown
    stop is replaced by the sentinel stop so the order is kept.
    """
    result = StageResult("stops by lines")

    with writer.engine.begin() as conn:
        cleared = conn.execute(delete(stops_by_lines_table)).rowcount
    logger.info(f"Cleared {cleared} rows from stops_by_lines")

    def prepare() -> Iterator[PreparedRow]:
        for row in rows:
            result.rows_read += 1
            _destination, direction, line_id, points = row.fields

            if not validator.check(DIRECTION, direction, row.number):
                result.rows_skipped += 1
                continue

            # "12a" joins line 12; "N12" (night line) was never loaded into lines
            code = strip_trailing_letter(line_id)
            if not validator.check(LINE_CODE, code, row.number):
                result.rows_skipped += 1
                continue

            yield PreparedRow(row.number, {
                "code": str(int(code)),
                "direction": direction_to_flag(direction),
                "points": decode_line_stops(points, row.number),
            })

    fallbacks_before = resolver.fallbacks

    def expand(conn, row: PreparedRow):
        line_id = resolver.resolve_line(
            conn, row.params["code"], row.params["direction"], row.row_number
        )
        associations = [
            {
                "stop_id": resolver.resolve_stop(conn, point["id"]),
                "line_id": line_id,
                "order": point["order"],
            }
            for point in row.params["points"]
        ]
        result.fallbacks = resolver.fallbacks - fallbacks_before
        return associations

    return _run_stage(result, writer, insert(stops_by_lines_table), prepare(), expand)


# ============================================================================
# STAGE 5: LINE TEXT COLORS
# ============================================================================

def ingest_line_text_colors(writer: BatchWriter, rows: Iterable[RawRow], validator: FieldValidator,
                            resolver: ReferenceResolver) -> StageResult:
    """
    Set the text color of every line from the GTFS routes table.

    Colors come without a leading '#'; an empty color means white.
    """
    result = StageResult("line text colors")

    def prepare() -> Iterator[PreparedRow]:
        for row in rows:
            result.rows_read += 1
            code, _long_name, text_color = row.fields

            if not validator.check(LINE_CODE, code, row.number):
                result.rows_skipped += 1
                continue

            text_color = normalize_hex(text_color, DEFAULT_TEXT_COLOR)
            if not validator.check(TEXT_COLOR, text_color, row.number):
                result.rows_skipped += 1
                continue

            yield PreparedRow(row.number, {"code": str(int(code)), "text_color": text_color})

    def expand(conn, row: PreparedRow):
        return [
            {"b_id": line_id, "b_text_color": row.params["text_color"]}
            for line_id in resolver.resolve_line_directions(conn, row.params["code"], row.row_number)
        ]

    statement = (
        update(lines_table)
        .where(lines_table.c.id == bindparam("b_id"))
        .values(text_color=bindparam("b_text_color"))
    )
    return _run_stage(result, writer, statement, prepare(), expand)

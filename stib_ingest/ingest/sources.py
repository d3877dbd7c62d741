"""
Source readers.

Both variants produce `RawRow`s: fixed-arity lists of text fields tagged
with the row number used in every diagnostic.
"""

import csv
import json
import logging
from dataclasses import dataclass
from typing import Iterator, List, Sequence

from stib_ingest.data.stib.stib_client import StibClient
from stib_ingest.errors import ArityError, SourceError

logger = logging.getLogger(__name__)

DELIMITER = ";"


@dataclass(frozen=True)
class RawRow:
    number: int
    fields: List[str]


def read_delimited(path: str, arity: int) -> List[RawRow]:
    """
    Read a semicolon-separated file in full and return its data rows.

    The first row is a header and is always skipped, as are blank lines. Row
    numbers are 1-based and count the header and blank lines, so they match
    the line shown by a spreadsheet.

    Raises:
        SourceError: if the file cannot be opened or parsed
        ArityError: if a data row does not have exactly `arity` fields
    """
    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            records = list(csv.reader(f, delimiter=DELIMITER, quotechar='"', strict=False))
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        raise SourceError(f"could not read {path}: {e}") from e

    rows = []
    for index, fields in enumerate(records):
        if index == 0:
            continue  # header
        number = index + 1
        if not fields:
            continue  # blank line
        if len(fields) != arity:
            raise ArityError(
                f"expected {arity} columns, got {len(fields)}: {fields}", number
            )
        rows.append(RawRow(number, fields))

    logger.info(f"Read {len(rows)} rows from {path}")
    return rows


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def api_rows(client: StibClient, dataset: str, fields: Sequence[str]) -> Iterator[RawRow]:
    """
    Adapt the records of an API dataset to `RawRow`s.

    `fields` lists the record keys in the column order of the matching file,
    so API and file rows go through the same validation.
    """
    for index, record in enumerate(client.iter_records(dataset)):
        try:
            values = [_as_text(record[key]) for key in fields]
        except (KeyError, TypeError) as e:
            raise SourceError(f"record from {dataset} is missing field {e}", index + 1) from e
        yield RawRow(index + 1, values)

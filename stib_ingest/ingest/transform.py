"""
Value transformations from source text to storage values.
"""

from enum import IntEnum
from typing import Optional

from stib_ingest.errors import UnknownModeError

SUBURB_LABEL = "Suburb"

MODE_NAMES = {
    "m": "metro",
    "b": "bus",
    "t": "tram",
}


class Direction(IntEnum):
    TOWARDS_SUBURBS = 0
    TOWARDS_CITY = 1


def direction_to_flag(label: str) -> int:
    """
    Map a direction label to the stored flag.

    "Suburb" is 0; every other label, including "City", is 1.
    """
    if label == SUBURB_LABEL:
        return Direction.TOWARDS_SUBURBS.value
    return Direction.TOWARDS_CITY.value


def mode_from_letter(letter: str, row_number: Optional[int] = None) -> str:
    try:
        return MODE_NAMES[letter]
    except KeyError:
        raise UnknownModeError("mode", letter, "must be one of m, b, t", row_number) from None


def strip_trailing_letter(code: str) -> str:
    """Drop a single trailing ASCII letter: "123a" -> "123", "N12" -> "N12"."""
    if code and code[-1].isascii() and code[-1].isalpha():
        return code[:-1]
    return code


def normalize_code(code: str) -> Optional[str]:
    """
    Reduce a composite code to the numeric key used for joins.

    Returns the canonical decimal string ("002" -> "2", "123a" -> "123"),
    or None when no numeric prefix parses.
    """
    stripped = strip_trailing_letter(code.strip())
    if not stripped.isdigit() or not stripped.isascii():
        return None
    return str(int(stripped))


def normalize_hex(value: str, default: Optional[str] = None) -> Optional[str]:
    """Prefix a bare hex color with '#'; empty values yield `default`."""
    value = value.strip()
    if not value:
        return default
    if not value.startswith("#"):
        value = f"#{value}"
    return value

"""
Field validation.

Each rule carries its own policy for invalid values: abort the stage, or
skip the row with a warning. Every rule aborts by default except the
pure-numeric line code check, because non-numeric line codes (night buses
such as "N12") are expected in the sources and are simply not loaded.
"""

import json
import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from stib_ingest.errors import FieldValidationError, JsonCellError

logger = logging.getLogger(__name__)

ALPHANUMERIC = re.compile(r"^[A-Za-z0-9]+$")
NUMERIC = re.compile(r"^\d+$")
HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")
COMPOSITE_ID = re.compile(r"^(\d+)([A-Za-z])$")

LOCALES = ("fr", "nl")


class OnInvalid(Enum):
    ABORT = "abort"
    SKIP = "skip"


@dataclass(frozen=True)
class FieldRule:
    name: str
    pattern: re.Pattern
    on_invalid: OnInvalid = OnInvalid.ABORT
    reason: str = ""


STOP_CODE = FieldRule("stop code", ALPHANUMERIC, reason="must be alphanumeric")
DIRECTION = FieldRule("direction", ALPHANUMERIC, reason="must be alphanumeric")
LINE_ID = FieldRule("line id", ALPHANUMERIC, reason="must be alphanumeric")
LINE_CODE = FieldRule("line code", NUMERIC, OnInvalid.SKIP, reason="must be numeric")
COLOR = FieldRule("color", HEX_COLOR, reason="must be a hex color")
TEXT_COLOR = FieldRule("text color", HEX_COLOR, reason="must be a hex color")
LINE_ID_WITH_MODE = FieldRule(
    "line id with mode", COMPOSITE_ID, reason="must be digits followed by a mode letter"
)

DEFAULT_RULES = {
    rule.name: rule
    for rule in (STOP_CODE, DIRECTION, LINE_ID, LINE_CODE, COLOR, TEXT_COLOR, LINE_ID_WITH_MODE)
}


class FieldValidator:
    """Applies field rules, honouring per-rule policy overrides."""

    def __init__(self, policies: Optional[Dict[str, OnInvalid]] = None):
        self.rules = dict(DEFAULT_RULES)
        for name, policy in (policies or {}).items():
            if name not in self.rules:
                raise ValueError(f"Unknown field rule: {name}")
            self.rules[name] = replace(self.rules[name], on_invalid=policy)
        self.skipped = 0

    def policy(self, rule: FieldRule) -> OnInvalid:
        return self.rules.get(rule.name, rule).on_invalid

    def check(self, rule: FieldRule, value: str, row_number: int) -> bool:
        """
        Validate one field.

        Returns:
            True if the value matches; False if it does not and the rule's
            policy is to skip the row

        Raises:
            FieldValidationError: if it does not match and the policy is to abort
        """
        if rule.pattern.fullmatch(value):
            return True

        if self.policy(rule) is OnInvalid.SKIP:
            self.skipped += 1
            logger.warning(f"Skipping row {row_number}: {rule.name} {value!r} {rule.reason}")
            return False

        raise FieldValidationError(rule.name, value, rule.reason, row_number)


def _decode_json(text: str, field: str, row_number: int):
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        raise JsonCellError(field, text, f"invalid JSON: {e}", row_number) from e


def decode_localized(text: str, field: str, row_number: int) -> Dict[str, str]:
    """Decode a {"fr": ..., "nl": ...} cell."""
    cell = _decode_json(text, field, row_number)
    if not isinstance(cell, dict):
        raise JsonCellError(field, text, "expected a JSON object", row_number)

    localized = {}
    for locale in LOCALES:
        value = cell.get(locale)
        if not isinstance(value, str):
            raise JsonCellError(field, text, f"missing '{locale}' text", row_number)
        localized[locale] = value
    return localized


def decode_geo(text: str, field: str, row_number: int) -> Dict[str, float]:
    """Decode a {"latitude": ..., "longitude": ...} cell. Coordinates are not range-checked."""
    cell = _decode_json(text, field, row_number)
    if not isinstance(cell, dict):
        raise JsonCellError(field, text, "expected a JSON object", row_number)

    try:
        return {
            "latitude": float(cell["latitude"]),
            "longitude": float(cell["longitude"]),
        }
    except (KeyError, TypeError, ValueError) as e:
        raise JsonCellError(field, text, f"bad coordinates: {e}", row_number) from e


def decode_line_stops(text: str, row_number: int) -> List[Dict]:
    """Decode the ordered stop list of a line: [{"id": "8042", "order": 1}, ...]."""
    cell = _decode_json(text, "line stops", row_number)
    if not isinstance(cell, list):
        raise JsonCellError("line stops", text, "expected a JSON array", row_number)

    points = []
    for point in cell:
        try:
            points.append({"id": str(point["id"]), "order": int(point["order"])})
        except (KeyError, TypeError, ValueError) as e:
            raise JsonCellError("line stops", text, f"bad stop entry {point!r}", row_number) from e
    return points


def split_composite(value: str, row_number: int) -> Tuple[int, str]:
    """Split a line id such as "002m" into (2, "m")."""
    match = COMPOSITE_ID.fullmatch(value)
    if match is None:
        raise FieldValidationError(
            LINE_ID_WITH_MODE.name, value, LINE_ID_WITH_MODE.reason, row_number
        )
    return int(match.group(1)), match.group(2)

"""
Error hierarchy for the seeding pipeline.

Every exception below aborts the stage that raised it. Rows that are merely
skipped (non-standard line codes, unknown stops) never raise; they are
logged and counted instead.
"""

from typing import Optional


class SeedError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, row_number: Optional[int] = None):
        self.row_number = row_number
        if row_number is not None:
            message = f"row {row_number}: {message}"
        super().__init__(message)


class SourceError(SeedError):
    """A source could not be read (missing file, HTTP failure, bad page)."""


class ArityError(SeedError):
    """A delimited row does not have the expected number of fields."""


class FieldValidationError(SeedError):
    """A field failed a validation rule whose policy is to abort."""

    def __init__(self, field: str, value: str, reason: str, row_number: Optional[int] = None):
        self.field = field
        self.value = value
        super().__init__(f"invalid {field} {value!r} ({reason})", row_number)


class JsonCellError(FieldValidationError):
    """A JSON-in-cell field could not be decoded into the expected shape."""


class UnknownModeError(FieldValidationError):
    """A mode letter outside m/b/t."""


class UnresolvedLineError(SeedError):
    """A line reference has no matching (code, direction) row."""

    def __init__(self, code: str, direction: Optional[int] = None, row_number: Optional[int] = None):
        self.code = code
        self.direction = direction
        target = f"line {code!r}"
        if direction is not None:
            target += f" (direction {direction})"
        super().__init__(f"{target} was not found in lines", row_number)


class BatchWriteError(SeedError):
    """The database rejected a statement inside a batch."""


class PipelineError(SeedError):
    """Raised by the orchestrator when a stage halts the run."""

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(f"stage '{stage}' failed: {cause}")

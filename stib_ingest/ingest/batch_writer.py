"""
Batched transactional writes.

Rows are committed in fixed-size batches, one transaction per batch. A
failure rolls back the current batch only: earlier batches stay committed,
so a stage that fails halfway leaves its table partially loaded.
"""

import logging
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm

from stib_ingest.errors import BatchWriteError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


@dataclass
class PreparedRow:
    """A validated source row and the statement parameters derived from it."""
    row_number: int
    params: Dict[str, Any]


@dataclass
class WriteResult:
    batch_sizes: List[int] = field(default_factory=list)
    statements: int = 0
    rows_affected: int = 0


Expander = Callable[[Any, PreparedRow], Iterable[Dict[str, Any]]]


def _single(conn, row: PreparedRow):
    return [row.params]


class BatchWriter:
    """Writes prepared rows through a single statement, one transaction per batch."""

    def __init__(self, engine, batch_size: int = DEFAULT_BATCH_SIZE, label: str = "rows",
                 show_progress: bool = False):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.engine = engine
        self.batch_size = batch_size
        self.label = label
        self.show_progress = show_progress

    def write(self, statement, rows: Iterable[PreparedRow],
              expand: Optional[Expander] = None) -> WriteResult:
        """
        Execute `statement` for every row, committing every `batch_size` rows.

        Args:
            statement: a Core insert() or update() with bind parameters
            rows: prepared rows, consumed lazily
            expand: called with (connection, row) inside the batch
                transaction; returns the parameter sets to execute for the
                row. Defaults to the row's own params.

        Returns:
            WriteResult with the size of every committed batch

        Raises:
            BatchWriteError: if the database rejects a statement. Any other
                exception raised while preparing or expanding a row
                propagates unchanged. Either way the open batch is rolled back.
        """
        expand = expand or _single
        result = WriteResult()
        iterator = iter(tqdm(rows, desc=f"Writing {self.label}", unit="row",
                             disable=not self.show_progress, leave=False))

        while True:
            batch = list(islice(iterator, self.batch_size))
            if not batch:
                break

            with self.engine.begin() as conn:
                for row in batch:
                    for params in expand(conn, row):
                        try:
                            outcome = conn.execute(statement, params)
                        except SQLAlchemyError as e:
                            cause = getattr(e, "orig", None) or e
                            raise BatchWriteError(
                                f"failed to write {self.label}: {cause}", row.row_number
                            ) from e
                        result.statements += 1
                        if outcome.rowcount and outcome.rowcount > 0:
                            result.rows_affected += outcome.rowcount

            result.batch_sizes.append(len(batch))
            logger.info(
                f"'{self.label}' batch #{len(result.batch_sizes)} committed ({len(batch)} rows)"
            )

            if len(batch) < self.batch_size:
                break

        return result

"""
Seeding Orchestrator

Single entry point for loading the STIB network into the database. Runs
the loading stages strictly in order, each one starting only after its
predecessor has committed, because later stages resolve references against
rows written by earlier ones.

Usage:
    python -m stib_ingest.ingest
    python -m stib_ingest.ingest --source api --run-mode replace
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from stib_ingest.config.config_main import seed_config, stib_config
from stib_ingest.data.db_broker import ConnectionBroker
from stib_ingest.data.stib.stib_client import StibClient
from stib_ingest.errors import PipelineError, SeedError

from .batch_writer import BatchWriter
from .resolver import ReferenceResolver
from .schema import clear_network, ensure_sentinel_stop, initialize_database
from .sources import RawRow, api_rows, read_delimited
from .static_network import (
    LINE_COLORS_ARITY, LINE_METADATA_ARITY, STOPS_API_FIELDS, STOPS_ARITY,
    STOPS_BY_LINE_API_FIELDS, STOPS_BY_LINE_ARITY, StageResult,
    ingest_line_metadata, ingest_line_text_colors, ingest_lines, ingest_stops,
    ingest_stops_by_lines
)
from .validation import LINE_CODE, FieldValidator, OnInvalid

logging.basicConfig(
    level=getattr(logging, seed_config.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class PipelineState(Enum):
    BOOTSTRAP = "bootstrap"
    STOPS = "stops"
    LINES = "lines"
    LINE_METADATA = "line metadata"
    STOPS_BY_LINES = "stops by lines"
    LINE_TEXT_COLORS = "line text colors"
    DONE = "done"
    FAILED = "failed"


class RunMode(Enum):
    APPEND = "append"    # keep existing rows, insert unseen natural keys only
    REPLACE = "replace"  # clear stops, lines and stops_by_lines first


@dataclass
class SourceSet:
    """Where every stage reads its rows from."""
    stops_file: str = seed_config.stops_file
    stops_by_line_file: str = seed_config.stops_by_line_file
    line_metadata_file: str = seed_config.line_metadata_file
    line_colors_file: str = seed_config.line_colors_file
    source: str = "file"
    client: Optional[StibClient] = None
    stops_dataset: str = seed_config.stops_dataset
    stops_by_line_dataset: str = seed_config.stops_by_line_dataset

    def __post_init__(self):
        if self.source not in ("file", "api"):
            raise ValueError(f"Unknown source: {self.source}")
        if self.source == "api" and self.client is None:
            raise ValueError("An API client is required when reading from the API")

    @classmethod
    def from_config(cls, source: str = None) -> "SourceSet":
        source = source or seed_config.source
        client = StibClient(stib_config) if source == "api" else None
        return cls(source=source, client=client)

    def stops(self) -> Iterable[RawRow]:
        if self.source == "api":
            return api_rows(self.client, self.stops_dataset, STOPS_API_FIELDS)
        return read_delimited(self.stops_file, STOPS_ARITY)

    def stops_by_line(self) -> Iterable[RawRow]:
        if self.source == "api":
            return api_rows(self.client, self.stops_by_line_dataset, STOPS_BY_LINE_API_FIELDS)
        return read_delimited(self.stops_by_line_file, STOPS_BY_LINE_ARITY)

    def line_metadata(self) -> Iterable[RawRow]:
        return read_delimited(self.line_metadata_file, LINE_METADATA_ARITY)

    def line_colors(self) -> Iterable[RawRow]:
        return read_delimited(self.line_colors_file, LINE_COLORS_ARITY)


@dataclass
class PipelineReport:
    state: PipelineState = PipelineState.BOOTSTRAP
    sentinel_stop_id: Optional[int] = None
    results: List[StageResult] = field(default_factory=list)
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    skipped_by_policy: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE


class SeedPipeline:
    """
    Runs Bootstrap -> Stops -> Lines -> LineMetadata -> StopsByLines ->
    LineTextColors -> Done. Any failure moves to Failed and stops the run;
    stages and batches already committed are kept.
    """

    def __init__(self, engine, sources: SourceSet, batch_size: int = 100,
                 run_mode: RunMode = RunMode.APPEND,
                 line_code_policy: OnInvalid = OnInvalid.SKIP,
                 show_progress: bool = False):
        self.engine = engine
        self.sources = sources
        self.batch_size = batch_size
        self.run_mode = run_mode
        self.line_code_policy = line_code_policy
        self.show_progress = show_progress
        self.report = PipelineReport()

    def _writer(self, label: str) -> BatchWriter:
        return BatchWriter(self.engine, self.batch_size, label, self.show_progress)

    def _transition(self, state: PipelineState):
        logger.info(f"Pipeline state: {self.report.state.value} -> {state.value}")
        self.report.state = state

    def bootstrap(self) -> int:
        """Apply the run mode and make sure the sentinel stop exists."""
        with self.engine.begin() as conn:
            if self.run_mode is RunMode.REPLACE:
                logger.warning("Replace mode: clearing stops, lines and stops_by_lines")
                clear_network(conn)
            return ensure_sentinel_stop(conn)

    def run(self) -> PipelineReport:
        """
        Execute every stage in order.

        Returns:
            PipelineReport in state DONE

        Raises:
            PipelineError: wrapping the first stage failure; the report is
                left in state FAILED with the failing stage recorded
        """
        self.report = PipelineReport()
        validator = FieldValidator({LINE_CODE.name: self.line_code_policy})

        try:
            self._transition(PipelineState.BOOTSTRAP)
            sentinel_id = self.bootstrap()
            self.report.sentinel_stop_id = sentinel_id
            resolver = ReferenceResolver(sentinel_id)

            stages = (
                (PipelineState.STOPS, lambda: ingest_stops(
                    self._writer("stops"), self.sources.stops(), validator, resolver)),
                (PipelineState.LINES, lambda: ingest_lines(
                    self._writer("lines"), self.sources.stops_by_line(), validator, resolver)),
                (PipelineState.LINE_METADATA, lambda: ingest_line_metadata(
                    self._writer("line metadata"), self.sources.line_metadata(), validator)),
                (PipelineState.STOPS_BY_LINES, lambda: ingest_stops_by_lines(
                    self._writer("stops by lines"), self.sources.stops_by_line(), validator, resolver)),
                (PipelineState.LINE_TEXT_COLORS, lambda: ingest_line_text_colors(
                    self._writer("line text colors"), self.sources.line_colors(), validator, resolver)),
            )
            for state, stage in stages:
                self._transition(state)
                self.report.results.append(stage())
            self.report.skipped_by_policy = validator.skipped

        except (SeedError, SQLAlchemyError) as e:
            self.report.skipped_by_policy = validator.skipped
            failed_stage = self.report.state.value
            self.report.failed_stage = failed_stage
            self.report.error = str(e)
            self._transition(PipelineState.FAILED)
            logger.error(f"Pipeline halted in stage '{failed_stage}': {e}")
            raise PipelineError(failed_stage, e) from e

        self._transition(PipelineState.DONE)
        return self.report


def run_full_ingestion(
    source: str = None,
    run_mode: RunMode = None,
    line_code_policy: OnInvalid = None,
    batch_size: int = None,
    show_progress: bool = None,
    init_db: bool = False,
    reset_db: bool = False,
    engine=None,
) -> PipelineReport:
    """
    Execute the complete seeding pipeline with configuration defaults.

    Args:
        source: 'file' or 'api' for stops and lines (default from env)
        run_mode: append or replace (default from env)
        line_code_policy: what to do with non-numeric line codes (default from env)
        batch_size: rows per committed batch (default from env)
        show_progress: show tqdm progress bars (default from env)
        init_db: create missing tables before seeding
        reset_db: drop and recreate all tables before seeding
        engine: SQLAlchemy engine (default: ConnectionBroker engine)
    """
    print(f"\n{'#'*70}")
    print(f"# STIB SEEDING PIPELINE")
    print(f"# Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"{'#'*70}\n")

    overall_start = datetime.now()

    engine = engine or ConnectionBroker.get_engine()
    if init_db or reset_db:
        initialize_database(engine, drop_existing=reset_db)

    pipeline = SeedPipeline(
        engine,
        SourceSet.from_config(source),
        batch_size=batch_size or seed_config.batch_size,
        run_mode=run_mode or RunMode(seed_config.run_mode),
        line_code_policy=line_code_policy or OnInvalid(seed_config.line_code_policy),
        show_progress=seed_config.show_progress if show_progress is None else show_progress,
    )

    try:
        report = pipeline.run()
    except PipelineError as e:
        print(f"\n{'!'*70}")
        print(f"! PIPELINE FAILED")
        print(f"! Stage: {e.stage}")
        print(f"! Error: {e.cause}")
        print(f"{'!'*70}\n")
        raise

    overall_duration = (datetime.now() - overall_start).total_seconds()

    print(f"\n{'='*70}")
    print("SEEDING COMPLETE")
    print(f"{'='*70}")
    for result in report.results:
        print(
            f"  ✓ {result.stage}: {result.written} written, {result.rows_skipped} skipped"
            + (f", {result.fallbacks} unknown stops" if result.fallbacks else "")
        )
    print(f"  Rows skipped by field policy: {report.skipped_by_policy}")
    print(f"  Total duration: {overall_duration:.2f} seconds")
    print(f"{'='*70}\n")

    return report


def main(argv: List[str] = None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description='STIB network seeding pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Seed from the delimited files configured in .env
  python -m stib_ingest.ingest --init-db

  # Fetch stops and lines from the open data API, clearing previous rows
  python -m stib_ingest.ingest --source api --run-mode replace
        """
    )

    parser.add_argument(
        '--source',
        choices=['file', 'api'],
        default=None,
        help='Where stops and lines are read from (default: SEED_SOURCE env var)'
    )

    parser.add_argument(
        '--run-mode',
        choices=[mode.value for mode in RunMode],
        default=None,
        help='append keeps existing rows, replace clears them first (default: SEED_RUN_MODE)'
    )

    parser.add_argument(
        '--batch-size',
        type=int,
        default=None,
        help='Rows committed per transaction (default: SEED_BATCH_SIZE)'
    )

    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable progress bars'
    )

    parser.add_argument(
        '--init-db',
        action='store_true',
        help='Create missing tables before seeding'
    )

    parser.add_argument(
        '--reset-db',
        action='store_true',
        help='Drop and recreate all tables before seeding (DESTRUCTIVE)'
    )

    parser.add_argument(
        '--yes',
        action='store_true',
        help='Do not ask for confirmation of destructive operations'
    )

    args = parser.parse_args(argv)

    try:
        run_mode = RunMode(args.run_mode or seed_config.run_mode)
    except ValueError:
        parser.error(f"invalid SEED_RUN_MODE {seed_config.run_mode!r} (choose from append, replace)")
    try:
        line_code_policy = OnInvalid(seed_config.line_code_policy)
    except ValueError:
        parser.error(
            f"invalid SEED_LINE_CODE_POLICY {seed_config.line_code_policy!r} (choose from abort, skip)"
        )

    # Confirm destructive operation
    if (args.reset_db or run_mode is RunMode.REPLACE) and not args.yes:
        print("\n⚠️  WARNING: this run will DELETE EXISTING DATA!")
        response = input("Are you sure you want to continue? (yes/no): ")
        if response.lower() != 'yes':
            print("Aborted.")
            sys.exit(0)

    try:
        run_full_ingestion(
            source=args.source,
            run_mode=run_mode,
            line_code_policy=line_code_policy,
            batch_size=args.batch_size,
            show_progress=False if args.no_progress else None,
            init_db=args.init_db,
            reset_db=args.reset_db,
        )
    except PipelineError:
        sys.exit(1)


if __name__ == "__main__":
    main()

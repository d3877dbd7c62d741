"""
STIB Seeding Module

Loads the STIB-MIVB network reference data (stops, lines, line metadata,
stop order per line, line text colors) into the database read by the
serving layer.

Entry Point:
    python -m stib_ingest.ingest --init-db

Components:
    - sources: delimited files and API datasets as numbered raw rows
    - validation: field rules with abort / skip policies, JSON cell decoding
    - transform: direction flags, mode names, code normalization
    - resolver: line and stop lookups, sentinel stop fallback
    - batch_writer: fixed-size transactional batches
    - static_network: the five loading stages
    - orchestrator: stage sequencing, run modes and CLI
"""

from .schema import initialize_database, Base
from .orchestrator import run_full_ingestion, SeedPipeline, SourceSet, RunMode

__all__ = ['initialize_database', 'Base', 'run_full_ingestion', 'SeedPipeline', 'SourceSet', 'RunMode']

"""
Main entry point for seeding the STIB network.

Same as `python -m stib_ingest.ingest`; all options are forwarded.
"""

from stib_ingest.ingest.orchestrator import main


if __name__ == "__main__":
    main()

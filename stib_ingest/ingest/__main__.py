"""
STIB Seeding Module Entry Point

Allows running the seeding pipeline via:
    python -m stib_ingest.ingest [args]
"""

from .orchestrator import main

if __name__ == "__main__":
    main()

from stib_ingest.config.config_main import db_config

from sqlalchemy import create_engine


class ConnectionBroker:

    _engine = None

    @staticmethod
    def get_engine():
        """Get or create the SQLAlchemy engine for the configured database."""
        if ConnectionBroker._engine is None:
            ConnectionBroker._engine = create_engine(
                db_config.connection_string(),
                pool_pre_ping=True,  # Verify connections before using
                echo=False  # Set to True for SQL debug logging
            )
        return ConnectionBroker._engine

from dotenv import load_dotenv
import os

load_dotenv()

class DBConfig():
    host: str = os.getenv("POSTGRES_HOST", "localhost")
    port: int = int(os.getenv("POSTGRES_PORT", 5432))
    user: str = os.getenv("POSTGRES_USER", "sa")
    password: str = os.getenv("POSTGRES_PASSWORD", "password")
    database: str = os.getenv("POSTGRES_DB", "catchandgo")
    # Takes precedence over the POSTGRES_* settings when present
    url: str = os.getenv("DATABASE_URL", "")

    def connection_string(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql+psycopg2://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

db_config = DBConfig()

class StibConfig():
    api_key: str = os.getenv("STIB_API_KEY", "")
    base_url: str = os.getenv("STIB_BASE_URL", "https://data.stib-mivb.brussels/api/explore/v2.1")
    page_size: int = int(os.getenv("STIB_PAGE_SIZE", "100"))
    page_delay: float = float(os.getenv("STIB_PAGE_DELAY", "0.5"))
    timeout: int = int(os.getenv("STIB_TIMEOUT", "30"))
    use_cache: bool = os.getenv("STIB_USE_CACHE", "false").lower() == "true"
    cache_ttl: int = int(os.getenv("STIB_CACHE_TTL", "60"))

stib_config = StibConfig()

class SeedConfig():
    """Configuration for the seeding pipeline."""
    source: str = os.getenv("SEED_SOURCE", "file")
    stops_file: str = os.getenv("SEED_STOPS_FILE", "data/stop-details-production.csv")
    stops_by_line_file: str = os.getenv("SEED_STOPS_BY_LINE_FILE", "data/stops-by-line-production.csv")
    line_metadata_file: str = os.getenv("SEED_LINE_METADATA_FILE", "data/lines-metadata.csv")
    line_colors_file: str = os.getenv("SEED_LINE_COLORS_FILE", "data/gtfs-routes-production.csv")
    stops_dataset: str = os.getenv("SEED_STOPS_DATASET", "stop-details-production")
    stops_by_line_dataset: str = os.getenv("SEED_STOPS_BY_LINE_DATASET", "stops-by-line-production")

    batch_size: int = int(os.getenv("SEED_BATCH_SIZE", "100"))
    run_mode: str = os.getenv("SEED_RUN_MODE", "append")
    line_code_policy: str = os.getenv("SEED_LINE_CODE_POLICY", "skip")
    show_progress: bool = os.getenv("SEED_SHOW_PROGRESS", "true").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

seed_config = SeedConfig()

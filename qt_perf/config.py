"""Settings for qt-perf, loaded from QT_PERF_* environment variables or .env."""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Benchmark settings loaded from environment."""

    # DuckDB engine
    duckdb_database: str = ":memory:"
    duckdb_read_only: bool = False
    dialect: str = "duckdb"
    fetch_batch_size: int = 2048

    # Spark engine
    spark_max_fields: int = 25

    # Runs
    include_breakdown: bool = False
    output_location: str = ""

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "QT_PERF_"
        env_file = ".env"

    @property
    def query_output_location(self) -> Optional[str]:
        """Extra untimed output directory, or None when unset."""
        return self.output_location or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Basic console logging for scripts; the library never adds handlers itself."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )

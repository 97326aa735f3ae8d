# stationdb/config.py
"""Configuration management for stationdb."""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # PostgreSQL connection configuration
    postgres_dsn: str = ""
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_ssl: bool = False
    postgres_schema: str = "public"
    postgres_pool_size: int = 10

    # Admission pool configuration
    pool_max_connections: int = Field(default=100, ge=1)
    pool_warning_threshold: float = Field(default=0.70, gt=0, le=1)
    pool_critical_threshold: float = Field(default=0.85, gt=0, le=1)
    pool_wait_for_slot: bool = False
    pool_acquire_timeout: float = 10.0
    operation_timeout: Optional[float] = None

    # Schema auto-sync configuration
    sync_auto: bool = True
    sync_interval: float = Field(default=300, gt=0)
    sync_backup_enabled: bool = True
    sync_history_size: int = 20
    structures_file: Optional[str] = Field(
        default=None,
        description="JSON file listing declared structures"
    )

    # Observability configuration
    metrics_enabled: bool = True
    metrics_window: int = 300
    log_level: str = "INFO"

    # MCP configuration
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8989

    class Config:
        env_prefix = "STATIONDB_"

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Settings":
        if self.pool_warning_threshold > self.pool_critical_threshold:
            raise ValueError(
                "pool_warning_threshold must not exceed pool_critical_threshold"
            )
        return self

    def get_dsn(self) -> str:
        """Get the database connection string.

        Returns:
            The DSN string for connecting to PostgreSQL.
        """
        if self.postgres_dsn and not self.postgres_dsn.startswith("${"):
            return self.postgres_dsn
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_database}"
        )

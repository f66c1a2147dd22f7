import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Ingestion service configuration, read from the environment and ``.env``."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "csv_ingest"
    db_username: str = "csv_ingest"
    db_password: str = "secret"
    db_pool_min_size: int = Field(default=1, ge=1)
    db_pool_max_size: int = Field(default=10, ge=1)
    db_connect_timeout_seconds: int = Field(default=10, gt=0)

    files_root: str = "./storage"
    max_file_size_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
    allowed_mime_types: list[str] = [
        "text/csv",
        "application/csv",
        "application/vnd.ms-excel",
        "text/plain",
    ]
    preview_row_limit: int = Field(default=100, ge=1, le=1000)

    dispatch_max_workers: int = Field(default=4, ge=1)
    job_poll_interval_seconds: int = Field(default=5, ge=0)

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

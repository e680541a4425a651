"""
Configuration settings for the locking harness.

Uses Pydantic Settings to load environment variables for the database
connection, logging, and harness defaults. `StoreConfig` is the explicit,
immutable slice of those settings that every store receives in its
constructor, so nothing below the CLI reads process-wide state.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("postgres", alias="DB_NAME")
    db_table: str = Field("data", alias="DB_TABLE")
    db_connect_timeout: int = Field(5, alias="DB_CONNECT_TIMEOUT")
    db_connect_attempts: int = Field(3, alias="DB_CONNECT_ATTEMPTS")
    db_lock_timeout_ms: int = Field(5_000, alias="DB_LOCK_TIMEOUT_MS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Harness defaults
    harness_record_id: int = Field(1, alias="HARNESS_RECORD_ID")
    harness_seed_value: str = Field("$", alias="HARNESS_SEED_VALUE")
    harness_marker: str = Field("$", alias="HARNESS_MARKER", min_length=1, max_length=1)
    harness_workers: int = Field(2, alias="HARNESS_WORKERS")
    harness_delay_seconds: float = Field(1.0, alias="HARNESS_DELAY_SECONDS")
    harness_phase_timeout_seconds: Optional[float] = Field(
        None, alias="HARNESS_PHASE_TIMEOUT_SECONDS"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class StoreConfig(BaseModel):
    """
    Connection and schema parameters handed to a Store constructor.
    """

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = "postgres"
    dbname: str = "postgres"
    table: str = "data"
    record_id: int = 1
    seed_value: str = "$"
    connect_timeout: int = 5
    connect_attempts: int = Field(3, ge=1)
    lock_timeout_ms: int = Field(5_000, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoreConfig":
        return cls(
            host=settings.db_host,
            port=settings.db_port,
            user=settings.db_user,
            password=settings.db_password,
            dbname=settings.db_name,
            table=settings.db_table,
            record_id=settings.harness_record_id,
            seed_value=settings.harness_seed_value,
            connect_timeout=settings.db_connect_timeout,
            connect_attempts=settings.db_connect_attempts,
            lock_timeout_ms=settings.db_lock_timeout_ms,
        )

    @property
    def dsn(self) -> str:
        """Compose a libpq URI from the connection fields."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.dbname}"

    @property
    def safe_dsn(self) -> str:
        """DSN with the password masked, for logs and `info` output."""
        return f"postgresql://{self.user}:***@{self.host}:{self.port}/{self.dbname}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "StoreConfig", "get_settings"]

"""
Configuration settings for the ledger partition manager.

Uses Pydantic Settings to load environment variables for database connections,
logging, and partition provisioning. Provisioning switches are read exactly once
into an immutable ``ProvisioningConfig`` which is then handed to the guard layer;
nothing downstream reads the environment again.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ledger_partitions.exceptions import ConfigurationError


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("ledger", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(0, alias="DB_STATEMENT_TIMEOUT_MS", ge=0)

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Partitioning
    parent_table: str = Field("transactions", alias="PARTITION_PARENT_TABLE")
    skip_provisioning: bool = Field(False, alias="SKIP_PARTITION_PROVISIONING")
    ignore_provisioning_errors: bool = Field(False, alias="IGNORE_PARTITION_PROVISIONING_ERRORS")
    look_ahead_days: int = Field(5, alias="PARTITION_LOOK_AHEAD_DAYS", ge=1)
    initial_backfill_days: int = Field(0, alias="PARTITION_INITIAL_BACKFILL_DAYS", ge=0)
    provision_timeout_ms: int = Field(5_000, alias="PARTITION_PROVISION_TIMEOUT_MS", ge=0)
    provision_retry_attempts: int = Field(3, alias="PARTITION_RETRY_ATTEMPTS", ge=1)
    provision_retry_wait_seconds: float = Field(1.0, alias="PARTITION_RETRY_WAIT_SECONDS", ge=0)
    advisory_lock_key: int = Field(7_340_021, alias="PARTITION_ADVISORY_LOCK_KEY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class GuardMode(str, enum.Enum):
    """Effective provisioning mode, fixed for the lifetime of a deployment."""

    STRICT = "strict"
    LENIENT = "lenient"
    DISABLED = "disabled"


@dataclass(frozen=True)
class ProvisioningConfig:
    """
    Immutable provisioning configuration.

    Constructed once at startup (usually via ``from_settings``) and passed
    explicitly into the migrator, scheduler and guard.
    """

    parent_table: str = "transactions"
    skip_provisioning: bool = False
    ignore_provisioning_errors: bool = False
    look_ahead_days: int = 5
    initial_backfill_days: int = 0
    provision_timeout_ms: int = 5_000
    retry_attempts: int = 3
    retry_wait_seconds: float = 1.0
    advisory_lock_key: int = 7_340_021

    def __post_init__(self) -> None:
        if not self.parent_table or not self.parent_table.isidentifier():
            raise ConfigurationError(f"Invalid parent table name: {self.parent_table!r}")
        if self.look_ahead_days < 1:
            raise ConfigurationError(
                f"look_ahead_days must be >= 1, got {self.look_ahead_days}"
            )
        if self.initial_backfill_days < 0:
            raise ConfigurationError(
                f"initial_backfill_days must be >= 0, got {self.initial_backfill_days}"
            )
        if self.provision_timeout_ms < 0:
            raise ConfigurationError("provision_timeout_ms must be >= 0")
        if self.retry_attempts < 1:
            raise ConfigurationError("retry_attempts must be >= 1")
        if self.retry_wait_seconds < 0:
            raise ConfigurationError("retry_wait_seconds must be >= 0")

    @property
    def mode(self) -> GuardMode:
        if self.skip_provisioning:
            return GuardMode.DISABLED
        if self.ignore_provisioning_errors:
            return GuardMode.LENIENT
        return GuardMode.STRICT

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProvisioningConfig":
        return cls(
            parent_table=settings.parent_table,
            skip_provisioning=settings.skip_provisioning,
            ignore_provisioning_errors=settings.ignore_provisioning_errors,
            look_ahead_days=settings.look_ahead_days,
            initial_backfill_days=settings.initial_backfill_days,
            provision_timeout_ms=settings.provision_timeout_ms,
            retry_attempts=settings.provision_retry_attempts,
            retry_wait_seconds=settings.provision_retry_wait_seconds,
            advisory_lock_key=settings.advisory_lock_key,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.

    Raises
    ------
    ConfigurationError
        If any environment value fails validation.
    """
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


__all__ = ["GuardMode", "ProvisioningConfig", "Settings", "get_settings"]

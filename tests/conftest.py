"""
Pytest configuration for the ledger partition manager.

Provides fixtures for:
- In-memory catalog and partition log wiring for unit tests
- Database connection management for integration tests
- Flat-table setup and seeding for migration rehearsals
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Callable, Generator

import psycopg
import pytest

from ledger_partitions.config import ProvisioningConfig, Settings, get_settings
from ledger_partitions.domain.models import DateKey
from ledger_partitions.orchestrator import Components, build_components
from ledger_partitions.partitioning.partition_log import PartitionLog
from tests.fakes import InMemoryCatalog, MemoryPartitionLog

TODAY = DateKey(date(2025, 5, 1))


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def today() -> DateKey:
    return TODAY


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def partition_log() -> MemoryPartitionLog:
    return MemoryPartitionLog()


@pytest.fixture
def make_components(
    catalog: InMemoryCatalog, partition_log: MemoryPartitionLog
) -> Callable[..., Components]:
    """
    Build wired services over the in-memory catalog.

    Keyword arguments override ``ProvisioningConfig`` fields; retries never sleep.
    """

    def _make(**overrides) -> Components:
        values = {"retry_wait_seconds": 0.0}
        values.update(overrides)
        return build_components(catalog, partition_log, ProvisioningConfig(**values))

    return _make


# -- integration -----------------------------------------------------------


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "ledger"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a dedicated autocommit connection in the UTC session time zone.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True, options="-c timezone=UTC")
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def flat_ledger(db_connection: psycopg.Connection) -> Generator[psycopg.Connection, None, None]:
    """
    Reset the schema to the pre-migration state described by db/init.sql.
    """

    def _reset() -> None:
        with db_connection.cursor() as cur:
            for table in ("transactions_migration_hold", "transactions_future_stale", "transactions"):
                cur.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
            cur.execute("DROP TABLE IF EXISTS partition_logs;")

    _reset()
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text())
    yield db_connection
    _reset()


@pytest.fixture
def db_partition_log(test_dsn: str) -> PartitionLog:
    @contextmanager
    def _connect() -> Generator[psycopg.Connection, None, None]:
        with psycopg.connect(test_dsn, autocommit=True) as conn:
            yield conn

    return PartitionLog(_connect)

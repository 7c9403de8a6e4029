"""
Database connection factory utilities for the ledger partition manager.

Provides centralized management of PostgreSQL connections and the pool used by
the partition log. The PoolManager singleton ensures resources are properly
cleaned up on application exit.

All sessions run in autocommit mode with ``TimeZone=UTC`` so that explicit
``conn.transaction()`` blocks (and nested savepoints) are the only transaction
boundaries, and range bounds are interpreted as UTC midnights.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ledger_partitions.config import Settings, get_settings

SESSION_OPTIONS = "-c timezone=UTC"


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def _connection_kwargs(settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    options = SESSION_OPTIONS
    if settings.db_statement_timeout_ms > 0:
        # Session-wide ceiling; provisioning attempts tighten it per block.
        options += f" -c statement_timeout={settings.db_statement_timeout_ms}"
    return {"autocommit": True, "options": options}


class PoolManager:
    """
    Thread-safe singleton for managing the database connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    The first caller's settings decide which database the pool connects to.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool: Optional[ConnectionPool] = None
                # Register cleanup on exit
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(
        self,
        settings: Optional[Settings] = None,
        min_size: int = 1,
        max_size: int = 4,
    ) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        settings : Settings | None
            Connection settings; ``get_settings()`` when omitted.
        min_size : int
            Minimum number of idle connections to keep.
        max_size : int
            Maximum total connections in the pool.
        """
        with self._lock:
            if self._sync_pool is None:
                self._sync_pool = ConnectionPool(
                    conninfo=build_dsn(settings),
                    min_size=min_size,
                    max_size=max_size,
                    kwargs=_connection_kwargs(settings),
                    open=True,
                )
            return self._sync_pool

    @contextmanager
    def sync_connection(
        self, settings: Optional[Settings] = None
    ) -> Generator[Connection, None, None]:
        """
        Context manager for obtaining a sync connection from the pool.

        Example
        -------
            manager = PoolManager()
            with manager.sync_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        pool = self.get_sync_pool(settings)
        with pool.connection() as conn:
            yield conn

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except Exception:
                    pass  # Best-effort cleanup
                finally:
                    self._sync_pool = None


@contextmanager
def statement_timeout(conn: Connection, timeout_ms: int) -> Generator[None, None, None]:
    """
    Bound the statements issued inside the block to ``timeout_ms``.

    The value is set transaction-locally and the previous one is put back when
    the block exits normally. If the block raises, the caller's transaction or
    savepoint rollback discards the setting. A value of 0 changes nothing.
    """
    if timeout_ms <= 0:
        yield
        return
    with conn.cursor() as cur:
        cur.execute("SELECT current_setting('statement_timeout')")
        previous = cur.fetchone()[0]
        cur.execute("SELECT set_config('statement_timeout', %s, true)", (str(int(timeout_ms)),))
    yield
    with conn.cursor() as cur:
        cur.execute("SELECT set_config('statement_timeout', %s, true)", (previous,))


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(settings: Optional[Settings] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Migration and sweep runs use a dedicated connection because the advisory lock
    they take is bound to the session.

    Returns
    -------
    Connection
        A new psycopg connection in autocommit mode.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(build_dsn(settings), **_connection_kwargs(settings))


__all__ = [
    "PoolManager",
    "build_dsn",
    "get_sync_connection",
    "statement_timeout",
]

"""
Append-only audit trail of partition operations.

Each entry is written on a connection of its own so that a rolled-back
provisioning transaction keeps its audit row, and a failing log write never
changes a provisioning outcome.
"""

from __future__ import annotations

from typing import Callable, ContextManager, List, Optional

import psycopg
from psycopg import Connection, sql
from psycopg.rows import dict_row

from ledger_partitions.domain.models import LogOperation, LogStatus, PartitionLogEntry
from ledger_partitions.exceptions import LogWriteError
from ledger_partitions.utils.logging import get_logger

log = get_logger(__name__)

ConnectionFactory = Callable[[], ContextManager[Connection]]

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    id SERIAL PRIMARY KEY,
    operation VARCHAR(20) NOT NULL,
    partition_name VARCHAR(255) NOT NULL,
    status VARCHAR(20) NOT NULL,
    detail TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
)
"""


class PartitionLog:
    """
    Writer and reader for the ``partition_logs`` table.

    Parameters
    ----------
    connection_factory : callable
        Returns a context manager yielding a connection, e.g.
        ``PoolManager().sync_connection``.
    table : str
        Name of the log table.
    """

    def __init__(self, connection_factory: ConnectionFactory, table: str = "partition_logs") -> None:
        self._connection_factory = connection_factory
        self.table = table

    def ensure_table(self) -> None:
        with self._connection_factory() as conn:
            with conn.transaction():
                conn.execute(sql.SQL(_CREATE_TABLE).format(table=sql.Identifier(self.table)))
                for column in ("operation", "partition_name", "status", "created_at"):
                    conn.execute(
                        sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} ({column})").format(
                            index=sql.Identifier(f"idx_{self.table}_{column}"),
                            table=sql.Identifier(self.table),
                            column=sql.Identifier(column),
                        )
                    )

    def _write(
        self,
        operation: LogOperation,
        partition_name: str,
        status: LogStatus,
        detail: Optional[str],
    ) -> None:
        try:
            with self._connection_factory() as conn:
                conn.execute(
                    sql.SQL(
                        "INSERT INTO {table} (operation, partition_name, status, detail) "
                        "VALUES (%s, %s, %s, %s)"
                    ).format(table=sql.Identifier(self.table)),
                    (operation.value, partition_name, status.value, detail),
                )
        except psycopg.Error as exc:
            raise LogWriteError(f"Could not write partition log entry: {exc}") from exc

    def record(
        self,
        operation: LogOperation,
        partition_name: str,
        status: LogStatus,
        detail: Optional[str] = None,
    ) -> bool:
        """
        Append one immutable entry. Returns False if the write failed.

        Failures are logged and swallowed; callers never see them.
        """
        try:
            self._write(operation, partition_name, status, detail)
        except LogWriteError as exc:
            log.warning(
                f"[PARTITION LOG WRITE FAILED] {partition_name}",
                extra={
                    "partition": partition_name,
                    "operation": operation.value,
                    "status": status.value,
                    "error": str(exc),
                },
            )
            return False
        return True

    def recent(self, limit: int = 50) -> List[PartitionLogEntry]:
        """Return the newest ``limit`` entries, newest first."""
        with self._connection_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    sql.SQL(
                        "SELECT id, operation, partition_name, status, detail, created_at "
                        "FROM {table} ORDER BY created_at DESC, id DESC LIMIT %s"
                    ).format(table=sql.Identifier(self.table)),
                    (limit,),
                )
                rows = cur.fetchall()
        return [PartitionLogEntry(**row) for row in rows]


__all__ = ["ConnectionFactory", "PartitionLog"]

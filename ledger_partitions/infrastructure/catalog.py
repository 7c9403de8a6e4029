"""
Partition catalog access for PostgreSQL.

``PartitionCatalog`` is the narrow interface the partitioning services depend on;
``PostgresCatalog`` implements it with psycopg and is the only place in the
package that issues schema or data-movement SQL. Identifiers are always composed
with ``psycopg.sql`` so table names never pass through string formatting.
"""

from __future__ import annotations

import re
from typing import ContextManager, List, Optional, Protocol, Tuple, runtime_checkable

from psycopg import Connection, sql

from ledger_partitions.domain.models import (
    PARTITION_INDEX_COLUMNS,
    TRANSACTION_COLUMNS,
    DateKey,
    Partition,
)
from ledger_partitions.infrastructure.db_factory import statement_timeout

_BOUND_EXPR = re.compile(r"FROM\s*\((?P<start>.+?)\)\s*TO\s*\((?P<end>.+?)\)", re.IGNORECASE)


def _parse_bound_value(raw: str) -> Optional[DateKey]:
    value = raw.strip()
    if value.upper() in ("MINVALUE", "MAXVALUE"):
        return None
    return DateKey.parse(value.strip("'"))


def parse_bound_expression(expression: Optional[str]) -> Tuple[Optional[DateKey], Optional[DateKey]]:
    """
    Parse ``pg_get_expr(relpartbound)`` output into (start, end) keys.

    ``FOR VALUES FROM (MINVALUE) TO ('2025-05-01 00:00:00+00')`` gives
    ``(None, DateKey(2025-05-01))``. ``DEFAULT`` partitions and unparseable
    expressions yield ``(None, None)``.
    """
    if not expression:
        return None, None
    match = _BOUND_EXPR.search(expression)
    if match is None:
        return None, None
    return _parse_bound_value(match.group("start")), _parse_bound_value(match.group("end"))


@runtime_checkable
class PartitionCatalog(Protocol):
    """
    Operations the provisioner, scheduler and migrator need from the datastore.

    ``transaction()`` opens a transaction, or a savepoint when already inside one,
    so a failing nested block rolls back alone. ``statement_timeout()`` bounds
    only the statements issued inside its block.
    """

    def transaction(self) -> ContextManager[object]: ...

    def statement_timeout(self, timeout_ms: int) -> ContextManager[None]: ...

    def table_exists(self, name: str) -> bool: ...

    def is_partitioned(self, name: str) -> bool: ...

    def list_partitions(self, parent: str, with_stats: bool = False) -> List[Partition]: ...

    def create_parent_table(self, name: str) -> None: ...

    def create_range_partition(
        self, parent: str, name: str, start: Optional[DateKey], end: Optional[DateKey]
    ) -> None: ...

    def create_indexes(self, partition: str) -> None: ...

    def detach_partition(self, parent: str, name: str) -> None: ...

    def rename_table(self, name: str, new_name: str) -> None: ...

    def drop_table(self, name: str) -> None: ...

    def lock_table(self, name: str) -> None: ...

    def create_holding_table(self, source: str, holding: str) -> int: ...

    def top_up_holding_table(self, source: str, holding: str) -> int: ...

    def count_rows(self, name: str) -> int: ...

    def max_id(self, name: str) -> int: ...

    def copy_rows(self, source: str, target: str) -> int: ...

    def count_present(self, source: str, target: str) -> int: ...

    def reset_sequence(self, table: str, next_value: int) -> None: ...

    def try_advisory_lock(self, key: int) -> bool: ...

    def advisory_unlock(self, key: int) -> None: ...


def _columns(prefix: Optional[str] = None) -> sql.Composable:
    if prefix:
        return sql.SQL(", ").join(sql.Identifier(prefix, c) for c in TRANSACTION_COLUMNS)
    return sql.SQL(", ").join(sql.Identifier(c) for c in TRANSACTION_COLUMNS)


def _bound(key: Optional[DateKey], unbounded: str) -> sql.Composable:
    if key is None:
        return sql.SQL(unbounded)
    return sql.Literal(key.literal())


_PARENT_DDL = """
CREATE TABLE {name} (
    id SERIAL,
    user_id INTEGER NOT NULL,
    amount NUMERIC(18, 9) NOT NULL,
    type TEXT NOT NULL,
    currency TEXT,
    status TEXT,
    source TEXT,
    category TEXT,
    tx_hash TEXT,
    description TEXT,
    source_user_id INTEGER,
    data TEXT,
    wallet_address TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    PRIMARY KEY (id, created_at)
) PARTITION BY RANGE (created_at)
"""

_LIST_PARTITIONS = """
SELECT c.relname,
       pg_get_expr(c.relpartbound, c.oid),
       {stats}
FROM pg_inherits i
JOIN pg_class p ON p.oid = i.inhparent
JOIN pg_class c ON c.oid = i.inhrelid
JOIN pg_namespace n ON n.oid = p.relnamespace
LEFT JOIN pg_stat_user_tables s ON s.relid = c.oid
WHERE p.relname = %s AND n.nspname = current_schema()
ORDER BY c.relname
"""


class PostgresCatalog:
    """
    ``PartitionCatalog`` backed by a psycopg connection in autocommit mode.
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    @property
    def connection(self) -> Connection:
        return self._conn

    def transaction(self) -> ContextManager[object]:
        return self._conn.transaction()

    def _execute(self, query: sql.Composable | str, params: tuple = ()) -> int:
        with self._conn.cursor() as cur:
            cur.execute(query, params or None)
            return cur.rowcount

    def _scalar(self, query: sql.Composable | str, params: tuple = ()):
        with self._conn.cursor() as cur:
            cur.execute(query, params or None)
            row = cur.fetchone()
        return row[0] if row else None

    def statement_timeout(self, timeout_ms: int) -> ContextManager[None]:
        return statement_timeout(self._conn, timeout_ms)

    def table_exists(self, name: str) -> bool:
        return bool(self._scalar("SELECT to_regclass(%s) IS NOT NULL", (name,)))

    def is_partitioned(self, name: str) -> bool:
        return bool(
            self._scalar(
                """
                SELECT EXISTS (
                    SELECT 1 FROM pg_partitioned_table pt
                    JOIN pg_class c ON c.oid = pt.partrelid
                    JOIN pg_namespace n ON n.oid = c.relnamespace
                    WHERE c.relname = %s AND n.nspname = current_schema()
                )
                """,
                (name,),
            )
        )

    def list_partitions(self, parent: str, with_stats: bool = False) -> List[Partition]:
        stats = (
            "COALESCE(s.n_live_tup, 0), pg_size_pretty(pg_total_relation_size(c.oid))"
            if with_stats
            else "NULL, NULL"
        )
        with self._conn.cursor() as cur:
            cur.execute(_LIST_PARTITIONS.format(stats=stats), (parent,))
            rows = cur.fetchall()

        partitions: List[Partition] = []
        for name, expression, row_count, size in rows:
            start, end = parse_bound_expression(expression)
            partitions.append(
                Partition(
                    name=name,
                    parent=parent,
                    start=start,
                    end=end,
                    kind=Partition.classify(name, parent),
                    row_count=int(row_count) if row_count is not None else None,
                    size=size,
                )
            )
        return partitions

    def create_parent_table(self, name: str) -> None:
        self._execute(sql.SQL(_PARENT_DDL).format(name=sql.Identifier(name)))

    def create_range_partition(
        self, parent: str, name: str, start: Optional[DateKey], end: Optional[DateKey]
    ) -> None:
        self._execute(
            sql.SQL(
                "CREATE TABLE {name} PARTITION OF {parent} FOR VALUES FROM ({start}) TO ({end})"
            ).format(
                name=sql.Identifier(name),
                parent=sql.Identifier(parent),
                start=_bound(start, "MINVALUE"),
                end=_bound(end, "MAXVALUE"),
            )
        )

    def create_indexes(self, partition: str) -> None:
        for column in PARTITION_INDEX_COLUMNS:
            self._execute(
                sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} ({column})").format(
                    index=sql.Identifier(f"{partition}_{column}_idx"),
                    table=sql.Identifier(partition),
                    column=sql.Identifier(column),
                )
            )

    def detach_partition(self, parent: str, name: str) -> None:
        self._execute(
            sql.SQL("ALTER TABLE {parent} DETACH PARTITION {name}").format(
                parent=sql.Identifier(parent), name=sql.Identifier(name)
            )
        )

    def rename_table(self, name: str, new_name: str) -> None:
        self._execute(
            sql.SQL("ALTER TABLE {name} RENAME TO {new_name}").format(
                name=sql.Identifier(name), new_name=sql.Identifier(new_name)
            )
        )
        # Index names follow the table so a recreated partition can reuse them.
        for column in PARTITION_INDEX_COLUMNS:
            self._execute(
                sql.SQL("ALTER INDEX IF EXISTS {old} RENAME TO {new}").format(
                    old=sql.Identifier(f"{name}_{column}_idx"),
                    new=sql.Identifier(f"{new_name}_{column}_idx"),
                )
            )

    def drop_table(self, name: str) -> None:
        self._execute(sql.SQL("DROP TABLE IF EXISTS {name}").format(name=sql.Identifier(name)))

    def lock_table(self, name: str) -> None:
        self._execute(
            sql.SQL("LOCK TABLE {name} IN ACCESS EXCLUSIVE MODE").format(name=sql.Identifier(name))
        )

    def create_holding_table(self, source: str, holding: str) -> int:
        self._execute(
            sql.SQL("CREATE TABLE {holding} AS SELECT {cols} FROM {source}").format(
                holding=sql.Identifier(holding),
                cols=_columns(),
                source=sql.Identifier(source),
            )
        )
        return self.count_rows(holding)

    def top_up_holding_table(self, source: str, holding: str) -> int:
        return self._execute(
            sql.SQL(
                "INSERT INTO {holding} ({cols}) SELECT {f_cols} FROM {source} AS f "
                "WHERE NOT EXISTS (SELECT 1 FROM {holding} AS h "
                "WHERE h.id = f.id AND h.created_at = f.created_at)"
            ).format(
                holding=sql.Identifier(holding),
                cols=_columns(),
                f_cols=_columns("f"),
                source=sql.Identifier(source),
            )
        )

    def count_rows(self, name: str) -> int:
        return int(
            self._scalar(sql.SQL("SELECT count(*) FROM {name}").format(name=sql.Identifier(name)))
            or 0
        )

    def max_id(self, name: str) -> int:
        return int(
            self._scalar(
                sql.SQL("SELECT COALESCE(MAX(id), 0) FROM {name}").format(
                    name=sql.Identifier(name)
                )
            )
            or 0
        )

    def copy_rows(self, source: str, target: str) -> int:
        return self._execute(
            sql.SQL(
                "INSERT INTO {target} ({cols}) SELECT {cols} FROM {source} ON CONFLICT DO NOTHING"
            ).format(
                target=sql.Identifier(target),
                cols=_columns(),
                source=sql.Identifier(source),
            )
        )

    def count_present(self, source: str, target: str) -> int:
        return int(
            self._scalar(
                sql.SQL(
                    "SELECT count(*) FROM {source} AS h WHERE EXISTS ("
                    "SELECT 1 FROM {target} AS t WHERE t.id = h.id AND t.created_at = h.created_at)"
                ).format(source=sql.Identifier(source), target=sql.Identifier(target))
            )
            or 0
        )

    def reset_sequence(self, table: str, next_value: int) -> None:
        self._scalar(
            "SELECT setval(pg_get_serial_sequence(%s, 'id'), %s, false)",
            (table, max(int(next_value), 1)),
        )

    def try_advisory_lock(self, key: int) -> bool:
        return bool(self._scalar("SELECT pg_try_advisory_lock(%s)", (key,)))

    def advisory_unlock(self, key: int) -> None:
        self._scalar("SELECT pg_advisory_unlock(%s)", (key,))


__all__ = ["PartitionCatalog", "PostgresCatalog", "parse_bound_expression"]

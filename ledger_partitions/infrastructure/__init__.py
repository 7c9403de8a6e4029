"""
Infrastructure package for the ledger partition manager.

Centralizes database connectivity (connections, pooling, timeouts) and the
PostgreSQL partition catalog. Keep this layer focused on I/O, decoupled from
the provisioning policy in ``ledger_partitions.partitioning``.
"""

from ledger_partitions.infrastructure.catalog import (
    PartitionCatalog,
    PostgresCatalog,
    parse_bound_expression,
)
from ledger_partitions.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    get_sync_connection,
    statement_timeout,
)

__all__ = [
    "PartitionCatalog",
    "PoolManager",
    "PostgresCatalog",
    "build_dsn",
    "get_sync_connection",
    "parse_bound_expression",
    "statement_timeout",
]

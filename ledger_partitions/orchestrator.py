"""
Wiring for the partition management entrypoints.

Each entrypoint opens one dedicated connection for catalog work (advisory locks
are session-bound), builds the provisioner, scheduler, guard and migrator from a
``ProvisioningConfig`` constructed once, and closes the connection afterwards.
Partition log entries go through the shared pool.

Usage (example from CLI or cron):
    from ledger_partitions.orchestrator import run_sweep

    report = run_sweep()
    print(report.as_dict())
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Generator, List, Optional

from psycopg import Connection

from ledger_partitions.config import ProvisioningConfig, Settings, get_settings
from ledger_partitions.domain.models import DateKey, Partition, PartitionLogEntry
from ledger_partitions.domain.results import (
    HealthStatus,
    MigrationResult,
    ProvisionResult,
    SweepReport,
)
from ledger_partitions.infrastructure.catalog import PartitionCatalog, PostgresCatalog
from ledger_partitions.infrastructure.db_factory import PoolManager, get_sync_connection
from ledger_partitions.partitioning.guard import ProvisioningGuard
from ledger_partitions.partitioning.migrator import SchemaMigrator
from ledger_partitions.partitioning.partition_log import PartitionLog
from ledger_partitions.partitioning.provisioner import PartitionProvisioner
from ledger_partitions.partitioning.scheduler import PartitionScheduler
from ledger_partitions.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class Components:
    config: ProvisioningConfig
    catalog: PartitionCatalog
    partition_log: PartitionLog
    provisioner: PartitionProvisioner
    scheduler: PartitionScheduler
    guard: ProvisioningGuard
    migrator: SchemaMigrator


def build_components(
    catalog: PartitionCatalog,
    partition_log: PartitionLog,
    config: ProvisioningConfig,
) -> Components:
    """Assemble the partitioning services around one catalog."""
    provisioner = PartitionProvisioner(
        catalog,
        partition_log,
        parent=config.parent_table,
        timeout_ms=config.provision_timeout_ms,
    )
    scheduler = PartitionScheduler(catalog, provisioner, partition_log, config)
    guard = ProvisioningGuard(config, catalog, provisioner, scheduler)
    migrator = SchemaMigrator(catalog, provisioner, guard, partition_log, config)
    return Components(
        config=config,
        catalog=catalog,
        partition_log=partition_log,
        provisioner=provisioner,
        scheduler=scheduler,
        guard=guard,
        migrator=migrator,
    )


@contextmanager
def open_session(
    settings: Optional[Settings] = None,
    config: Optional[ProvisioningConfig] = None,
) -> Generator[Components, None, None]:
    """
    Yield wired components over a dedicated connection.
    """
    settings = settings or get_settings()
    config = config or ProvisioningConfig.from_settings(settings)
    conn: Connection = get_sync_connection(settings)
    try:
        partition_log = PartitionLog(partial(PoolManager().sync_connection, settings))
        yield build_components(PostgresCatalog(conn), partition_log, config)
    finally:
        conn.close()


def init_db(settings: Optional[Settings] = None) -> None:
    """Create the partition log table if it is missing."""
    with open_session(settings) as components:
        components.partition_log.ensure_table()
    log.info("[INIT] partition_logs ready")


def run_migration(
    today: Optional[DateKey] = None,
    bypass_errors: bool = False,
    settings: Optional[Settings] = None,
) -> MigrationResult:
    with open_session(settings) as components:
        log.info(
            f"[MIGRATE] mode={components.guard.mode.value}",
            extra={"mode": components.guard.mode.value},
        )
        return components.migrator.migrate(today=today, bypass_errors=bypass_errors)


def run_sweep(today: Optional[DateKey] = None, settings: Optional[Settings] = None) -> SweepReport:
    with open_session(settings) as components:
        log.info(
            f"[SWEEP] mode={components.guard.mode.value}",
            extra={"mode": components.guard.mode.value},
        )
        return components.guard.sweep(today)


def ensure_day(day: DateKey, settings: Optional[Settings] = None) -> ProvisionResult:
    with open_session(settings) as components:
        return components.guard.ensure(day)


def partition_status(settings: Optional[Settings] = None) -> List[Partition]:
    with open_session(settings) as components:
        return components.catalog.list_partitions(components.config.parent_table, with_stats=True)


def recent_logs(limit: int = 50, settings: Optional[Settings] = None) -> List[PartitionLogEntry]:
    with open_session(settings) as components:
        return components.partition_log.recent(limit)


def check_health(today: Optional[DateKey] = None, settings: Optional[Settings] = None) -> HealthStatus:
    with open_session(settings) as components:
        return components.guard.check_health(today)


__all__ = [
    "Components",
    "build_components",
    "check_health",
    "ensure_day",
    "init_db",
    "open_session",
    "partition_status",
    "recent_logs",
    "run_migration",
    "run_sweep",
]

"""
Domain package for the ledger partition manager.

Exports the date key, ledger and catalog models, plus the result contracts the
partitioning services hand back to their callers.
"""

from ledger_partitions.domain.models import (
    DateKey,
    LogOperation,
    LogStatus,
    Partition,
    PartitionKind,
    PartitionLogEntry,
    Transaction,
)
from ledger_partitions.domain.results import (
    HealthStatus,
    MigrationResult,
    MigrationStatus,
    ProvisionResult,
    ProvisionStatus,
    SweepReport,
)

__all__ = [
    "DateKey",
    "HealthStatus",
    "LogOperation",
    "LogStatus",
    "MigrationResult",
    "MigrationStatus",
    "Partition",
    "PartitionKind",
    "PartitionLogEntry",
    "ProvisionResult",
    "ProvisionStatus",
    "SweepReport",
    "Transaction",
]

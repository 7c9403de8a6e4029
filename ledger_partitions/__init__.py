"""
Ledger Partitions - time-based partition management for the transaction ledger.

This package keeps the append-only `transactions` table range-partitioned by day:

- A one-time, resumable migration from a flat table to a partitioned parent
- A recurring look-ahead sweep that provisions daily partitions ahead of need
- An audit trail of every provisioning attempt in `partition_logs`
- A guard layer deciding whether provisioning failures are fatal, ignored, or
  whether provisioning is skipped entirely
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from ledger_partitions.config import GuardMode, ProvisioningConfig, Settings, get_settings
from ledger_partitions.domain.models import DateKey, Partition, PartitionLogEntry, Transaction
from ledger_partitions.domain.results import (
    HealthStatus,
    MigrationResult,
    ProvisionResult,
    SweepReport,
)
from ledger_partitions.exceptions import (
    ConfigurationError,
    ImminentPartitionMissing,
    LogWriteError,
    MigrationError,
    PartitionError,
    ProvisioningError,
    SchedulerBusy,
)
from ledger_partitions.partitioning import (
    PartitionLog,
    PartitionProvisioner,
    PartitionScheduler,
    ProvisioningGuard,
    SchemaMigrator,
)
from ledger_partitions.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "GuardMode",
    "ProvisioningConfig",
    "Settings",
    "get_settings",
    # Domain
    "DateKey",
    "Partition",
    "PartitionLogEntry",
    "Transaction",
    "HealthStatus",
    "MigrationResult",
    "ProvisionResult",
    "SweepReport",
    # Errors
    "ConfigurationError",
    "ImminentPartitionMissing",
    "LogWriteError",
    "MigrationError",
    "PartitionError",
    "ProvisioningError",
    "SchedulerBusy",
    # Services
    "PartitionLog",
    "PartitionProvisioner",
    "PartitionScheduler",
    "ProvisioningGuard",
    "SchemaMigrator",
    # Logging
    "configure_logging",
    "get_logger",
]

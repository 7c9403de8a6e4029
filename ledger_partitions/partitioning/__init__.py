"""
Partitioning package for the ledger partition manager.

Re-exports the partition log, provisioner, scheduler, guard and migrator so
downstream code can import from `ledger_partitions.partitioning` directly.
"""

from ledger_partitions.partitioning.guard import ProvisioningGuard
from ledger_partitions.partitioning.migrator import SchemaMigrator
from ledger_partitions.partitioning.partition_log import PartitionLog
from ledger_partitions.partitioning.provisioner import PartitionProvisioner
from ledger_partitions.partitioning.scheduler import PartitionScheduler

__all__ = [
    "PartitionLog",
    "PartitionProvisioner",
    "PartitionScheduler",
    "ProvisioningGuard",
    "SchemaMigrator",
]

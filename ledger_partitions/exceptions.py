"""
Exception hierarchy for the ledger partition manager.

Every error raised on purpose by this package derives from ``PartitionError`` so
entrypoints can map them to exit codes in one place.
"""

from __future__ import annotations

from typing import Optional


class PartitionError(Exception):
    """Base class for partition management failures."""

    exit_code: int = 1


class ConfigurationError(PartitionError):
    """Invalid or missing look-ahead/backfill settings. Raised at startup."""

    exit_code = 78


class MigrationError(PartitionError):
    """The one-time flat-to-partitioned migration could not complete."""

    exit_code = 70


class ProvisioningError(PartitionError):
    """A partition could not be provisioned and the guard mode treats it as fatal."""

    def __init__(self, message: str, partition_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.partition_name = partition_name


class ImminentPartitionMissing(ProvisioningError):
    """Today or tomorrow has no partition; writes will fail once the date rolls over."""

    exit_code = 2


class SchedulerBusy(PartitionError):
    """Another sweep holds the advisory lock."""

    exit_code = 75


class LogWriteError(PartitionError):
    """A partition log entry could not be written. Never propagated past the log."""


__all__ = [
    "ConfigurationError",
    "ImminentPartitionMissing",
    "LogWriteError",
    "MigrationError",
    "PartitionError",
    "ProvisioningError",
    "SchedulerBusy",
]

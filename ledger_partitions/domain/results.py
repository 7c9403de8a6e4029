"""
Result contracts returned by the provisioner, scheduler, migrator and guard.

Provisioning failures travel as values, not exceptions; whether a failure is
fatal is decided later by the guard layer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ledger_partitions.domain.models import DateKey


class ProvisionStatus(str, enum.Enum):
    CREATED = "created"
    EXISTS = "exists"
    COVERED = "covered"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ProvisionResult:
    """
    Outcome of a single ``ensure`` call.

    ``COVERED`` means an existing catch-all or legacy partition already owns the
    day, so no DDL was issued. ``SKIPPED`` is only produced by the guard when
    provisioning is disabled.
    """

    partition_name: str
    status: ProvisionStatus
    day: Optional[DateKey] = None
    detail: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not ProvisionStatus.FAILED

    @property
    def created(self) -> bool:
        return self.status is ProvisionStatus.CREATED


@dataclass
class SweepReport:
    """
    Aggregate of one scheduler run.
    """

    run_date: DateKey
    future_bound: Optional[DateKey] = None
    future_action: str = "unchanged"
    results: List[ProvisionResult] = field(default_factory=list)
    skipped: bool = False
    error: Optional[str] = None

    def add(self, result: ProvisionResult) -> None:
        self.results.append(result)

    @property
    def created(self) -> List[DateKey]:
        return [r.day for r in self.results if r.status is ProvisionStatus.CREATED and r.day]

    @property
    def succeeded(self) -> List[DateKey]:
        return [r.day for r in self.results if r.ok and r.day]

    @property
    def failed(self) -> Dict[DateKey, str]:
        return {r.day: r.error or "unknown error" for r in self.results if not r.ok and r.day}

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed

    def as_dict(self) -> Dict[str, Any]:
        return {
            "run_date": str(self.run_date),
            "future_bound": str(self.future_bound) if self.future_bound else None,
            "future_action": self.future_action,
            "created": [str(d) for d in self.created],
            "succeeded": [str(d) for d in self.succeeded],
            "failed": {str(d): reason for d, reason in self.failed.items()},
            "skipped": self.skipped,
            "error": self.error,
        }


class MigrationStatus(str, enum.Enum):
    MIGRATED = "migrated"
    ALREADY_PARTITIONED = "already_partitioned"
    FAILED = "failed"


@dataclass(frozen=True)
class MigrationResult:
    status: MigrationStatus
    rows: int = 0
    max_id: int = 0
    resumed: bool = False
    partitions: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not MigrationStatus.FAILED


@dataclass(frozen=True)
class HealthStatus:
    """Coverage of the imminent (today, tomorrow) window."""

    checked_on: DateKey
    missing: List[DateKey] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.missing


__all__ = [
    "HealthStatus",
    "MigrationResult",
    "MigrationStatus",
    "ProvisionResult",
    "ProvisionStatus",
    "SweepReport",
]

"""
Guard / feature-flag layer around the provisioner and scheduler.

The mode is derived once from ``ProvisioningConfig`` and never changes while the
process runs:

- STRICT: provisioning failures propagate to the caller.
- LENIENT: provisioning is attempted, failures are logged and swallowed.
- DISABLED: the provisioner is never invoked; partitions are managed elsewhere.

Only STRICT guarantees that a partition exists before a write needs it.
"""

from __future__ import annotations

from typing import Optional

from ledger_partitions.config import GuardMode, ProvisioningConfig
from ledger_partitions.domain.models import DateKey
from ledger_partitions.domain.results import (
    HealthStatus,
    ProvisionResult,
    ProvisionStatus,
    SweepReport,
)
from ledger_partitions.exceptions import (
    ImminentPartitionMissing,
    ProvisioningError,
    SchedulerBusy,
)
from ledger_partitions.infrastructure.catalog import PartitionCatalog
from ledger_partitions.partitioning.provisioner import PartitionProvisioner
from ledger_partitions.partitioning.scheduler import PartitionScheduler
from ledger_partitions.utils.logging import get_logger

log = get_logger(__name__)


class ProvisioningGuard:
    """
    Applies the configured guard mode to provisioner and scheduler calls.
    """

    def __init__(
        self,
        config: ProvisioningConfig,
        catalog: PartitionCatalog,
        provisioner: PartitionProvisioner,
        scheduler: Optional[PartitionScheduler] = None,
    ) -> None:
        self.config = config
        self.mode = config.mode
        self.catalog = catalog
        self.provisioner = provisioner
        self.scheduler = scheduler

    def ensure(self, day: DateKey) -> ProvisionResult:
        """
        Provision one day according to the guard mode.

        Raises
        ------
        ProvisioningError
            In STRICT mode when the provisioner reports a failure.
        """
        name = day.partition_name(self.config.parent_table)
        if self.mode is GuardMode.DISABLED:
            log.debug(f"[PROVISION SKIPPED] {name}", extra={"partition": name})
            return ProvisionResult(
                partition_name=name,
                status=ProvisionStatus.SKIPPED,
                day=day,
                detail="provisioning disabled",
            )

        result = self.provisioner.ensure(day)
        if result.ok:
            return result
        if self.mode is GuardMode.STRICT:
            raise ProvisioningError(
                f"Could not provision {name}: {result.error}", partition_name=name
            )
        log.warning(
            f"[PROVISION FAILURE IGNORED] {name}",
            extra={"partition": name, "error": result.error, "mode": self.mode.value},
        )
        return result

    def sweep(self, today: Optional[DateKey] = None) -> SweepReport:
        """
        Run the scheduler according to the guard mode.

        In STRICT mode the run is followed by a health check of today and
        tomorrow; other partial failures are reported, not raised.
        """
        today = today or DateKey.today()
        if self.mode is GuardMode.DISABLED:
            log.info(f"[SWEEP SKIPPED] {today}", extra={"mode": self.mode.value})
            return SweepReport(run_date=today, skipped=True)
        if self.scheduler is None:
            raise ValueError("ProvisioningGuard.sweep requires a scheduler")

        try:
            report = self.scheduler.run(today)
        except (ProvisioningError, SchedulerBusy) as exc:
            if self.mode is GuardMode.STRICT:
                raise
            log.warning(
                f"[SWEEP FAILURE IGNORED] {today}",
                extra={"error": str(exc), "mode": self.mode.value},
            )
            return SweepReport(run_date=today, error=str(exc))

        if self.mode is GuardMode.STRICT:
            self.check_health(today)
        return report

    def check_health(self, today: Optional[DateKey] = None) -> HealthStatus:
        """
        Verify that today and tomorrow map to some partition.

        Raises
        ------
        ImminentPartitionMissing
            In STRICT mode when either day is uncovered.
        """
        today = today or DateKey.today()
        partitions = self.catalog.list_partitions(self.config.parent_table)
        missing = [
            day
            for day in (today, today.next())
            if not any(partition.covers(day) for partition in partitions)
        ]
        status = HealthStatus(checked_on=today, missing=missing)
        if status.healthy:
            return status

        names = ", ".join(day.partition_name(self.config.parent_table) for day in missing)
        log.error(
            f"[HEALTH] imminent partitions missing: {names}",
            extra={"missing": [str(day) for day in missing], "mode": self.mode.value},
        )
        if self.mode is GuardMode.STRICT:
            raise ImminentPartitionMissing(
                f"No partition for imminent window: {names}",
                partition_name=missing[0].partition_name(self.config.parent_table),
            )
        return status


__all__ = ["ProvisioningGuard"]

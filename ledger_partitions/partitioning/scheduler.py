"""
Recurring look-ahead sweep.

One run provisions ``[today - 1, today + K]`` and moves the open-ended future
partition so it starts at ``today + K + 1``. Runs are serialized through a
session-level advisory lock.

Every attempt is a short transaction of its own and retries back off between
transactions, so no lock on the parent is held while the scheduler waits. Days
below the future partition are provisioned one by one. Days inside it are
carved out together: the future partition is detached, the days are created in
order, and it is recreated from the first day that could not be created (or
from the horizon), so the key space never has a gap.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, TypeVar

import psycopg
from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_exponential

from ledger_partitions.config import ProvisioningConfig
from ledger_partitions.domain.models import (
    DateKey,
    LogOperation,
    LogStatus,
    Partition,
    PartitionKind,
    future_partition_name,
)
from ledger_partitions.domain.results import ProvisionResult, SweepReport
from ledger_partitions.exceptions import ProvisioningError, SchedulerBusy
from ledger_partitions.infrastructure.catalog import PartitionCatalog
from ledger_partitions.partitioning.partition_log import PartitionLog
from ledger_partitions.partitioning.provisioner import PartitionProvisioner
from ledger_partitions.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class _NothingCarved(Exception):
    """The first day of a carve failed; roll the detach back."""


def _last_attempt(state: RetryCallState):
    return state.outcome.result()


class PartitionScheduler:
    """
    Rolling look-ahead provisioning over a single catalog connection.
    """

    def __init__(
        self,
        catalog: PartitionCatalog,
        provisioner: PartitionProvisioner,
        partition_log: PartitionLog,
        config: ProvisioningConfig,
    ) -> None:
        self.catalog = catalog
        self.provisioner = provisioner
        self.partition_log = partition_log
        self.config = config
        self.parent = config.parent_table
        self.future_name = future_partition_name(self.parent)
        self.stale_name = f"{self.future_name}_stale"

    def window(self, today: DateKey) -> list[DateKey]:
        """Days a run on ``today`` provisions, oldest first."""
        return list(today.shift(-1).range_to(today.shift(self.config.look_ahead_days)))

    def horizon(self, today: DateKey) -> DateKey:
        """Lower bound of the future catch-all after a run on ``today``."""
        return today.shift(self.config.look_ahead_days + 1)

    def _retrying(self, failed: Callable[[T], bool]) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential(
                multiplier=self.config.retry_wait_seconds,
                max=max(self.config.retry_wait_seconds * 8, 0),
            ),
            retry=retry_if_result(failed),
            retry_error_callback=_last_attempt,
            reraise=False,
        )

    def _ensure_with_retry(self, day: DateKey) -> ProvisionResult:
        return self._retrying(lambda result: not result.ok)(self.provisioner.ensure, day)

    def _current_future(self) -> Optional[Partition]:
        for partition in self.catalog.list_partitions(self.parent):
            if partition.kind is PartitionKind.FUTURE:
                return partition
        return None

    def _create_future(self, start: DateKey) -> None:
        result = self.provisioner.ensure_catch_all(PartitionKind.FUTURE, start)
        if not result.ok:
            raise ProvisioningError(
                f"Could not create {self.future_name} from {start}: {result.error}",
                partition_name=self.future_name,
            )

    def _carve(
        self, horizon: DateKey, outcomes: Dict[DateKey, ProvisionResult]
    ) -> Optional[ProvisionResult]:
        """
        One attempt at moving the future catch-all up to ``horizon``.

        Returns the result of the day that stopped the carve, or None when the
        future partition now starts at ``horizon`` (or already did).
        """
        future = self._current_future()
        if future is None or future.start is None or future.start >= horizon:
            return None

        failure: Optional[ProvisionResult] = None
        try:
            with self.catalog.transaction():
                self.catalog.detach_partition(self.parent, self.future_name)
                self.catalog.rename_table(self.future_name, self.stale_name)
                bound = horizon
                for day in future.start.range_to(horizon.shift(-1)):
                    result = self.provisioner.ensure(day)
                    outcomes[day] = result
                    if not result.ok:
                        failure, bound = result, day
                        break
                if bound == future.start:
                    raise _NothingCarved()

                self._create_future(bound)
                moved = self.catalog.copy_rows(self.stale_name, self.parent)
                self.catalog.drop_table(self.stale_name)
        except _NothingCarved:
            return failure

        log.info(
            f"[FUTURE REBOUND] {self.future_name} {future.start} -> {bound}, moved {moved} rows",
            extra={"partition": self.future_name, "bound": str(bound), "rows": moved},
        )
        return failure

    def _rebound_future(
        self, horizon: DateKey, report: SweepReport, outcomes: Dict[DateKey, ProvisionResult]
    ) -> None:
        future = self._current_future()
        if future is None:
            self._create_future(horizon)
            report.future_action = "created"
            return
        if future.start is not None and future.start >= horizon:
            report.future_action = "unchanged"
            report.future_bound = future.start
            return

        self._retrying(lambda failure: failure is not None)(self._carve, horizon, outcomes)
        current = self._current_future()
        report.future_bound = current.start if current else None
        report.future_action = "rebounded" if report.future_bound != future.start else "unchanged"

    def run(self, today: Optional[DateKey] = None) -> SweepReport:
        """
        Execute one sweep.

        Days the future catch-all could not be moved past stay covered by it and
        are reported as covered; the day that stopped it is reported as failed.

        Raises
        ------
        SchedulerBusy
            Another run holds the advisory lock.
        ProvisioningError
            The future catch-all could not be recreated; the carve was rolled back
            and the previous future partition is still attached.
        """
        today = today or DateKey.today()
        horizon = self.horizon(today)
        report = SweepReport(run_date=today, future_bound=horizon)
        outcomes: Dict[DateKey, ProvisionResult] = {}

        if not self.catalog.try_advisory_lock(self.config.advisory_lock_key):
            raise SchedulerBusy(
                f"Advisory lock {self.config.advisory_lock_key} is held by another sweep"
            )

        log.info(
            f"[SWEEP START] {today} look_ahead={self.config.look_ahead_days}",
            extra={"run_date": str(today), "horizon": str(horizon)},
        )
        try:
            future = self._current_future()
            below_future = [
                day
                for day in self.window(today)
                if future is None or future.start is None or day < future.start
            ]
            for day in below_future:
                outcomes[day] = self._ensure_with_retry(day)

            self._rebound_future(horizon, report, outcomes)

            for day in self.window(today):
                if day not in outcomes:
                    outcomes[day] = self.provisioner.ensure(day)
        except (psycopg.Error, ProvisioningError) as exc:
            self.partition_log.record(
                LogOperation.ERROR,
                self.future_name,
                LogStatus.FAILURE,
                f"future rebound for {today} rolled back: {exc}",
            )
            log.error(
                f"[SWEEP FAILED] {today}",
                extra={"run_date": str(today), "error": str(exc)},
            )
            if isinstance(exc, ProvisioningError):
                raise
            raise ProvisioningError(
                f"Sweep for {today} rolled back: {exc}", partition_name=self.future_name
            ) from exc
        finally:
            self.catalog.advisory_unlock(self.config.advisory_lock_key)

        for day in sorted(outcomes):
            report.add(outcomes[day])

        failed = report.failed
        log.info(
            f"[SWEEP COMPLETE] {today}",
            extra={
                "run_date": str(today),
                "created": len(report.created),
                "failed": len(failed),
                "future_action": report.future_action,
            },
        )
        for day, reason in failed.items():
            log.error(
                f"[SWEEP DAY FAILED] {day}",
                extra={"partition": day.partition_name(self.parent), "error": reason},
            )
        return report


__all__ = ["PartitionScheduler"]

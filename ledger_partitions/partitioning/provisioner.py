"""
Partition provisioner: makes sure a single date-range partition exists.

``ensure(day)`` never raises for a provisioning failure. It returns a
``ProvisionResult`` and writes exactly one partition log entry per call; the
guard layer decides what a failure means.
"""

from __future__ import annotations

from typing import Optional

import psycopg

from ledger_partitions.domain.models import (
    DateKey,
    LogOperation,
    LogStatus,
    Partition,
    PartitionKind,
    default_partition_name,
    future_partition_name,
)
from ledger_partitions.domain.results import ProvisionResult, ProvisionStatus
from ledger_partitions.infrastructure.catalog import PartitionCatalog
from ledger_partitions.partitioning.partition_log import PartitionLog
from ledger_partitions.utils.logging import get_logger

log = get_logger(__name__)


def _describe_range(start: Optional[DateKey], end: Optional[DateKey]) -> str:
    lower = start.literal() if start else "MINVALUE"
    upper = end.literal() if end else "MAXVALUE"
    return f"[{lower}, {upper})"


class PartitionProvisioner:
    """
    Creates daily range partitions (and the two catch-alls) of the parent table.

    Parameters
    ----------
    catalog : PartitionCatalog
        Catalog bound to the connection the caller is working on.
    partition_log : PartitionLog
        Audit sink; written after every attempt.
    parent : str
        Partitioned parent table.
    timeout_ms : int
        Statement timeout applied to each attempt. 0 disables it.
    """

    def __init__(
        self,
        catalog: PartitionCatalog,
        partition_log: PartitionLog,
        parent: str = "transactions",
        timeout_ms: int = 5_000,
    ) -> None:
        self.catalog = catalog
        self.partition_log = partition_log
        self.parent = parent
        self.timeout_ms = timeout_ms

    def _covering_partition(self, day: DateKey) -> Optional[Partition]:
        for partition in self.catalog.list_partitions(self.parent):
            if partition.covers(day):
                return partition
        return None

    def ensure(self, day: DateKey) -> ProvisionResult:
        """
        Guarantee a partition covering ``[day, day + 1)`` exists.

        A day already inside another partition (the default or future catch-all,
        or a partition of an older scheme) is reported as ``COVERED``. Carving a
        day out of the future catch-all is the scheduler's job.
        """
        name = day.partition_name(self.parent)
        target = _describe_range(day, day.next())

        try:
            with self.catalog.transaction(), self.catalog.statement_timeout(self.timeout_ms):
                if self.catalog.table_exists(name):
                    result = ProvisionResult(
                        partition_name=name,
                        status=ProvisionStatus.EXISTS,
                        day=day,
                        detail=f"{target} already exists",
                    )
                else:
                    owner = self._covering_partition(day)
                    if owner is not None:
                        result = ProvisionResult(
                            partition_name=name,
                            status=ProvisionStatus.COVERED,
                            day=day,
                            detail=f"{target} covered by {owner.name}",
                        )
                    else:
                        self.catalog.create_range_partition(self.parent, name, day, day.next())
                        self.catalog.create_indexes(name)
                        result = ProvisionResult(
                            partition_name=name,
                            status=ProvisionStatus.CREATED,
                            day=day,
                            detail=f"{target} created",
                        )
        except psycopg.Error as exc:
            result = ProvisionResult(
                partition_name=name,
                status=ProvisionStatus.FAILED,
                day=day,
                detail=f"{target} failed",
                error=str(exc).strip() or type(exc).__name__,
            )

        self._record(result)
        return result

    def ensure_catch_all(self, kind: PartitionKind, bound: DateKey) -> ProvisionResult:
        """
        Create the ``default`` (MINVALUE, bound) or ``future`` [bound, MAXVALUE) partition.

        An existing catch-all is left as is, whatever its bound.
        """
        if kind is PartitionKind.DEFAULT:
            name, start, end = default_partition_name(self.parent), None, bound
        elif kind is PartitionKind.FUTURE:
            name, start, end = future_partition_name(self.parent), bound, None
        else:
            raise ValueError(f"Not a catch-all partition kind: {kind}")

        target = _describe_range(start, end)
        try:
            with self.catalog.transaction(), self.catalog.statement_timeout(self.timeout_ms):
                if self.catalog.table_exists(name):
                    result = ProvisionResult(
                        partition_name=name,
                        status=ProvisionStatus.EXISTS,
                        detail=f"{name} already exists",
                    )
                else:
                    self.catalog.create_range_partition(self.parent, name, start, end)
                    self.catalog.create_indexes(name)
                    result = ProvisionResult(
                        partition_name=name,
                        status=ProvisionStatus.CREATED,
                        detail=f"{target} created",
                    )
        except psycopg.Error as exc:
            result = ProvisionResult(
                partition_name=name,
                status=ProvisionStatus.FAILED,
                detail=f"{target} failed",
                error=str(exc).strip() or type(exc).__name__,
            )

        self._record(result)
        return result

    def _record(self, result: ProvisionResult) -> None:
        if result.ok:
            log.info(
                f"[PROVISION {result.status.value.upper()}] {result.partition_name}",
                extra={"partition": result.partition_name, "detail": result.detail},
            )
            self.partition_log.record(
                LogOperation.CREATE, result.partition_name, LogStatus.SUCCESS, result.detail
            )
        else:
            log.warning(
                f"[PROVISION FAILED] {result.partition_name}",
                extra={"partition": result.partition_name, "error": result.error},
            )
            self.partition_log.record(
                LogOperation.CREATE,
                result.partition_name,
                LogStatus.FAILURE,
                f"{result.detail}: {result.error}",
            )


__all__ = ["PartitionProvisioner"]

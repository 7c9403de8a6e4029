"""
One-time migration of the flat ``transactions`` table into a range-partitioned
parent.

The migration is split in two transactions:

1. Copy every row into a holding table and commit. From here on the holding
   table is the recovery point; it is never overwritten.
2. Drop the flat table, build the partitioned parent with its default catch-all,
   the initial daily window and the future catch-all, route the held rows back
   through the parent, reset the id sequence and drop the holding table.

If step 2 fails it rolls back as a unit and the holding table survives, so the
next run resumes from re-insertion. Running the migration against an already
partitioned parent with no holding table is a no-op.
"""

from __future__ import annotations

from typing import List, Optional

import psycopg

from ledger_partitions.config import GuardMode, ProvisioningConfig
from ledger_partitions.domain.models import DateKey, LogOperation, LogStatus, PartitionKind
from ledger_partitions.domain.results import MigrationResult, MigrationStatus, ProvisionResult
from ledger_partitions.exceptions import MigrationError, ProvisioningError
from ledger_partitions.infrastructure.catalog import PartitionCatalog
from ledger_partitions.partitioning.guard import ProvisioningGuard
from ledger_partitions.partitioning.partition_log import PartitionLog
from ledger_partitions.partitioning.provisioner import PartitionProvisioner
from ledger_partitions.utils.logging import get_logger

log = get_logger(__name__)


class SchemaMigrator:
    """
    Idempotent flat-to-partitioned migration of the ledger table.
    """

    def __init__(
        self,
        catalog: PartitionCatalog,
        provisioner: PartitionProvisioner,
        guard: ProvisioningGuard,
        partition_log: PartitionLog,
        config: ProvisioningConfig,
    ) -> None:
        self.catalog = catalog
        self.provisioner = provisioner
        self.guard = guard
        self.partition_log = partition_log
        self.config = config
        self.parent = config.parent_table
        self.holding = f"{self.parent}_migration_hold"

    def _require(self, result: ProvisionResult) -> None:
        if not result.ok:
            raise MigrationError(f"Could not create {result.partition_name}: {result.error}")

    def _hold_rows(self) -> bool:
        """Step 2: copy rows into the holding table unless one is already there."""
        if self.catalog.table_exists(self.holding):
            log.info(
                f"[MIGRATION RESUME] holding table {self.holding} found; not re-copying",
                extra={"holding": self.holding},
            )
            return True
        if not self.catalog.table_exists(self.parent):
            raise MigrationError(f"Table {self.parent} does not exist; nothing to migrate")

        with self.catalog.transaction():
            held = self.catalog.create_holding_table(self.parent, self.holding)
        log.info(
            f"[MIGRATION] copied {held} rows into {self.holding}",
            extra={"holding": self.holding, "rows": held},
        )
        return False

    def _build_partitions(self, today: DateKey) -> List[str]:
        """Steps 5-8: parent, default catch-all, daily window, future catch-all."""
        created: List[str] = []
        first = today.shift(-self.config.initial_backfill_days)
        last = today.shift(self.config.look_ahead_days)

        if not self.catalog.table_exists(self.parent):
            self.catalog.create_parent_table(self.parent)
            log.info(f"[MIGRATION] created partitioned parent {self.parent}")

        default = self.provisioner.ensure_catch_all(PartitionKind.DEFAULT, first)
        self._require(default)
        created.append(default.partition_name)

        if self.guard.mode is GuardMode.DISABLED:
            # Without daily partitions the future catch-all starts where the
            # default one ends, so the key space stays gap-free.
            future_start = first
        else:
            # A day that could not be created is left to the future catch-all,
            # together with the rest of the window after it.
            future_start = last.next()
            for day in first.range_to(last):
                result = self.guard.ensure(day)
                if not result.ok:
                    future_start = day
                    break
                created.append(result.partition_name)

        future = self.provisioner.ensure_catch_all(PartitionKind.FUTURE, future_start)
        self._require(future)
        created.append(future.partition_name)
        return created

    def _restructure(self, today: DateKey) -> MigrationResult:
        with self.catalog.transaction():
            # Step 4: writes that reached the flat table after the copy are folded
            # into the holding table before the flat table goes away.
            if self.catalog.table_exists(self.parent) and not self.catalog.is_partitioned(
                self.parent
            ):
                self.catalog.lock_table(self.parent)
                late = self.catalog.top_up_holding_table(self.parent, self.holding)
                if late:
                    log.info(
                        f"[MIGRATION] {late} late rows added to {self.holding}",
                        extra={"rows": late},
                    )
                self.catalog.drop_table(self.parent)

            # Step 3
            rows = self.catalog.count_rows(self.holding)
            max_id = self.catalog.max_id(self.holding)

            partitions = self._build_partitions(today)

            # Step 9: the engine routes each row to its partition.
            inserted = self.catalog.copy_rows(self.holding, self.parent)
            present = self.catalog.count_present(self.holding, self.parent)
            if present != rows:
                raise MigrationError(
                    f"Re-insertion mismatch: {present} of {rows} held rows present in {self.parent}"
                )

            # Steps 10-11
            self.catalog.reset_sequence(self.parent, max_id + 1)
            self.catalog.drop_table(self.holding)

        log.info(
            f"[MIGRATION] re-inserted {inserted} rows, sequence restarts at {max_id + 1}",
            extra={"rows": rows, "inserted": inserted, "max_id": max_id},
        )
        return MigrationResult(
            status=MigrationStatus.MIGRATED,
            rows=rows,
            max_id=max_id,
            partitions=partitions,
        )

    def migrate(self, today: Optional[DateKey] = None, bypass_errors: bool = False) -> MigrationResult:
        """
        Run (or resume) the migration.

        Parameters
        ----------
        today : DateKey | None
            Day the initial window is anchored on. Defaults to the current UTC day.
        bypass_errors : bool
            Return a FAILED result instead of raising ``MigrationError``.
        """
        today = today or DateKey.today()
        log.info(f"[MIGRATION START] {self.parent}", extra={"run_date": str(today)})

        holding_exists = self.catalog.table_exists(self.holding)
        if not holding_exists and self.catalog.is_partitioned(self.parent):
            log.info(f"[MIGRATION SKIPPED] {self.parent} is already partitioned")
            return MigrationResult(status=MigrationStatus.ALREADY_PARTITIONED)

        try:
            resumed = self._hold_rows()
            result = self._restructure(today)
        except (psycopg.Error, ProvisioningError, MigrationError) as exc:
            detail = f"migration failed, {self.holding} kept for resume: {exc}"
            log.error(f"[MIGRATION FAILED] {self.parent}", extra={"error": str(exc)})
            self.partition_log.record(LogOperation.MIGRATE, self.parent, LogStatus.FAILURE, detail)
            if bypass_errors:
                return MigrationResult(status=MigrationStatus.FAILED, error=str(exc))
            if isinstance(exc, MigrationError):
                raise
            raise MigrationError(detail) from exc

        result = MigrationResult(
            status=result.status,
            rows=result.rows,
            max_id=result.max_id,
            resumed=resumed,
            partitions=result.partitions,
        )
        self.partition_log.record(
            LogOperation.MIGRATE,
            self.parent,
            LogStatus.SUCCESS,
            f"{result.rows} rows migrated, max id {result.max_id}, resumed={resumed}",
        )
        log.info(
            f"[MIGRATION COMPLETE] {self.parent}",
            extra={"rows": result.rows, "partitions": len(result.partitions)},
        )
        return result


__all__ = ["SchemaMigrator"]

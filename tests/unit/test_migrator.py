from __future__ import annotations

import pytest

from ledger_partitions.domain.models import LogOperation, LogStatus
from ledger_partitions.domain.results import MigrationStatus
from ledger_partitions.exceptions import MigrationError
from tests.fakes import assert_contiguous_cover, make_row

PARENT = "transactions"
HOLDING = "transactions_migration_hold"


@pytest.fixture
def flat_rows():
    return [
        make_row(1, "2025-01-01T09:00:00+00:00"),
        make_row(2, "2025-04-30T23:59:59+00:00", type="farming_reward"),
    ]


def _keys(rows):
    return sorted((r["id"], r["created_at"]) for r in rows)


def test_migrates_flat_table_into_partitions(catalog, partition_log, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)
    migrator = make_components(look_ahead_days=2).migrator

    result = migrator.migrate(today=today)

    assert result.status is MigrationStatus.MIGRATED
    assert result.rows == 2
    assert result.max_id == 2
    assert not result.resumed
    assert catalog.is_partitioned(PARENT)
    assert catalog.partition_names(PARENT) == [
        "transactions_2025_05_01",
        "transactions_2025_05_02",
        "transactions_2025_05_03",
        "transactions_default",
        "transactions_future",
    ]
    assert result.partitions == [
        "transactions_default",
        "transactions_2025_05_01",
        "transactions_2025_05_02",
        "transactions_2025_05_03",
        "transactions_future",
    ]
    default = catalog.partition("transactions_default")
    future = catalog.partition("transactions_future")
    assert (default.start, default.end) == (None, today)
    assert (future.start, future.end) == (today.shift(3), None)
    assert [r["id"] for r in default.rows] == [1, 2]
    assert HOLDING not in catalog.tables

    migrations = partition_log.matching(LogOperation.MIGRATE)
    assert [e.status for e in migrations] == [LogStatus.SUCCESS]
    assert "2 rows" in migrations[0].detail


def test_migration_preserves_rows_and_advances_sequence(catalog, make_components, today) -> None:
    rows = [make_row(i, f"2025-04-{i:02d}T12:00:00+00:00") for i in range(1, 29)]
    rows.append(make_row(500, "2025-05-02T01:00:00+00:00"))
    catalog.add_flat_table(PARENT, rows)

    result = make_components(look_ahead_days=3, initial_backfill_days=7).migrator.migrate(today=today)

    assert _keys(catalog.rows_of(PARENT)) == _keys(rows)
    assert catalog.sequences[PARENT] == 501
    assert result.max_id == 500
    assert len(catalog.partition("transactions_2025_04_24").rows) == 1
    assert [r["id"] for r in catalog.partition("transactions_2025_05_02").rows] == [500]
    assert catalog.partition("transactions_default").end == today.shift(-7)


def test_migration_of_empty_table_starts_sequence_at_one(catalog, make_components, today) -> None:
    catalog.add_flat_table(PARENT, [])

    result = make_components().migrator.migrate(today=today)

    assert result.rows == 0
    assert catalog.sequences[PARENT] == 1


def test_rerun_on_partitioned_table_is_a_noop(catalog, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)
    migrator = make_components().migrator
    migrator.migrate(today=today)
    catalog.ddl.clear()

    result = migrator.migrate(today=today.shift(10))

    assert result.status is MigrationStatus.ALREADY_PARTITIONED
    assert catalog.ddl == []
    assert _keys(catalog.rows_of(PARENT)) == _keys(flat_rows)


def test_failure_keeps_holding_table_and_resume_completes(
    catalog, partition_log, make_components, flat_rows, today
) -> None:
    catalog.add_flat_table(PARENT, flat_rows)
    migrator = make_components().migrator
    catalog.fail_create("transactions_future")

    with pytest.raises(MigrationError, match="transactions_future"):
        migrator.migrate(today=today)

    assert HOLDING in catalog.tables
    assert _keys(catalog.rows_of(HOLDING)) == _keys(flat_rows)
    assert not catalog.is_partitioned(PARENT)
    failures = partition_log.matching(LogOperation.MIGRATE, LogStatus.FAILURE)
    assert len(failures) == 1
    assert HOLDING in failures[0].detail

    catalog.clear_failures()
    result = migrator.migrate(today=today)

    assert result.status is MigrationStatus.MIGRATED
    assert result.resumed
    assert _keys(catalog.rows_of(PARENT)) == _keys(flat_rows)
    assert HOLDING not in catalog.tables


def test_resume_folds_in_rows_written_after_the_copy(catalog, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)
    catalog.create_holding_table(PARENT, HOLDING)
    late = make_row(3, "2025-05-01T00:00:01+00:00")
    catalog.insert(PARENT, late)

    result = make_components().migrator.migrate(today=today)

    assert result.resumed
    assert result.rows == 3
    assert _keys(catalog.rows_of(PARENT)) == _keys(flat_rows + [late])
    assert catalog.locked == [PARENT]


def test_resume_after_flat_table_was_dropped(catalog, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(HOLDING, flat_rows)

    result = make_components().migrator.migrate(today=today)

    assert result.resumed
    assert _keys(catalog.rows_of(PARENT)) == _keys(flat_rows)


def test_resume_never_duplicates_rows_already_reinserted(catalog, make_components, flat_rows, today) -> None:
    # A crash after re-insertion but before the holding table was dropped.
    catalog.add_partitioned(PARENT, default_end=today, future_start=today.shift(6))
    for row in flat_rows:
        catalog.insert(PARENT, row)
    catalog.add_flat_table(HOLDING, flat_rows)

    result = make_components().migrator.migrate(today=today)

    assert result.status is MigrationStatus.MIGRATED
    assert len(catalog.rows_of(PARENT)) == 2
    assert HOLDING not in catalog.tables


def test_bypass_errors_returns_failed_result(catalog, partition_log, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)
    catalog.fail_create("transactions_default")

    result = make_components().migrator.migrate(today=today, bypass_errors=True)

    assert result.status is MigrationStatus.FAILED
    assert not result.ok
    assert "transactions_default" in result.error
    assert HOLDING in catalog.tables
    assert partition_log.matching(LogOperation.MIGRATE, LogStatus.FAILURE)


def test_missing_table_raises(catalog, make_components, today) -> None:
    with pytest.raises(MigrationError, match="does not exist"):
        make_components().migrator.migrate(today=today)


def test_disabled_mode_builds_only_catch_alls(catalog, partition_log, make_components, today) -> None:
    rows = [make_row(1, "2025-04-01T00:00:00+00:00"), make_row(2, "2025-05-01T06:00:00+00:00")]
    catalog.add_flat_table(PARENT, rows)

    result = make_components(skip_provisioning=True).migrator.migrate(today=today)

    assert result.partitions == ["transactions_default", "transactions_future"]
    assert catalog.partition("transactions_future").start == today
    assert [r["id"] for r in catalog.partition("transactions_future").rows] == [2]
    daily = [e for e in partition_log.entries if e.partition_name.startswith("transactions_2025")]
    assert daily == []


def test_lenient_mode_tolerates_failed_window_day(catalog, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)
    catalog.fail_create("transactions_2025_05_02")

    result = make_components(ignore_provisioning_errors=True, look_ahead_days=2).migrator.migrate(today=today)

    assert result.status is MigrationStatus.MIGRATED
    assert "transactions_2025_05_02" not in result.partitions
    assert "transactions_2025_05_02" not in catalog.tables
    assert "transactions_2025_05_03" not in catalog.tables
    assert catalog.partition("transactions_future").start == today.next()
    assert_contiguous_cover(catalog.list_partitions(PARENT))

    catalog.insert(PARENT, make_row(3, "2025-05-02T12:00:00+00:00"))
    assert [r["id"] for r in catalog.partition("transactions_future").rows] == [3]


def test_strict_mode_aborts_on_failed_window_day(catalog, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)
    catalog.fail_create("transactions_2025_05_02")

    with pytest.raises(MigrationError, match="transactions_2025_05_02"):
        make_components(look_ahead_days=2).migrator.migrate(today=today)

    assert HOLDING in catalog.tables
    assert not catalog.is_partitioned(PARENT)


def test_reinsertion_runs_without_provisioning_timeout(catalog, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)

    make_components(look_ahead_days=2, provision_timeout_ms=5_000).migrator.migrate(today=today)

    assert catalog.timeouts == [5_000] * 5
    assert catalog.active_timeout is None
    assert catalog.data_move_timeouts == [None, None]


def test_migrated_partitions_tile_the_whole_key_space(catalog, make_components, flat_rows, today) -> None:
    catalog.add_flat_table(PARENT, flat_rows)

    make_components(look_ahead_days=2, initial_backfill_days=3).migrator.migrate(today=today)

    assert_contiguous_cover(catalog.list_partitions(PARENT))

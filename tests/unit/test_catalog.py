from __future__ import annotations

from datetime import date
from typing import Any

import pytest

from ledger_partitions.config import Settings
from ledger_partitions.domain.models import DateKey, PartitionKind
from ledger_partitions.infrastructure import db_factory
from ledger_partitions.infrastructure.catalog import (
    PartitionCatalog,
    PostgresCatalog,
    parse_bound_expression,
)
from tests.fakes import InMemoryCatalog

MAY_1 = DateKey(date(2025, 5, 1))


class _FakeCursor:
    def __init__(self, rows: list[tuple[Any, ...]] | None = None) -> None:
        self.rows = rows or []
        self.executed: list[tuple[Any, Any]] = []
        self.rowcount = 0

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def execute(self, query: Any, params: Any = None) -> None:
        self.executed.append((query, params))

    def fetchall(self) -> list[tuple[Any, ...]]:
        return self.rows

    def fetchone(self) -> tuple[Any, ...] | None:
        return self.rows[0] if self.rows else None


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor

    def cursor(self) -> _FakeCursor:
        return self._cursor


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        (
            "FOR VALUES FROM ('2025-05-01 00:00:00+00') TO ('2025-05-02 00:00:00+00')",
            (MAY_1, MAY_1.next()),
        ),
        ("FOR VALUES FROM (MINVALUE) TO ('2025-05-01 00:00:00+00')", (None, MAY_1)),
        ("FOR VALUES FROM ('2025-05-01 00:00:00+00') TO (MAXVALUE)", (MAY_1, None)),
        ("DEFAULT", (None, None)),
        (None, (None, None)),
    ],
)
def test_parse_bound_expression(expression, expected) -> None:
    assert parse_bound_expression(expression) == expected


def test_list_partitions_maps_catalog_rows() -> None:
    cursor = _FakeCursor(
        rows=[
            ("transactions_2025_05_01", "FOR VALUES FROM ('2025-05-01 00:00:00+00') TO ('2025-05-02 00:00:00+00')", 12, "16 kB"),
            ("transactions_default", "FOR VALUES FROM (MINVALUE) TO ('2025-05-01 00:00:00+00')", 3, "8192 bytes"),
            ("transactions_future", "FOR VALUES FROM ('2025-05-04 00:00:00+00') TO (MAXVALUE)", None, None),
        ]
    )

    partitions = PostgresCatalog(_FakeConnection(cursor)).list_partitions("transactions", with_stats=True)

    assert [p.kind for p in partitions] == [PartitionKind.DAILY, PartitionKind.DEFAULT, PartitionKind.FUTURE]
    assert partitions[0].row_count == 12
    assert partitions[0].size == "16 kB"
    assert partitions[1].end == MAY_1
    assert partitions[2].start == MAY_1.shift(3)
    assert partitions[2].row_count is None
    assert cursor.executed[0][1] == ("transactions",)
    assert "n_live_tup" in cursor.executed[0][0]


def test_list_partitions_without_stats_skips_size_lookup() -> None:
    cursor = _FakeCursor(rows=[])

    PostgresCatalog(_FakeConnection(cursor)).list_partitions("transactions")

    assert "pg_total_relation_size" not in cursor.executed[0][0]


def test_statement_timeout_is_skipped_when_disabled() -> None:
    cursor = _FakeCursor()

    with db_factory.statement_timeout(_FakeConnection(cursor), 0):
        pass

    assert cursor.executed == []


def test_statement_timeout_restores_previous_value_on_exit() -> None:
    cursor = _FakeCursor(rows=[("30s",)])

    with PostgresCatalog(_FakeConnection(cursor)).statement_timeout(5_000):
        assert cursor.executed[-1][1] == ("5000",)
        inside = len(cursor.executed)

    assert len(cursor.executed) == inside + 1
    assert "set_config('statement_timeout'" in cursor.executed[-1][0]
    assert cursor.executed[-1][1] == ("30s",)


def test_statement_timeout_is_left_to_rollback_on_error() -> None:
    cursor = _FakeCursor(rows=[("0",)])

    with pytest.raises(RuntimeError):
        with db_factory.statement_timeout(_FakeConnection(cursor), 5_000):
            raise RuntimeError("canceling statement due to statement timeout")

    assert len(cursor.executed) == 2


def test_reset_sequence_never_goes_below_one() -> None:
    cursor = _FakeCursor(rows=[(1,)])

    PostgresCatalog(_FakeConnection(cursor)).reset_sequence("transactions", 0)

    assert cursor.executed[0][1] == ("transactions", 1)


def test_catalogs_satisfy_protocol() -> None:
    assert isinstance(PostgresCatalog(_FakeConnection(_FakeCursor())), PartitionCatalog)
    assert isinstance(InMemoryCatalog(), PartitionCatalog)


def test_build_dsn_uses_settings(monkeypatch) -> None:
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_NAME", "ledger_test")

    dsn = db_factory.build_dsn()

    assert dsn.startswith("postgresql://")
    assert "@db.internal:" in dsn
    assert dsn.endswith("/ledger_test")


def test_connection_options_pin_utc_and_optional_timeout(monkeypatch) -> None:
    monkeypatch.setenv("DB_STATEMENT_TIMEOUT_MS", "30000")

    kwargs = db_factory._connection_kwargs()

    assert kwargs["autocommit"] is True
    assert kwargs["options"] == "-c timezone=UTC -c statement_timeout=30000"


def test_explicit_settings_choose_the_database(monkeypatch) -> None:
    monkeypatch.setenv("DB_HOST", "env-host")
    settings = Settings(DB_HOST="ledger-replica", DB_NAME="ledger_archive", DB_STATEMENT_TIMEOUT_MS=0)

    assert "@ledger-replica:" in db_factory.build_dsn(settings)
    assert db_factory.build_dsn(settings).endswith("/ledger_archive")
    assert db_factory._connection_kwargs(settings)["options"] == "-c timezone=UTC"

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ledger_partitions.domain.models import (
    DateKey,
    Partition,
    PartitionKind,
    Transaction,
    default_partition_name,
    future_partition_name,
)

PARENT = "transactions"


def test_date_key_formats_partition_names_with_zero_padding() -> None:
    assert DateKey(date(2025, 5, 1)).partition_name(PARENT) == "transactions_2025_05_01"
    assert DateKey(date(2025, 12, 31)).partition_name("ledger") == "ledger_2025_12_31"


def test_date_key_parses_partition_names_back() -> None:
    key = DateKey.from_partition_name("transactions_2025_05_01", PARENT)

    assert key == DateKey(date(2025, 5, 1))
    assert DateKey.from_partition_name("transactions_default", PARENT) is None
    assert DateKey.from_partition_name("transactions_2025_02_30", PARENT) is None
    assert DateKey.from_partition_name("other_2025_05_01", PARENT) is None


def test_date_key_parse_ignores_time_component() -> None:
    assert DateKey.parse("2025-05-01") == DateKey(date(2025, 5, 1))
    assert DateKey.parse(" 2025-05-01T13:45:00+00:00") == DateKey(date(2025, 5, 1))
    with pytest.raises(ValueError):
        DateKey.parse("05/01/2025")


def test_date_key_today_uses_utc_day() -> None:
    evening_in_brazil = datetime(2025, 5, 1, 23, 30, tzinfo=timezone(timedelta(hours=-3)))

    assert DateKey.today(evening_in_brazil) == DateKey(date(2025, 5, 2))


def test_date_key_arithmetic_and_inclusive_range() -> None:
    start = DateKey(date(2025, 2, 27))

    days = list(start.range_to(start.shift(3)))

    assert [str(d) for d in days] == ["2025-02-27", "2025-02-28", "2025-03-01", "2025-03-02"]
    assert start.next() == DateKey(date(2025, 2, 28))
    assert start.shift(-1) < start
    assert list(start.range_to(start.shift(-1))) == []


def test_partition_kind_classification() -> None:
    assert Partition.classify(default_partition_name(PARENT), PARENT) is PartitionKind.DEFAULT
    assert Partition.classify(future_partition_name(PARENT), PARENT) is PartitionKind.FUTURE
    assert Partition.classify("transactions_2025_05_01", PARENT) is PartitionKind.DAILY
    assert Partition.classify("transactions_2025_05", PARENT) is PartitionKind.OTHER


def test_partition_covers_whole_days_only() -> None:
    may_1 = DateKey(date(2025, 5, 1))
    default = Partition("transactions_default", PARENT, None, may_1, PartitionKind.DEFAULT)
    future = Partition("transactions_future", PARENT, may_1.shift(3), None, PartitionKind.FUTURE)
    monthly = Partition("transactions_2025_05", PARENT, may_1, may_1.shift(31))

    assert default.covers(may_1.shift(-100))
    assert not default.covers(may_1)
    assert future.covers(may_1.shift(3))
    assert not future.covers(may_1.shift(2))
    assert monthly.covers(may_1.shift(30))
    assert not monthly.covers(may_1.shift(31))


def test_partition_overlap_is_half_open() -> None:
    may_1 = DateKey(date(2025, 5, 1))
    daily = Partition("transactions_2025_05_01", PARENT, may_1, may_1.next())

    assert not daily.overlaps(may_1.next(), may_1.shift(2))
    assert not daily.overlaps(None, may_1)
    assert daily.overlaps(may_1, None)
    assert daily.overlaps(None, None)


def test_transaction_key_and_row_order() -> None:
    created_at = datetime(2025, 4, 30, 22, 0, tzinfo=timezone.utc)
    tx = Transaction(id=7, user_id=1, amount=Decimal("0.000000001"), type="deposit", created_at=created_at)

    assert tx.key == (7, created_at)
    assert tx.day == DateKey(date(2025, 4, 30))
    row = tx.as_row()
    assert row[0] == 7
    assert row[-1] == created_at
    assert len(row) == 14

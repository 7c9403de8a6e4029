"""
Domain models for the ledger partition manager.

``DateKey`` is the single place where calendar days are turned into partition
names and range bounds. ``Transaction`` mirrors a ledger row; ``Partition`` and
``PartitionLogEntry`` describe the catalog and its audit trail.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterator, Optional

from pydantic import BaseModel, Field

_DAILY_SUFFIX = re.compile(r"^(\d{4})_(\d{2})_(\d{2})$")


@dataclass(frozen=True, order=True)
class DateKey:
    """
    A UTC calendar day used as a partition key.

    Ordering and equality follow the wrapped date, so keys can be compared and
    used as dict keys directly.
    """

    day: date

    @classmethod
    def today(cls, now: Optional[datetime] = None) -> "DateKey":
        moment = now or datetime.now(timezone.utc)
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return cls(moment.date())

    @classmethod
    def parse(cls, value: str) -> "DateKey":
        """Parse an ISO ``YYYY-MM-DD`` string (a time component is ignored)."""
        return cls(date.fromisoformat(value.strip()[:10]))

    @classmethod
    def from_partition_name(cls, name: str, parent: str) -> Optional["DateKey"]:
        prefix = f"{parent}_"
        if not name.startswith(prefix):
            return None
        match = _DAILY_SUFFIX.match(name[len(prefix):])
        if match is None:
            return None
        year, month, day = (int(part) for part in match.groups())
        try:
            return cls(date(year, month, day))
        except ValueError:
            return None

    def shift(self, days: int) -> "DateKey":
        return DateKey(self.day + timedelta(days=days))

    def next(self) -> "DateKey":
        return self.shift(1)

    def range_to(self, last: "DateKey") -> Iterator["DateKey"]:
        """Iterate from this key to ``last`` inclusive, in chronological order."""
        current = self
        while current <= last:
            yield current
            current = current.next()

    def partition_name(self, parent: str) -> str:
        return f"{parent}_{self.day:%Y_%m_%d}"

    def literal(self) -> str:
        return self.day.isoformat()

    def __str__(self) -> str:
        return self.literal()


class PartitionKind(str, enum.Enum):
    DAILY = "daily"
    DEFAULT = "default"
    FUTURE = "future"
    OTHER = "other"


# Columns that receive an index on every partition.
PARTITION_INDEX_COLUMNS = ("user_id", "type", "created_at")


def default_partition_name(parent: str) -> str:
    return f"{parent}_default"


def future_partition_name(parent: str) -> str:
    return f"{parent}_future"


@dataclass(frozen=True)
class Partition:
    """
    A range partition of the parent table.

    ``start`` is inclusive and ``end`` exclusive; ``None`` stands for MINVALUE and
    MAXVALUE respectively.
    """

    name: str
    parent: str
    start: Optional[DateKey]
    end: Optional[DateKey]
    kind: PartitionKind = PartitionKind.OTHER
    row_count: Optional[int] = None
    size: Optional[str] = None

    @classmethod
    def classify(cls, name: str, parent: str) -> PartitionKind:
        if name == default_partition_name(parent):
            return PartitionKind.DEFAULT
        if name == future_partition_name(parent):
            return PartitionKind.FUTURE
        if DateKey.from_partition_name(name, parent) is not None:
            return PartitionKind.DAILY
        return PartitionKind.OTHER

    def covers(self, day: DateKey) -> bool:
        """Whether the whole of ``[day, day + 1)`` lies inside this partition."""
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day.next() > self.end:
            return False
        return True

    def overlaps(self, start: Optional[DateKey], end: Optional[DateKey]) -> bool:
        if self.end is not None and start is not None and self.end <= start:
            return False
        if end is not None and self.start is not None and end <= self.start:
            return False
        return True

    def index_names(self) -> list[str]:
        return [f"{self.name}_{column}_idx" for column in PARTITION_INDEX_COLUMNS]


class LogOperation(str, enum.Enum):
    CREATE = "create"
    MIGRATE = "migrate"
    ERROR = "error"


class LogStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class PartitionLogEntry(BaseModel):
    """
    One immutable row of the ``partition_logs`` audit table.
    """

    id: Optional[int] = Field(None, description="Primary key (SERIAL).")
    operation: LogOperation = Field(..., description="create | migrate | error.")
    partition_name: str = Field(..., description="Partition the attempt targeted.")
    status: LogStatus = Field(..., description="success | failure.")
    detail: Optional[str] = Field(None, description="Target range and error detail.")
    created_at: Optional[datetime] = Field(None, description="Write timestamp.")

    model_config = {
        "frozen": True,
    }


# Column order shared by the flat table, the holding table and the partitioned parent.
TRANSACTION_COLUMNS = (
    "id",
    "user_id",
    "amount",
    "type",
    "currency",
    "status",
    "source",
    "category",
    "tx_hash",
    "description",
    "source_user_id",
    "data",
    "wallet_address",
    "created_at",
)


class Transaction(BaseModel):
    """
    Representation of a single row in the `transactions` ledger.

    The primary key is ``(id, created_at)`` because the partition key must be part
    of any unique constraint on a partitioned table.
    """

    id: int = Field(..., description="Serial id, unique together with created_at.")
    user_id: int = Field(..., description="Owning user.")
    amount: Decimal = Field(..., description="Fixed-point amount, NUMERIC(18, 9).")
    type: str = Field(..., description="Transaction type (deposit, farming_reward, ...).")
    currency: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    category: Optional[str] = None
    tx_hash: Optional[str] = Field(None, description="External reference.")
    description: Optional[str] = None
    source_user_id: Optional[int] = None
    data: Optional[str] = Field(None, description="Opaque payload.")
    wallet_address: Optional[str] = None
    created_at: datetime = Field(..., description="Partition key.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @property
    def key(self) -> tuple[int, datetime]:
        return (self.id, self.created_at)

    @property
    def day(self) -> DateKey:
        return DateKey.today(self.created_at)

    def as_row(self) -> tuple[Any, ...]:
        return tuple(getattr(self, column) for column in TRANSACTION_COLUMNS)


__all__ = [
    "DateKey",
    "LogOperation",
    "LogStatus",
    "PARTITION_INDEX_COLUMNS",
    "Partition",
    "PartitionKind",
    "PartitionLogEntry",
    "TRANSACTION_COLUMNS",
    "Transaction",
    "default_partition_name",
    "future_partition_name",
]

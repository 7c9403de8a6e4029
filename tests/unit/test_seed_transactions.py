import csv
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from scripts import seed_transactions

NOW = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_seed_writes_csv_with_ledger_columns(tmp_path: Path):
    csv_path = tmp_path / "transactions.csv"

    seed_transactions._generate_rows_csv(csv_path, rows=5, batch_size=2, seed=123, days_back=10, now=NOW)

    with csv_path.open("r", newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 5
    assert list(rows[0].keys()) == seed_transactions.CSV_COLUMNS
    assert "id" not in rows[0]
    json.loads(rows[0]["data"])
    for row in rows:
        created_at = datetime.fromisoformat(row["created_at"])
        assert NOW - timedelta(days=10) <= created_at <= NOW


def test_seed_is_deterministic(tmp_path: Path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"

    seed_transactions._generate_rows_csv(first, rows=20, batch_size=7, seed=7, now=NOW)
    seed_transactions._generate_rows_csv(second, rows=20, batch_size=7, seed=7, now=NOW)

    assert first.read_text() == second.read_text()

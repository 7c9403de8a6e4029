"""
Synthetic ledger generator for rehearsing the partition migration.

Implements deterministic pseudo-random transaction generation, CSV emission, and
Postgres COPY loading into the flat `transactions` table. Rows are spread over a
configurable number of past days so a migration exercises the default catch-all
as well as the daily window.
"""

from __future__ import annotations

import csv
import json
import random
import sys
import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import psycopg
from psycopg import sql
import typer

from ledger_partitions.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Generate synthetic ledger rows and load them into Postgres (CSV + COPY).")

CSV_COLUMNS = [
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
]

TX_TYPES = ["deposit", "withdrawal", "farming_reward", "referral_bonus", "daily_bonus", "boost_purchase"]
CURRENCIES = ["UNI", "TON"]


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _generate_rows_csv(
    csv_path: Path,
    rows: int,
    batch_size: int,
    seed: int,
    days_back: int = 30,
    now: datetime | None = None,
) -> None:
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    span_seconds = max(days_back, 0) * 86_400

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_COLUMNS)

        buffer: list[list[str]] = []
        for _ in range(rows):
            tx_type = rng.choice(TX_TYPES)
            currency = rng.choice(CURRENCIES)
            amount = round(rng.uniform(0.000001, 5_000), 9)
            created_at = now - timedelta(seconds=rng.randint(0, span_seconds))
            referral = tx_type == "referral_bonus"
            payload = {"session": rng.randint(1, 1_000_000), "level": rng.randint(1, 20)}
            buffer.append(
                [
                    str(rng.randint(1, 50_000)),
                    f"{amount:.9f}",
                    tx_type,
                    currency,
                    rng.choice(["confirmed", "pending"]),
                    rng.choice(["farming", "wallet", "referral", "bonus"]),
                    "bonus" if referral else "rewards",
                    f"{rng.getrandbits(128):032x}" if currency == "TON" else "",
                    f"{tx_type} {currency}",
                    str(rng.randint(1, 50_000)) if referral else "",
                    json.dumps(payload),
                    f"EQ{rng.getrandbits(160):040x}" if currency == "TON" else "",
                    created_at.isoformat(),
                ]
            )
            if len(buffer) >= batch_size:
                writer.writerows(buffer)
                buffer.clear()
        if buffer:
            writer.writerows(buffer)


def _copy_into_db(dsn: str, csv_path: Path, table: str = "transactions") -> int:
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            columns = sql.SQL(", ").join(sql.Identifier(c) for c in CSV_COLUMNS)
            statement = sql.SQL(
                "COPY {table} ({columns}) FROM STDIN WITH (FORMAT csv, HEADER TRUE)"
            ).format(table=sql.Identifier(table), columns=columns)
            with cur.copy(statement) as copy:
                with csv_path.open("r", encoding="utf-8") as f:
                    for line in f:
                        copy.write(line)
            conn.commit()
    return 0


@app.command()
def main(
    rows: int = typer.Option(
        10_000,
        "--rows",
        "-r",
        help="Number of transactions to generate.",
    ),
    days_back: int = typer.Option(
        30,
        "--days-back",
        help="Spread created_at uniformly over this many past days.",
    ),
    batch_size: int = typer.Option(
        5_000,
        "--batch-size",
        "-b",
        help="Batch size for CSV buffering during generation.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Optional CSV output path (if omitted, a temp file will be used).",
    ),
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
    no_load: bool = typer.Option(
        False,
        "--no-load",
        help="Only generate CSV; skip loading into Postgres.",
    ),
) -> None:
    """
    Generate synthetic transactions and optionally load them into Postgres using COPY.
    """
    start = time.perf_counter()
    if output:
        csv_path = output
        csv_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        tmpdir = Path(tempfile.mkdtemp(prefix="ledger_seed_"))
        csv_path = tmpdir / "transactions.csv"

    typer.echo(f"Generating {rows:,} rows over {days_back} days -> {csv_path} (seed={seed})")
    _generate_rows_csv(csv_path, rows=rows, batch_size=batch_size, seed=seed, days_back=days_back)
    typer.echo(f"CSV generation completed in {time.perf_counter() - start:.2f}s")

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    load_start = time.perf_counter()
    typer.echo("Loading CSV into Postgres via COPY...")
    _copy_into_db(_build_dsn(dsn), csv_path)
    typer.echo(f"Load completed in {time.perf_counter() - load_start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)

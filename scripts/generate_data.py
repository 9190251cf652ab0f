"""
Seed script for socialpipe.

Generates a deterministic set of posts (plus their authors) and either dumps them to a
single JSON-lines file or loads them into the partitioned Postgres tables through the
table sink, one COPY per hourly partition.
"""

from __future__ import annotations

import random
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

from socialpipe.config import get_settings
from socialpipe.domain.generator import GenerationParams, RecordGenerator
from socialpipe.domain.models import RecordKind
from socialpipe.errors import PipelineError
from socialpipe.infrastructure.db_factory import query_connector
from socialpipe.pipeline import write_records
from socialpipe.sinks.json_lines import encode_records

app = typer.Typer(help="Generate synthetic social records and load them into Postgres (partitioned COPY).")


def _start_of_hour(value: Optional[datetime]) -> int:
    moment = (value or datetime.now(timezone.utc)).replace(minute=0, second=0, microsecond=0)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


@app.command()
def main(
    posts: int = typer.Option(1_000, "--posts", "-n", help="Number of posts to generate."),
    users: int = typer.Option(50, "--users", "-u", help="Size of the author pool."),
    span_hours: int = typer.Option(24, "--span-hours", help="Hours the post timestamps span."),
    start: Optional[datetime] = typer.Option(None, "--start", help="Window start (UTC); defaults to this hour."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also dump the posts as one JSON-lines file."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    schema: Optional[str] = typer.Option(None, "--schema", help="Postgres schema (default from settings)."),
    no_load: bool = typer.Option(False, "--no-load", help="Only generate; skip loading into Postgres."),
) -> None:
    """
    Generate synthetic posts and optionally load them into partitioned tables.
    """
    settings = get_settings()
    began = time.perf_counter()
    params = GenerationParams(start_timestamp=_start_of_hour(start), span_hours=span_hours, user_pool_size=users)
    records = RecordGenerator(random.Random(seed)).generate(RecordKind.POSTS, posts, params)
    gen_duration = time.perf_counter() - began
    typer.echo(f"Generated {len(records):,} posts over {span_hours}h in {gen_duration:.2f}s (seed={seed})")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        # Single file for inspection; partitioned output goes through `socialpipe write`.
        output.write_bytes(encode_records(records))
        typer.echo(f"Wrote {output}")

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    load_start = time.perf_counter()
    typer.echo("Loading posts into Postgres via partitioned COPY...")
    try:
        report = write_records(
            RecordKind.POSTS,
            records,
            target="table",
            base_path=schema or settings.table_schema,
            settings=settings,
            connector=query_connector(settings, dsn_override=dsn),
        )
        report.raise_for_failures()
    except PipelineError as exc:
        typer.secho(f"Load failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    load_duration = time.perf_counter() - load_start
    typer.echo(
        f"Loaded {report.written_records:,} rows into {len(report.partitions)} partition(s) "
        f"in {load_duration:.2f}s."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import List, Optional

import typer

from socialpipe.config import get_settings
from socialpipe.errors import (
    BackendUnavailable,
    Cancelled,
    InvalidArgument,
    PartialWriteFailure,
    QuerySpecError,
    ValidationError,
)
from socialpipe.pipeline import list_storage, run_analysis, run_query, run_write
from socialpipe.query.catalog import describe_queries
from socialpipe.reporter import print_entries, print_rows, print_write_report
from socialpipe.utils.logging import configure_logging

app = typer.Typer(help="socialpipe: partitioned ingestion and analytical queries for social records.")

EXIT_FAILURE = 1
EXIT_CANCELLED = 130

_FAILURES = (PartialWriteFailure, BackendUnavailable, QuerySpecError, ValidationError, InvalidArgument)


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _parse_params(raw: List[str]) -> dict:
    params = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise InvalidArgument(f"Expected key=value, got {item!r}")
        params[key.strip()] = value.strip()
    return params


def _fail(exc: Exception) -> None:
    typer.secho(f"Error: {exc}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=EXIT_FAILURE)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"schema={settings.table_schema} | storage={settings.storage_uri} base={settings.base_path} | "
        f"retries: query={settings.query_max_attempts}x{settings.query_retry_delay}s "
        f"storage={settings.storage_max_attempts}x{settings.storage_retry_delay}s | "
        f"concurrency={settings.write_concurrency}"
    )


@app.command()
def write(
    kind: str = typer.Argument(..., help="Record kind: users, posts or events."),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Records to generate (default from settings)."),
    target: str = typer.Option("storage", "--target", "-t", help="Write target: storage or table."),
    base_path: Optional[str] = typer.Option(None, "--base-path", "-b", help="Storage prefix or Postgres schema."),
    span_hours: Optional[int] = typer.Option(None, "--span-hours", help="Hours the generated timestamps span."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", help="Partitions written in parallel."),
    as_json: bool = typer.Option(False, "--json", help="Print the write report as JSON."),
) -> None:
    """
    Generate records and write them partitioned by UTC hour.
    """
    _setup_logging()
    try:
        report = run_write(
            kind,
            count=count,
            target=target,
            base_path=base_path,
            span_hours=span_hours,
            concurrency=concurrency,
        )
    except Cancelled:
        typer.echo("Cancelled.", err=True)
        raise typer.Exit(code=EXIT_CANCELLED)
    except _FAILURES as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_write_report(report)

    try:
        report.raise_for_failures()
    except PartialWriteFailure as exc:
        for result in report.failed:
            typer.echo(f"  {result.key}: {result.error}", err=True)
        _fail(exc)


@app.command()
def query(
    name: str = typer.Argument(..., help="Named query, see `queries`."),
    param: List[str] = typer.Option([], "--param", "-p", help="Query parameter as key=value; repeatable."),
    as_json: bool = typer.Option(False, "--json", help="Print rows as JSON."),
) -> None:
    """
    Run a named analytical query.
    """
    _setup_logging()
    try:
        rows = run_query(name, _parse_params(param))
    except Cancelled:
        typer.echo("Cancelled.", err=True)
        raise typer.Exit(code=EXIT_CANCELLED)
    except _FAILURES as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps([row.model_dump() for row in rows], indent=2, default=str))
    else:
        print_rows(name, rows)


@app.command()
def analyze(
    year: Optional[int] = typer.Option(None, "--year", help="Year for hourly_activity (default: current UTC year)."),
    month: Optional[int] = typer.Option(None, "--month", help="Month for hourly_activity (default: current UTC month)."),
    category: str = typer.Option("tech", "--category", help="Celebrity category for popular_celebrity_posts."),
    limit: int = typer.Option(10, "--limit", "-l", help="Row limit for the top-K queries."),
    as_json: bool = typer.Option(False, "--json", help="Print all results as one JSON object."),
) -> None:
    """
    Run every named query and print each result.
    """
    _setup_logging()
    now = datetime.now(timezone.utc)
    shared = {
        "year": year if year is not None else now.year,
        "month": month if month is not None else now.month,
        "category": category,
        "limit": limit,
    }
    try:
        results = run_analysis(shared)
    except Cancelled:
        typer.echo("Cancelled.", err=True)
        raise typer.Exit(code=EXIT_CANCELLED)
    except _FAILURES as exc:
        _fail(exc)

    if as_json:
        payload = {name: [row.model_dump() for row in rows] for name, rows in results.items()}
        typer.echo(json.dumps(payload, indent=2, default=str))
    else:
        for name, rows in results.items():
            print_rows(name, rows)


@app.command()
def queries() -> None:
    """
    List named queries.
    """
    for name, description in describe_queries().items():
        typer.echo(f"{name:<26} {description}")


@app.command("ls")
def ls(path: str = typer.Argument("", help="Path relative to the storage root.")) -> None:
    """
    List a directory of the storage backend.
    """
    _setup_logging()
    try:
        entries = list_storage(path)
    except _FAILURES as exc:
        _fail(exc)
    print_entries(path, entries)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(EXIT_CANCELLED)


if __name__ == "__main__":
    main()

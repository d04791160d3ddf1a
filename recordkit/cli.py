"""
recordkit — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Open a ``ConnectionManager`` for the configured database.
  4. Execute the action (schema init, table listing, ad-hoc query).
  5. Report result to stdout.

Install and run::

    pip install -e .
    recordkit --help
    recordkit init-db
    recordkit validate-config
    recordkit tables
    recordkit query credit_packs --where is_active=1 --limit 5
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

app = typer.Typer(
    name="recordkit",
    help="recordkit — SQLite query builder, models and repositories.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from recordkit.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from recordkit.utils.logging import configure_logging
    configure_logging(config.logging)


def _database_config(config, db_path: Optional[str]):
    """The configured ``DatabaseConfig``, with ``--db-path`` applied."""
    if db_path is None:
        return config.database
    return config.database.model_copy(update={"db_path": db_path})


def _parse_where(clauses: list[str]) -> dict[str, str]:
    """Turn ``col=value`` options into a filter mapping."""
    filters: dict[str, str] = {}
    for clause in clauses:
        column, sep, value = clause.partition("=")
        if not sep or not column.strip().isidentifier():
            typer.echo(f"[ERROR] --where expects col=value, got '{clause}'.", err=True)
            raise typer.Exit(code=2)
        filters[column.strip()] = value
    return filters


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from recordkit.db.connection import ConnectionManager
    from recordkit.db.schema import ALL_TABLE_NAMES, apply_schema
    from recordkit.exceptions import RecordKitError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    db_config = _database_config(config, db_path)
    typer.echo(f"Initializing database at: {db_config.db_path}")

    try:
        with ConnectionManager(db_config) as db:
            apply_schema(db)
    except RecordKitError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  WAL mode:         {config.database.wal_mode}")
    typer.echo(f"  Page size:        {config.pagination.default_per_page} "
               f"(max {config.pagination.max_per_page})")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  SQL log level:    {config.logging.sql_level or config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("tables")
def tables(
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List tables in the database with their row counts."""
    from recordkit.db.connection import ConnectionManager
    from recordkit.db.query import QueryBuilder
    from recordkit.db.schema import get_existing_tables
    from recordkit.exceptions import RecordKitError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with ConnectionManager(_database_config(config, db_path)) as db:
            names = get_existing_tables(db)
            if not names:
                typer.echo("No tables found. Run 'recordkit init-db' first.")
                return
            for name in names:
                typer.echo(f"  {name:<24} {QueryBuilder(db, name).count():>8}")
    except RecordKitError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


@app.command("query")
def query(
    table: str = typer.Argument(..., help="Table to select from."),
    where: Optional[List[str]] = typer.Option(
        None,
        "--where",
        "-w",
        help="Equality filter as col=value; repeat for several (joined with AND).",
    ),
    limit: int = typer.Option(20, "--limit", "-n", min=0, help="Maximum rows to print."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Run a filtered SELECT and print each row as one JSON object per line."""
    from recordkit.db.connection import ConnectionManager
    from recordkit.db.query import QueryBuilder
    from recordkit.db.schema import get_existing_tables
    from recordkit.exceptions import RecordKitError

    filters = _parse_where(where or [])
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with ConnectionManager(_database_config(config, db_path)) as db:
            if table not in get_existing_tables(db):
                typer.echo(f"[ERROR] Unknown table '{table}'.", err=True)
                raise typer.Exit(code=1)
            rows = QueryBuilder(db, table).where(filters).order_by("rowid").limit(limit).get()
    except RecordKitError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    for row in rows:
        typer.echo(json.dumps(row, default=str))


if __name__ == "__main__":
    app()

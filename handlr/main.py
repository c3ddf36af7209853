from __future__ import annotations

import importlib
import json
import sys
from pathlib import Path
from typing import Callable, Mapping, Optional

import typer

from handlr.config import build_dsn, get_settings
from handlr.database.db import Db, DbInterface
from handlr.database.migrations import MigrationRunner
from handlr.database.seeder import Seeder
from handlr.database.table import Table
from handlr.utils.logging import configure_logging

app = typer.Typer(help="Handlr data-mapping CLI.")

TableRegistry = Callable[[DbInterface], Mapping[str, Table]]


def _load_registry(target: str) -> TableRegistry:
    """Resolve ``module:attr`` to a callable building the table registry."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter(f"Expected 'module:attr', got '{target}'.", param_hint="--tables")
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError:
        raise typer.BadParameter(f"'{module_name}' has no attribute '{attr}'.") from None
    if not callable(factory):
        raise typer.BadParameter(f"'{target}' is not callable.", param_hint="--tables")
    return factory


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={build_dsn(settings, redact=True)} | env={settings.app_env} "
        f"log_level={settings.log_level} per_page={settings.pagination_per_page} "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size})"
    )


@app.command()
def seed(
    file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON seed file mapping table names to rows.",
    ),
    tables: str = typer.Option(
        ...,
        "--tables",
        "-t",
        help="Table registry as 'module:attr'; attr is called with the Db and returns {name: Table}.",
    ),
    fresh: bool = typer.Option(
        False,
        "--fresh",
        "-f",
        help="Truncate the seeded tables before inserting.",
    ),
    dsn: Optional[str] = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
) -> None:
    """
    Load seed data through the registered tables in one transaction.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    data = json.loads(file.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        typer.echo(f"Seed file must contain a JSON object: {file}", err=True)
        raise typer.Exit(code=1)

    registry = _load_registry(tables)
    with Db.connect(dsn) as db:
        seeder = Seeder(db, registry(db))
        if fresh:
            typer.echo("Truncating tables...")
            # Children before parents.
            seeder.truncate(reversed(seeder.collect_tables(data)))

        typer.echo("Running seeders...")
        counts = seeder.seed(data)

    for table_name, count in counts.items():
        typer.echo(f"  {table_name}: {count} records")
    typer.echo(f"Seeding complete. {sum(counts.values())} records inserted.")


MIGRATIONS_PATH_OPTION = typer.Option(
    Path("migrations"),
    "--path",
    "-p",
    file_okay=False,
    help="Directory holding <timestamp>_<name>.py migration files.",
)
DSN_OPTION = typer.Option(None, "--dsn", help="Optional DSN override for Postgres.")


@app.command()
def migrate(
    path: Path = MIGRATIONS_PATH_OPTION,
    step: bool = typer.Option(
        False,
        "--step",
        help="Give every migration its own batch so each can be rolled back alone.",
    ),
    dsn: Optional[str] = DSN_OPTION,
) -> None:
    """
    Apply pending migrations.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    with Db.connect(dsn) as db:
        applied = MigrationRunner(db, path).migrate(step_wise=step)

    if not applied:
        typer.echo("Nothing to migrate.")
        return
    for name in applied:
        typer.echo(f"  applied {name}")
    typer.echo(f"Migrated {len(applied)} file(s).")


@app.command()
def rollback(
    path: Path = MIGRATIONS_PATH_OPTION,
    steps: int = typer.Option(1, "--steps", "-n", min=1, help="Number of batches to revert."),
    dsn: Optional[str] = DSN_OPTION,
) -> None:
    """
    Revert the most recent migration batches.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    with Db.connect(dsn) as db:
        reverted = MigrationRunner(db, path).rollback(steps)

    if not reverted:
        typer.echo("Nothing to rollback.")
        return
    for name in reverted:
        typer.echo(f"  reverted {name}")
    typer.echo(f"Rolled back {len(reverted)} file(s).")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()

"""
Schema migrations tracked in a ``migrations`` table.

A migration is a Python file in the migrations directory named
``<timestamp>_<description>.py`` (for example
``20250101120000_create_users_table.py``) that defines one ``Migration``
subclass:

    class CreateUsersTable(Migration):
        def up(self) -> None:
            self._exec("CREATE TABLE users (id BYTEA PRIMARY KEY, email TEXT NOT NULL)")

        def down(self) -> None:
            self._exec("DROP TABLE IF EXISTS users")

Files run in name order. Every ``migrate()`` call stamps the files it applies
with the next batch number (or one batch per file when ``step_wise``), and
``rollback(steps)`` reverts the newest ``steps`` batches.
"""

from __future__ import annotations

import abc
import importlib.util
import inspect
import re
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Sequence, Type, Union

from handlr.database.db import Db
from handlr.exceptions import DatabaseException, PreconditionError
from handlr.utils.logging import get_logger

log = get_logger(__name__)

MIGRATIONS_TABLE = "migrations"

_FILE_RE = re.compile(r"^\d+_\w+\.py$")


class Migration(abc.ABC):
    """
    One reversible schema change.

    Statements go through ``_exec``. SQL is sent with a bound (possibly
    empty) parameter list, so a literal ``%`` must be written ``%%``.
    """

    def __init__(self, db: Db) -> None:
        self.db = db

    @abc.abstractmethod
    def up(self) -> None:
        """Apply the change."""

    @abc.abstractmethod
    def down(self) -> None:
        """Revert the change."""

    def _exec(self, sql: str, params: Sequence[Any] = ()) -> None:
        self.db.execute(sql, params)

    def _exists(self, sql: str, params: Sequence[Any]) -> bool:
        return self.db.execute(sql, params).fetchone() is not None

    def _table_exists(self, table: str) -> bool:
        return self._exists(
            "SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s",
            [table],
        )

    def _column_exists(self, table: str, column: str) -> bool:
        return self._exists(
            "SELECT 1 FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = %s AND column_name = %s",
            [table, column],
        )

    def _index_exists(self, table: str, index: str) -> bool:
        # information_schema has no index view.
        return self._exists(
            "SELECT 1 FROM pg_indexes "
            "WHERE schemaname = current_schema() AND tablename = %s AND indexname = %s",
            [table, index],
        )


def load_migration(path: Path) -> Type[Migration]:
    """
    Import a migration file and return the ``Migration`` subclass it defines.

    Raises
    ------
    DatabaseException
        If the file is missing or does not define exactly one migration class.
    """
    if not path.is_file():
        raise DatabaseException(f"Migration file not found: {path}")
    location = importlib.util.spec_from_file_location(f"handlr_migration_{path.stem}", path)
    if location is None or location.loader is None:
        raise DatabaseException(f"Cannot load migration file {path}")
    module: ModuleType = importlib.util.module_from_spec(location)
    location.loader.exec_module(module)

    classes = [
        obj
        for obj in vars(module).values()
        if inspect.isclass(obj)
        and issubclass(obj, Migration)
        and not inspect.isabstract(obj)
        and obj.__module__ == module.__name__
    ]
    if len(classes) != 1:
        raise DatabaseException(
            f"Expected one Migration subclass in {path.name}, found {len(classes)}"
        )
    return classes[0]


class MigrationRunner:
    """
    Applies and reverts the migrations found in one directory.

    Parameters
    ----------
    db : Db
        Database the migrations run against. Each file runs inside
        ``db.transaction()`` together with its bookkeeping row.
    path : str | Path
        Directory holding the migration files.
    """

    def __init__(self, db: Db, path: Union[str, Path]) -> None:
        self.db = db
        self.path = Path(path)
        self._ensure_table()

    def _ensure_table(self) -> None:
        row = self.db.execute("SELECT to_regclass(%s) AS present", [MIGRATIONS_TABLE]).fetchone()
        if row and row["present"] is not None:
            return
        self.db.execute(
            f'CREATE TABLE IF NOT EXISTS "{MIGRATIONS_TABLE}" ('
            "batch INTEGER NOT NULL, "
            "file VARCHAR(255) NOT NULL, "
            "ran_at TIMESTAMPTZ NOT NULL DEFAULT now())"
        )
        log.info("Migrations table created", extra={"table": MIGRATIONS_TABLE})

    def files(self) -> List[str]:
        """Migration file names on disk, in run order."""
        if not self.path.is_dir():
            raise DatabaseException(f"Migrations directory not found: {self.path}")
        return sorted(p.name for p in self.path.iterdir() if p.is_file() and _FILE_RE.match(p.name))

    def applied(self) -> List[Dict[str, Any]]:
        """Rows of the tracking table (``batch``, ``file``), ordered by file."""
        return list(
            self.db.execute(f'SELECT batch, file FROM "{MIGRATIONS_TABLE}" ORDER BY file').fetchall()
        )

    def pending(self) -> List[str]:
        done = {row["file"] for row in self.applied()}
        return [name for name in self.files() if name not in done]

    def max_batch(self) -> int:
        row = self.db.execute(
            f'SELECT COALESCE(MAX(batch), 0) AS max_batch FROM "{MIGRATIONS_TABLE}"'
        ).fetchone()
        return int(row["max_batch"]) if row else 0

    def migrate(self, step_wise: bool = False) -> List[str]:
        """
        Run every pending migration.

        Parameters
        ----------
        step_wise : bool
            Give each file its own batch so it can be rolled back alone.

        Returns
        -------
        list[str]
            Applied file names, in run order.
        """
        pending = self.pending()
        if not pending:
            log.info("Nothing to migrate")
            return []

        batch = self.max_batch() + 1
        for name in pending:
            migration = load_migration(self.path / name)(self.db)
            log.info("Applying migration", extra={"migration": name, "batch": batch})
            with self.db.transaction():
                migration.up()
                self.db.execute(
                    f'INSERT INTO "{MIGRATIONS_TABLE}" (batch, file) VALUES (%s, %s)', [batch, name]
                )
            if step_wise:
                batch += 1
        return pending

    def rollback(self, steps: int = 1) -> List[str]:
        """
        Revert the newest ``steps`` batches, newest file first.

        Returns
        -------
        list[str]
            Reverted file names, in the order they were reverted.

        Raises
        ------
        PreconditionError
            If ``steps`` is not a positive integer.
        """
        if isinstance(steps, bool) or not isinstance(steps, int) or steps < 1:
            raise PreconditionError(f"steps must be a positive integer, got {steps!r}")

        floor = max(self.max_batch() - steps, 0)
        targets = [row["file"] for row in reversed(self.applied()) if row["batch"] > floor]
        if not targets:
            log.info("Nothing to rollback")
            return []

        for name in targets:
            migration = load_migration(self.path / name)(self.db)
            log.info("Rolling back migration", extra={"migration": name})
            with self.db.transaction():
                migration.down()
                self.db.execute(f'DELETE FROM "{MIGRATIONS_TABLE}" WHERE file = %s', [name])
        return targets


__all__ = ["MIGRATIONS_TABLE", "Migration", "MigrationRunner", "load_migration"]

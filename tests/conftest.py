"""
Pytest configuration for Handlr.

Provides fixtures for:
- A recording in-memory DbInterface for unit tests
- Demo record schemas
- Database connection management for integration tests
"""

from __future__ import annotations

import os
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Deque, Dict, Generator, Iterator, List, Optional, Sequence, Tuple

import psycopg
import pytest

from handlr.config import Settings, build_dsn
from handlr.database import CastKind, Db, MigrationRunner, RecordSchema, bin_to_uuid, uuid_to_bin

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"


class FakeCursor:
    """Result handle returned by FakeDb.execute."""

    def __init__(self, rows: Sequence[Dict[str, Any]], rowcount: int = 0) -> None:
        self._rows = list(rows)
        self.rowcount = rowcount

    def fetchone(self) -> Optional[Dict[str, Any]]:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> List[Dict[str, Any]]:
        rows, self._rows = self._rows, []
        return rows


class FakeDb:
    """
    Recording DbInterface.

    Each ``execute`` consumes the next queued result (rows list); with nothing
    queued it returns an empty cursor. UUID conversion uses the real codecs and
    records its inputs.
    """

    def __init__(self, last_insert_id: int = 1, rowcount: int = 1) -> None:
        self.statements: List[Tuple[str, List[Any]]] = []
        self.results: Deque[List[Dict[str, Any]]] = deque()
        self.last_insert_id = last_insert_id
        self.rowcount = rowcount
        self.insert_id_calls = 0
        self.to_bin_calls: List[Any] = []
        self.to_uuid_calls: List[Any] = []
        self.transactions = 0

    def queue(self, *rows: Dict[str, Any]) -> "FakeDb":
        self.results.append(list(rows))
        return self

    def execute(self, sql: str, params: Sequence[Any] = ()) -> FakeCursor:
        self.statements.append((sql, list(params)))
        rows = self.results.popleft() if self.results else []
        return FakeCursor(rows, rowcount=self.rowcount)

    def insert_id(self) -> int:
        self.insert_id_calls += 1
        return self.last_insert_id

    def affected_rows(self, cursor: Optional[FakeCursor] = None) -> int:
        return cursor.rowcount if cursor is not None else self.rowcount

    def uuid_to_bin(self, value: Any) -> bytes:
        self.to_bin_calls.append(value)
        return uuid_to_bin(value)

    def bin_to_uuid(self, value: Any) -> str:
        self.to_uuid_calls.append(value)
        return bin_to_uuid(value)

    @contextmanager
    def transaction(self) -> Iterator["FakeDb"]:
        self.transactions += 1
        yield self

    @property
    def last_sql(self) -> str:
        return self.statements[-1][0]

    @property
    def last_params(self) -> List[Any]:
        return self.statements[-1][1]


@pytest.fixture
def fake_db() -> FakeDb:
    return FakeDb()


@pytest.fixture
def user_schema() -> RecordSchema:
    """Auto-increment schema with casts."""
    return RecordSchema(
        name="user",
        properties=("name", "age", "active", "score"),
        casts={
            "age": CastKind.INT,
            "active": CastKind.BOOL,
            "score": CastKind.FLOAT,
        },
        uses_uuid=False,
    )


@pytest.fixture
def account_schema() -> RecordSchema:
    """UUID schema with one extra UUID column."""
    return RecordSchema(
        name="account",
        properties=("owner_id", "label"),
        uses_uuid=True,
        uuid_columns=("owner_id",),
    )


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "handlr"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            conn.execute("SELECT 1")
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_schema_initialized(test_dsn: str, db_connection_available: bool) -> bool:
    """Create the demo tables by running the migrations directory."""
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    with Db(psycopg.connect(test_dsn)) as db:
        MigrationRunner(db, MIGRATIONS_DIR).migrate()
    return True


@pytest.fixture
def db(test_dsn: str, db_schema_initialized: bool) -> Generator[Db, None, None]:
    """
    A Db whose work is rolled back after each test.
    """
    conn = psycopg.connect(test_dsn)
    try:
        yield Db(conn)
    finally:
        conn.rollback()
        conn.close()

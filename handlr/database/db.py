"""
Database abstraction consumed by tables, seeders and queries.

``DbInterface`` is the narrow contract the mapping layer depends on; ``Db``
implements it over a psycopg connection. Rows are returned as dicts
(``dict_row``). UUIDs are stored as 16-byte binary values (``BYTEA``) and
converted here, never in the mapping layer.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import (
    Any,
    Dict,
    Generator,
    List,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

import psycopg
from psycopg.pq import TransactionStatus
from psycopg.rows import dict_row

from handlr.exceptions import DatabaseException, MalformedUuidError
from handlr.infrastructure.db_factory import PoolManager, get_sync_connection

BinaryUuid = Union[bytes, bytearray, memoryview]


@runtime_checkable
class ResultCursor(Protocol):
    """Fetchable handle returned by ``DbInterface.execute``."""

    def fetchone(self) -> Optional[Dict[str, Any]]:
        ...

    def fetchall(self) -> List[Dict[str, Any]]:
        ...


@runtime_checkable
class DbInterface(Protocol):
    """
    Contract between the mapping layer and a concrete database.

    Statements use ``%s`` placeholders; ``params`` are bound positionally.
    """

    def execute(self, sql: str, params: Sequence[Any] = ()) -> ResultCursor:
        ...

    def insert_id(self) -> int:
        ...

    def affected_rows(self, cursor: Optional[ResultCursor] = None) -> int:
        ...

    def uuid_to_bin(self, value: Union[str, BinaryUuid]) -> bytes:
        ...

    def bin_to_uuid(self, value: Union[str, BinaryUuid]) -> str:
        ...


def uuid_to_bin(value: Union[str, BinaryUuid]) -> bytes:
    """
    Convert a canonical UUID string to its 16-byte form.

    A value that is already 16 bytes is returned as ``bytes`` unchanged.

    Raises
    ------
    MalformedUuidError
        If the value is neither a UUID string nor 16 bytes.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) != 16:
            raise MalformedUuidError(value)
        return raw
    if not isinstance(value, str):
        raise MalformedUuidError(value)
    try:
        return uuid.UUID(value).bytes
    except ValueError as exc:
        raise MalformedUuidError(value) from exc


def bin_to_uuid(value: Union[str, BinaryUuid]) -> str:
    """
    Convert a 16-byte UUID to its canonical lowercase string.

    A value that is already a UUID string is returned normalized.

    Raises
    ------
    MalformedUuidError
        If the value is neither 16 bytes nor a UUID string.
    """
    if isinstance(value, str):
        try:
            return str(uuid.UUID(value))
        except ValueError as exc:
            raise MalformedUuidError(value) from exc
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise MalformedUuidError(value)
    raw = bytes(value)
    if len(raw) != 16:
        raise MalformedUuidError(value)
    return str(uuid.UUID(bytes=raw))


class Db:
    """
    ``DbInterface`` implementation over a single psycopg connection.

    The connection is owned by whoever created it; ``close()`` closes it.
    """

    def __init__(self, connection: psycopg.Connection) -> None:
        self._connection = connection
        self._last_cursor: Optional[psycopg.Cursor] = None

    @classmethod
    def connect(cls, dsn: Optional[str] = None) -> "Db":
        """Open a dedicated connection (with retry) and wrap it."""
        return cls(get_sync_connection(dsn))

    @property
    def connection(self) -> psycopg.Connection:
        return self._connection

    def database_name(self) -> str:
        return self._connection.info.dbname

    def execute(self, sql: str, params: Sequence[Any] = ()) -> psycopg.Cursor:
        cursor = self._connection.cursor(row_factory=dict_row)
        # Always bind a list so every statement is parsed alike: a literal % is written %%.
        cursor.execute(sql, list(params))
        self._last_cursor = cursor
        return cursor

    def insert_id(self) -> int:
        """Value most recently produced by a sequence in this session."""
        with self._connection.cursor() as cur:
            cur.execute("SELECT lastval()")
            row = cur.fetchone()
        return int(row[0])

    def affected_rows(self, cursor: Optional[psycopg.Cursor] = None) -> int:
        if cursor is None:
            cursor = self._last_cursor
        if cursor is None:
            raise DatabaseException("No statement available to get affected rows.")
        return cursor.rowcount

    def uuid_to_bin(self, value: Union[str, BinaryUuid]) -> bytes:
        return uuid_to_bin(value)

    def bin_to_uuid(self, value: Union[str, BinaryUuid]) -> str:
        return bin_to_uuid(value)

    # -- transactions --------------------------------------------------------

    @contextmanager
    def transaction(self) -> Generator["Db", None, None]:
        """Run the block in a transaction (savepoint when nested)."""
        with self._connection.transaction():
            yield self

    def commit(self) -> None:
        self._connection.commit()

    def rollback(self) -> None:
        self._connection.rollback()

    def in_transaction(self) -> bool:
        return self._connection.info.transaction_status != TransactionStatus.IDLE

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "Db":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        self.close()


@contextmanager
def pooled_db() -> Generator[Db, None, None]:
    """
    Yield a ``Db`` bound to a connection borrowed from the shared pool.

    Example
    -------
        with pooled_db() as db:
            users = Table(db, "users", USER)
            users.find_by_id(1)
    """
    with PoolManager().sync_connection() as conn:
        yield Db(conn)


__all__ = [
    "BinaryUuid",
    "Db",
    "DbInterface",
    "ResultCursor",
    "bin_to_uuid",
    "pooled_db",
    "uuid_to_bin",
]

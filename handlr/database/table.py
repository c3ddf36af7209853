"""
Table gateway: maps a ``RecordSchema`` onto one physical table.

A ``Table`` builds parameterized SQL (psycopg ``%s`` placeholders), runs it
through an injected ``DbInterface`` and hydrates result rows into Records.
Values for UUID-typed columns (``id`` when the schema uses UUIDs, plus the
schema's ``uuid_columns``) are converted to binary right before binding and
back to text right after fetching; the conversion itself belongs to the
database abstraction.

Only identifiers are interpolated into SQL. ``where`` and ``order_by``
fragments are trusted, caller-authored SQL; their values travel in ``params``.

Usage:
    users = Table(db, "users", USER)
    page = users.paginate(page=2, per_page=10, where="active = %s", params=[True])
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypedDict

from handlr.config import get_settings
from handlr.database.db import DbInterface
from handlr.database.record import Record, RecordId, RecordSchema
from handlr.exceptions import DatabaseException, PreconditionError
from handlr.utils.logging import get_logger

log = get_logger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Row = Dict[str, Any]


class PageMeta(TypedDict):
    total: int
    page: int
    per_page: int
    last_page: int
    has_more_pages: bool


class Page(TypedDict):
    """Result of ``Table.paginate``."""

    data: List[Record]
    meta: PageMeta


def quote_identifier(name: str) -> str:
    """
    Double-quote a (optionally schema-qualified) identifier.

    Raises
    ------
    DatabaseException
        If any part is not a plain identifier.
    """
    parts = name.split(".")
    for part in parts:
        if not _IDENTIFIER_RE.match(part):
            raise DatabaseException(f"Invalid identifier: {name!r}")
    return ".".join(f'"{part}"' for part in parts)


class Table:
    """
    Stateless gateway between Records of one schema and a backing table.

    Parameters
    ----------
    db : DbInterface
        Database abstraction used for every statement.
    table_name : str
        Physical table name (configuration, never request input).
    schema : RecordSchema
        Row shape to hydrate into.
    hydrate : callable, optional
        Builds a Record from a fetched row. Defaults to ``schema.new``.
    """

    def __init__(
        self,
        db: DbInterface,
        table_name: str,
        schema: RecordSchema,
        hydrate: Optional[Callable[[Mapping[str, Any]], Record]] = None,
    ) -> None:
        if not table_name:
            raise DatabaseException("Table name must be defined.")
        self.db = db
        self.table_name = table_name
        self.schema = schema
        self._quoted_name = quote_identifier(table_name)
        self._hydrate = hydrate or schema.new

    def __repr__(self) -> str:
        return f"<Table {self.table_name} schema={self.schema.name}>"

    # -- reads ---------------------------------------------------------------

    def find_by_id(self, record_id: RecordId) -> Optional[Record]:
        """Return the record with this id, or None if no row matches."""
        param = self._id_param(record_id, self.schema.uses_uuid)
        sql = f'SELECT * FROM {self._quoted_name} WHERE "id" = %s'
        row = self._execute(sql, [param]).fetchone()
        if not row:
            return None
        return self._hydrate(self._from_storage(row))

    def find_where(
        self,
        where: Optional[str] = None,
        params: Optional[Sequence[Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Record]:
        """
        Return every record matching ``where``, in ``order_by`` order.

        ``limit`` and ``offset`` are bound after ``params``.
        """
        sql = f"SELECT * FROM {self._quoted_name}"
        bound: List[Any] = list(params or [])
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        if limit is not None:
            sql += " LIMIT %s"
            bound.append(limit)
        if offset is not None:
            sql += " OFFSET %s"
            bound.append(offset)

        rows = self._execute(sql, bound).fetchall()
        return [self._hydrate(self._from_storage(row)) for row in rows]

    def find_first(
        self,
        where: Optional[str] = None,
        params: Optional[Sequence[Any]] = None,
        order_by: Optional[str] = None,
    ) -> Optional[Record]:
        records = self.find_where(where, params, order_by=order_by, limit=1)
        return records[0] if records else None

    def count_by_where(
        self, where: Optional[str] = None, params: Optional[Sequence[Any]] = None
    ) -> int:
        sql = f"SELECT COUNT(*) AS aggregate FROM {self._quoted_name}"
        if where:
            sql += f" WHERE {where}"
        row = self._execute(sql, list(params or [])).fetchone()
        if not row:
            return 0
        return int(next(iter(row.values())))

    def paginate(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        where: Optional[str] = None,
        params: Optional[Sequence[Any]] = None,
        order_by: Optional[str] = None,
    ) -> Page:
        """
        Return one page of records plus pagination metadata.

        ``last_page`` is never below 1, so an empty table still reports a
        single (empty) page.

        Raises
        ------
        PreconditionError
            If ``page`` or ``per_page`` is not a positive integer.
        """
        if per_page is None:
            per_page = get_settings().pagination_per_page
        for label, value in (("page", page), ("per_page", per_page)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise PreconditionError(f"{label} must be a positive integer, got {value!r}")

        offset = (page - 1) * per_page
        data = self.find_where(where, params, order_by=order_by, limit=per_page, offset=offset)
        total = self.count_by_where(where, params)
        last_page = max(1, math.ceil(total / per_page))

        return Page(
            data=data,
            meta=PageMeta(
                total=total,
                page=page,
                per_page=per_page,
                last_page=last_page,
                has_more_pages=page < last_page,
            ),
        )

    # -- writes --------------------------------------------------------------

    def insert(self, record: Record) -> Record:
        """
        Insert one record and return it.

        For auto-increment schemas a missing id is filled from the store's
        last insert id. UUID ids were generated at construction and are kept.
        """
        data = self._payload(record)
        columns = list(data)
        sql = (
            f"INSERT INTO {self._quoted_name} ({self._column_list(columns)}) "
            f"VALUES ({self._placeholders(len(columns))})"
        )
        self._execute(sql, list(data.values()))

        if not record.uses_uuid() and record.id is None:
            record.id = self.db.insert_id()
        return record

    def insert_many(self, records: Sequence[Record]) -> Sequence[Record]:
        """
        Insert every record with a single multi-row statement.

        Returns ``records`` unchanged. Auto-increment ids are not written back
        onto the records; use ``insert`` when the new ids are needed.

        Raises
        ------
        PreconditionError
            If ``records`` is empty or the records do not share one column set.
        """
        if not records:
            raise PreconditionError("insert_many requires at least one record")

        payloads = [self._payload(record) for record in records]
        columns = list(payloads[0])
        expected = set(columns)
        params: List[Any] = []
        for index, payload in enumerate(payloads):
            if set(payload) != expected:
                raise PreconditionError(
                    f"Record #{index} columns {sorted(payload)} differ from {sorted(expected)}"
                )
            params.extend(payload[column] for column in columns)

        group = f"({self._placeholders(len(columns))})"
        sql = (
            f"INSERT INTO {self._quoted_name} ({self._column_list(columns)}) "
            f"VALUES {', '.join([group] * len(payloads))}"
        )
        self._execute(sql, params)
        return records

    def update(self, record: Record) -> int:
        """
        Write every non-id column of ``record`` back to its row.

        Returns the number of affected rows.
        """
        record_id = record.id
        if record_id is None or record_id == "":
            raise DatabaseException("Cannot update a record without an ID.")

        data = self._payload(record)
        data.pop("id", None)
        if not data:
            return 0
        key = self._id_param(record_id, record.uses_uuid())

        assignments = ", ".join(f"{quote_identifier(column)} = %s" for column in data)
        sql = f'UPDATE {self._quoted_name} SET {assignments} WHERE "id" = %s'
        cursor = self._execute(sql, [*data.values(), key])
        return self.db.affected_rows(cursor)

    def delete(self, record: Record) -> int:
        """Delete the row behind ``record`` and return the affected row count."""
        record_id = record.id
        if record_id is None or record_id == "":
            raise DatabaseException("Cannot delete a record without an ID.")

        key = self._id_param(record_id, record.uses_uuid())
        cursor = self._execute(f'DELETE FROM {self._quoted_name} WHERE "id" = %s', [key])
        return self.db.affected_rows(cursor)

    # -- helpers -------------------------------------------------------------

    def _execute(self, sql: str, params: List[Any]):
        log.debug(sql, extra={"table": self.table_name, "params": len(params)})
        return self.db.execute(sql, params)

    def _id_param(self, record_id: Any, uses_uuid: bool) -> Any:
        """Bound value for a WHERE "id" = %s clause."""
        return self.db.uuid_to_bin(record_id) if uses_uuid else record_id

    def _uuid_columns(self, record: Optional[Record] = None) -> Tuple[str, ...]:
        uses_uuid = record.uses_uuid() if record is not None else self.schema.uses_uuid
        extra = record.uuid_columns() if record is not None else self.schema.uuid_columns
        return ("id",) + tuple(extra) if uses_uuid else tuple(extra)

    def _payload(self, record: Record) -> Row:
        """Serialized record with UUID columns in storage form."""
        data = record.to_array()
        if not record.uses_uuid() and data.get("id") is None:
            # Let the store assign the auto-increment id.
            data.pop("id", None)
        for column in self._uuid_columns(record):
            if data.get(column) is not None:
                data[column] = self.db.uuid_to_bin(data[column])
        return data

    def _from_storage(self, row: Mapping[str, Any]) -> Row:
        """Fetched row with UUID columns back in canonical text form."""
        data = dict(row)
        for column in self._uuid_columns():
            if data.get(column) is not None:
                data[column] = self.db.bin_to_uuid(data[column])
        return data

    @staticmethod
    def _column_list(columns: Sequence[str]) -> str:
        return ", ".join(quote_identifier(column) for column in columns)

    @staticmethod
    def _placeholders(count: int) -> str:
        return ", ".join(["%s"] * count)


__all__ = ["Page", "PageMeta", "Table", "quote_identifier"]

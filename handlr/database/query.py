"""
Base class for hand-written read queries (reports, joins, aggregates).

Subclasses hold their SQL and expose domain-named methods built on the
protected helpers below:

    class ActiveUserQuery(Query):
        def emails(self) -> list[str]:
            return self._column("SELECT email FROM users WHERE active = %s", [True])
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

from handlr.database.db import BinaryUuid, DbInterface


class Query:
    def __init__(self, db: DbInterface) -> None:
        self.db = db

    def _rows(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Execute SQL and return all rows as dicts."""
        return list(self.db.execute(sql, params).fetchall())

    def _row(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        """Execute SQL and return the first row, or None if none."""
        row = self.db.execute(sql, params).fetchone()
        return row or None

    def _scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Execute SQL and return the first column of the first row."""
        row = self._row(sql, params)
        if row is None:
            return None
        return next(iter(row.values()))

    def _count(self, sql: str, params: Sequence[Any] = ()) -> int:
        return int(self._scalar(sql, params) or 0)

    def _column(self, sql: str, params: Sequence[Any] = ()) -> List[Any]:
        """Execute SQL and return the first column of every row."""
        return [next(iter(row.values())) for row in self._rows(sql, params)]

    def _uuid_to_bin(self, value: Union[str, BinaryUuid]) -> bytes:
        return self.db.uuid_to_bin(value)

    def _bin_to_uuid(self, value: Union[str, BinaryUuid]) -> str:
        return self.db.bin_to_uuid(value)


__all__ = ["Query"]

"""
Seed data loader.

Seed data maps table names to lists of row mappings. A row may carry a
``_relations`` mapping of child table names to child rows; every child row
gets the parent's id under ``<singular parent table>_id``:

    {
        "series": [
            {"title": "Dune", "_relations": {"books": [{"title": "Dune Messiah"}]}},
        ],
    }

inserts one ``series`` row, then one ``books`` row with ``series_id`` set.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from handlr.database.db import DbInterface
from handlr.database.record import RecordId
from handlr.database.table import Table, quote_identifier
from handlr.exceptions import DatabaseException
from handlr.utils.logging import get_logger

log = get_logger(__name__)

RELATIONS_KEY = "_relations"

SeedData = Mapping[str, Sequence[Mapping[str, Any]]]

_IRREGULAR_SINGULARS = {
    "series": "series",
    "species": "species",
    "news": "news",
    "data": "data",
    "children": "child",
    "people": "person",
    "men": "man",
    "women": "woman",
}
_ES_PLURAL_RE = re.compile(r"(s|x|z|ch|sh)es$", re.IGNORECASE)


def singularize(word: str) -> str:
    """Naive English singular, good enough for foreign key column names."""
    lower = word.lower()
    if lower in _IRREGULAR_SINGULARS:
        return _IRREGULAR_SINGULARS[lower]
    if len(word) > 3 and lower.endswith("ies"):
        return word[:-3] + "y"
    if len(word) > 2 and _ES_PLURAL_RE.search(word):
        return word[:-2]
    if len(word) > 1 and lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word


class Seeder:
    """
    Insert nested seed data through a registry of tables.

    Parameters
    ----------
    db : DbInterface
        Database used for truncation.
    tables : Mapping[str, Table]
        Seedable tables keyed by the names used in seed data.
    """

    def __init__(self, db: DbInterface, tables: Mapping[str, Table]) -> None:
        self.db = db
        self.tables = dict(tables)

    def seed(self, data: SeedData) -> Dict[str, int]:
        """
        Insert all rows in ``data``.

        Returns the number of records inserted per top-level table, nested
        relations included.
        """
        counts: Dict[str, int] = {}
        for table_name, rows in data.items():
            counts[table_name] = self._seed_table(table_name, rows)
            log.info(
                f"Seeded {table_name}",
                extra={"table": table_name, "rows": counts[table_name]},
            )
        return counts

    def collect_tables(self, data: SeedData) -> List[str]:
        """Table names used in ``data`` (nested included), first-seen order."""
        names: List[str] = []
        for table_name, rows in data.items():
            if table_name not in names:
                names.append(table_name)
            for row in rows:
                relations = row.get(RELATIONS_KEY) if isinstance(row, Mapping) else None
                if isinstance(relations, Mapping):
                    for nested in self.collect_tables(relations):
                        if nested not in names:
                            names.append(nested)
        return names

    def truncate(self, table_names: Iterable[str]) -> None:
        """Empty the given tables; names missing from the registry are skipped."""
        for table_name in table_names:
            table = self.tables.get(table_name)
            if table is None:
                continue
            self.db.execute(
                f"TRUNCATE TABLE {quote_identifier(table.table_name)} RESTART IDENTITY CASCADE"
            )
            log.info(f"Truncated {table.table_name}", extra={"table": table.table_name})

    def _seed_table(
        self,
        table_name: str,
        rows: Sequence[Mapping[str, Any]],
        parent_fk_column: Optional[str] = None,
        parent_id: RecordId = None,
    ) -> int:
        table = self._table(table_name)
        count = 0

        for row in rows:
            if not isinstance(row, Mapping):
                raise DatabaseException(f"Seed rows for '{table_name}' must be mappings")

            values = dict(row)
            relations = values.pop(RELATIONS_KEY, None) or {}
            if parent_fk_column is not None and parent_id is not None:
                values[parent_fk_column] = parent_id

            record = table.insert(table.schema.new(values))
            count += 1

            if relations:
                fk_column = f"{singularize(table.table_name.split('.')[-1])}_id"
                for related_name, related_rows in relations.items():
                    count += self._seed_table(related_name, related_rows, fk_column, record.id)

        return count

    def _table(self, table_name: str) -> Table:
        try:
            return self.tables[table_name]
        except KeyError:
            raise DatabaseException(f"Unknown seed table: {table_name}") from None


__all__ = ["Seeder", "SeedData", "singularize"]

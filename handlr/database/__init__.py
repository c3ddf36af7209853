"""
Data-mapping package for Handlr.

Records describe rows, tables move them in and out of the store through the
``DbInterface`` abstraction. Re-exported here so callers can import from
``handlr.database`` directly.
"""

from handlr.database.db import Db, DbInterface, ResultCursor, bin_to_uuid, pooled_db, uuid_to_bin
from handlr.database.migrations import Migration, MigrationRunner
from handlr.database.query import Query
from handlr.database.record import CastKind, Record, RecordId, RecordSchema, cast_value
from handlr.database.seeder import Seeder, singularize
from handlr.database.table import Page, PageMeta, Table, quote_identifier

__all__ = [
    # Records
    "CastKind",
    "Record",
    "RecordId",
    "RecordSchema",
    "cast_value",
    # Tables
    "Page",
    "PageMeta",
    "Table",
    "quote_identifier",
    # Store
    "Db",
    "DbInterface",
    "ResultCursor",
    "bin_to_uuid",
    "pooled_db",
    "uuid_to_bin",
    # Helpers
    "Migration",
    "MigrationRunner",
    "Query",
    "Seeder",
    "singularize",
]

"""
Handlr - a lightweight data-mapping layer for PostgreSQL.

Provides:

- Records: typed, lazily-cast row objects with optional UUID identity
- Tables: parameterized CRUD, bulk insert and pagination over a database
  abstraction, with UUID columns stored in binary form
- Seeders, migrations and hand-written queries built on the same abstraction
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from handlr.config import Settings, build_dsn, get_settings
from handlr.database import (
    CastKind,
    Db,
    DbInterface,
    Migration,
    MigrationRunner,
    Page,
    PageMeta,
    Query,
    Record,
    RecordSchema,
    Seeder,
    Table,
    pooled_db,
)
from handlr.exceptions import (
    CastError,
    DatabaseException,
    HandlrError,
    MalformedUuidError,
    PreconditionError,
    UnknownPropertyError,
)
from handlr.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "build_dsn",
    "get_settings",
    # Data mapping
    "CastKind",
    "Record",
    "RecordSchema",
    "Table",
    "Page",
    "PageMeta",
    "Query",
    "Seeder",
    "Migration",
    "MigrationRunner",
    # Store
    "Db",
    "DbInterface",
    "pooled_db",
    # Errors
    "HandlrError",
    "DatabaseException",
    "UnknownPropertyError",
    "CastError",
    "PreconditionError",
    "MalformedUuidError",
    # Logging
    "configure_logging",
    "get_logger",
]

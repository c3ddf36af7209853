"""
Infrastructure package for Handlr.

Centralizes database connectivity concerns (connection factory, pooling).
Keep this layer focused on I/O and resource management, decoupled from
record/table mapping logic.
"""

from handlr.infrastructure.db_factory import PoolManager, get_sync_connection, get_sync_pool

__all__ = [
    "PoolManager",
    "get_sync_connection",
    "get_sync_pool",
]

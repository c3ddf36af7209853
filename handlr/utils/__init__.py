"""
Utilities package for Handlr.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of data-mapping logic.
"""

from handlr.utils.logging import JsonFormatter, configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "JsonFormatter",
]

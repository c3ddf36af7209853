"""
Exception hierarchy for Handlr.

Every error raised by this package derives from ``HandlrError``. Errors raised
by the database driver (``psycopg.Error``) are never wrapped; they propagate
to the caller unchanged.
"""

from __future__ import annotations


class HandlrError(Exception):
    """Base class for all Handlr errors."""


class DatabaseException(HandlrError):
    """Misuse of the store layer (bad table configuration, missing id, ...)."""


class UnknownPropertyError(HandlrError, AttributeError):
    """A record property was read that is neither declared nor stored as an extra."""

    def __init__(self, record_name: str, prop: str) -> None:
        super().__init__(f"Unknown property '{prop}' on record '{record_name}'.")
        self.record_name = record_name
        self.prop = prop


class CastError(HandlrError, ValueError):
    """A declared cast could not convert the stored raw value."""

    def __init__(self, prop: str, kind: str, value: object) -> None:
        super().__init__(f"Cannot cast property '{prop}' value {value!r} to {kind}.")
        self.prop = prop
        self.kind = kind
        self.value = value


class PreconditionError(HandlrError, ValueError):
    """A call was made with arguments that can never succeed."""


class MalformedUuidError(HandlrError, ValueError):
    """A value destined for (or read from) a UUID column is not a UUID."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Malformed UUID value: {value!r}")
        self.value = value


__all__ = [
    "HandlrError",
    "DatabaseException",
    "UnknownPropertyError",
    "CastError",
    "PreconditionError",
    "MalformedUuidError",
]

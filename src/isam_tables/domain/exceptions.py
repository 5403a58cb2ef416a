"""Error taxonomy for the table access layer.

Every error raised to callers derives from IsamTablesError. Failures
reported by the storage engine that have no more specific meaning are
wrapped in EngineError with the original exception chained.
"""

from __future__ import annotations


class IsamTablesError(Exception):
    """Base class for all errors raised by the access layer."""


class SchemaError(IsamTablesError):
    """Malformed or conflicting schema, or a row that does not fit its schema."""


class NotFoundError(IsamTablesError):
    """A table or row was absent where an exact identity was required."""


class DuplicateKeyError(IsamTablesError):
    """An insert collided with an already present primary key."""

    def __init__(self, message: str, key: object = None) -> None:
        super().__init__(message)
        self.key = key


class InvalidStateError(IsamTablesError):
    """Operation attempted on a connection, table or transaction past its lifecycle."""


class AlreadyExistsError(IsamTablesError):
    """The backing database store already exists."""


class EngineError(IsamTablesError):
    """Opaque failure surfaced by the underlying storage engine."""

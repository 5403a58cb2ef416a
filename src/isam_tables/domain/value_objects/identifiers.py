"""Type-safe identifiers used throughout the access layer.

These give names to the raw strings and integers passed between the
application layer and the storage engine port.
"""

from __future__ import annotations

import re
from typing import NewType


TableName = NewType("TableName", str)
"""Name of a table, unique within a database."""

IndexName = NewType("IndexName", str)
"""Name of a secondary index, unique within a table."""

SessionId = NewType("SessionId", int)
"""Identifier of an engine session. One session backs one Connection."""

TransactionId = NewType("TransactionId", int)
"""Identifier of a transaction. Monotonically increasing per engine."""

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_valid_identifier(name: str) -> bool:
    """Return True if ``name`` can be used as a table, column or index name.

    Example:
        >>> is_valid_identifier("person")
        True
        >>> is_valid_identifier("1st")
        False
    """
    return bool(_IDENTIFIER_RE.match(name))

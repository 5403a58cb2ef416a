"""Column types and column property flags.

The set of column types is fixed and mirrors the scalar types the storage
engine can hold. Values are checked strictly: ``True`` is not an INTEGER and
``1`` is not a FLOAT, so that equality lookups never coerce between types.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum, Flag, auto
from typing import Any


class ColumnType(Enum):
    """Scalar types a column can be declared with."""

    INTEGER = "integer"
    STRING = "string"
    FLOAT = "float"
    BOOLEAN = "boolean"
    BYTES = "bytes"
    DATETIME = "datetime"

    @property
    def python_type(self) -> type:
        """The Python type that values of this column must have."""
        return _PYTHON_TYPES[self]

    def accepts(self, value: Any) -> bool:
        """Check whether ``value`` may be stored in a column of this type.

        ``None`` is accepted by every type; callers that forbid nulls (the
        primary key) check for it separately.
        """
        if value is None:
            return True
        return type(value) is self.python_type or (
            self is not ColumnType.INTEGER
            and self is not ColumnType.BOOLEAN
            and isinstance(value, self.python_type)
        )

    @classmethod
    def from_python(cls, python_type: type | ColumnType | str) -> ColumnType:
        """Resolve a column type from a Python type, a ColumnType or its name.

        Raises:
            ValueError: If the type has no column equivalent.
        """
        if isinstance(python_type, ColumnType):
            return python_type
        if isinstance(python_type, str):
            try:
                return cls(python_type.lower())
            except ValueError:
                raise ValueError(f"Unknown column type name: {python_type!r}") from None
        for column_type, candidate in _PYTHON_TYPES.items():
            if python_type is candidate:
                return column_type
        raise ValueError(f"No column type for Python type {python_type!r}")


_PYTHON_TYPES: dict[ColumnType, type] = {
    ColumnType.INTEGER: int,
    ColumnType.STRING: str,
    ColumnType.FLOAT: float,
    ColumnType.BOOLEAN: bool,
    ColumnType.BYTES: bytes,
    ColumnType.DATETIME: datetime,
}


class ColumnProperties(Flag):
    """Property flags of a column, combinable with ``|``."""

    NONE = 0
    PRIMARY_KEY = auto()
    AUTO_INCREMENT = auto()

    def normalized(self) -> ColumnProperties:
        """Return the flags with AUTO_INCREMENT implying PRIMARY_KEY."""
        if ColumnProperties.AUTO_INCREMENT in self:
            return self | ColumnProperties.PRIMARY_KEY
        return self

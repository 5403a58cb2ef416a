"""Row - one tuple of column-name-to-value data.

A Row carries no schema of its own. It is checked against the owning
table's definition only when it is written, and it is rebuilt from the
engine's stored record when it is read back.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any


class Row(MutableMapping[str, Any]):
    """An ordered mapping from column name to value.

    Rows compare equal to any other Row (or plain mapping) holding the same
    column/value pairs, regardless of insertion order.

    Example:
        >>> row = Row().set_value("ssn", 1000).set_value("name", "Booboo")
        >>> row["name"]
        'Booboo'
        >>> row == {"name": "Booboo", "ssn": 1000}
        True
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        self._values: dict[str, Any] = {}
        if values is not None:
            self._values.update(values)
        self._values.update(kwargs)

    def set_value(self, column: str, value: Any) -> Row:
        """Set a column value and return the row for chaining."""
        self[column] = value
        return self

    def copy(self) -> Row:
        """Return a shallow copy of this row."""
        return Row(self._values)

    @property
    def columns(self) -> list[str]:
        """Column names in insertion order."""
        return list(self._values)

    def __getitem__(self, column: str) -> Any:
        try:
            return self._values[column]
        except KeyError:
            raise KeyError(f"Column '{column}' not found") from None

    def __setitem__(self, column: str, value: Any) -> None:
        if not isinstance(column, str):
            raise TypeError(f"Column names must be strings, got {type(column).__name__}")
        self._values[column] = value

    def __delitem__(self, column: str) -> None:
        try:
            del self._values[column]
        except KeyError:
            raise KeyError(f"Column '{column}' not found") from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, column: object) -> bool:
        return column in self._values

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self._values == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        pairs = ", ".join(f"{c}={v!r}" for c, v in self._values.items())
        return f"Row({pairs})"


def matches(row: Mapping[str, Any], partial: Mapping[str, Any]) -> bool:
    """Check that ``row`` holds every value of ``partial``.

    Comparison is strict on type: ``1`` matches neither ``1.0`` nor ``True``.
    """
    for column, expected in partial.items():
        if column not in row:
            return False
        actual = row[column]
        if type(actual) is not type(expected) or actual != expected:
            return False
    return True

"""Table schema model: columns, indexes and the table definition builder.

TableDefinition is built incrementally and declaratively:

    definition = (
        TableDefinition("person")
        .add_column("id", int, ColumnProperties.PRIMARY_KEY | ColumnProperties.AUTO_INCREMENT)
        .add_column("lastname", str)
        .add_index("lastname")
    )

The model is pure data. Nothing here touches the storage engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from isam_tables.domain.exceptions import SchemaError
from isam_tables.domain.value_objects import (
    ColumnProperties,
    ColumnType,
    is_valid_identifier,
)


@dataclass(frozen=True, init=False)
class ColumnDefinition:
    """A single typed column.

    Attributes:
        name: Column name, unique within its table.
        column_type: Declared scalar type.
        properties: PRIMARY_KEY / AUTO_INCREMENT flags.
        default: Value read back for rows stored before the column existed.
    """

    name: str
    column_type: ColumnType
    properties: ColumnProperties = ColumnProperties.NONE
    default: Any = None

    def __init__(
        self,
        name: str,
        column_type: ColumnType | type | str,
        properties: ColumnProperties = ColumnProperties.NONE,
        default: Any = None,
    ) -> None:
        if not isinstance(name, str) or not is_valid_identifier(name):
            raise SchemaError(f"Invalid column name: {name!r}")
        try:
            resolved_type = ColumnType.from_python(column_type)
        except ValueError as e:
            raise SchemaError(f"Column '{name}': {e}") from e

        properties = properties.normalized()
        if ColumnProperties.AUTO_INCREMENT in properties and resolved_type is not ColumnType.INTEGER:
            raise SchemaError(
                f"Column '{name}' is AUTO_INCREMENT but has type {resolved_type.value}"
            )
        if not resolved_type.accepts(default):
            raise SchemaError(
                f"Default {default!r} of column '{name}' is not a {resolved_type.value}"
            )
        if default is not None and ColumnProperties.PRIMARY_KEY in properties:
            raise SchemaError(f"Primary key column '{name}' cannot declare a default")

        object.__setattr__(self, "name", name)
        object.__setattr__(self, "column_type", resolved_type)
        object.__setattr__(self, "properties", properties)
        object.__setattr__(self, "default", default)

    @property
    def is_primary_key(self) -> bool:
        return ColumnProperties.PRIMARY_KEY in self.properties

    @property
    def is_auto_increment(self) -> bool:
        return ColumnProperties.AUTO_INCREMENT in self.properties

    def accepts(self, value: Any) -> bool:
        """Check whether ``value`` fits this column."""
        if value is None and self.is_primary_key:
            return False
        return self.column_type.accepts(value)


@dataclass(frozen=True)
class IndexDefinition:
    """A named secondary index over one or more columns (in key order)."""

    name: str
    columns: tuple[str, ...]

    def leading_match(self, filtered: Iterable[str]) -> int:
        """Number of leading index columns contained in ``filtered``.

        An index can serve an equality lookup on exactly these leading
        columns as a key prefix.
        """
        wanted = set(filtered)
        count = 0
        for column in self.columns:
            if column not in wanted:
                break
            count += 1
        return count


@dataclass
class TableDefinition:
    """Declared structure of a table: ordered columns plus secondary indexes."""

    name: str
    _columns: dict[str, ColumnDefinition] = field(default_factory=dict, init=False, repr=False)
    _indexes: dict[str, IndexDefinition] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not is_valid_identifier(self.name):
            raise SchemaError(f"Invalid table name: {self.name!r}")

    @property
    def columns(self) -> tuple[ColumnDefinition, ...]:
        """Columns in declaration order."""
        return tuple(self._columns.values())

    @property
    def column_names(self) -> list[str]:
        return list(self._columns)

    @property
    def indexes(self) -> tuple[IndexDefinition, ...]:
        return tuple(self._indexes.values())

    @property
    def primary_key(self) -> ColumnDefinition | None:
        """The primary-key column, or None if none is declared yet."""
        for column in self._columns.values():
            if column.is_primary_key:
                return column
        return None

    def key_column(self) -> ColumnDefinition:
        """Return the primary-key column.

        Raises:
            SchemaError: If no primary key is declared.
        """
        primary_key = self.primary_key
        if primary_key is None:
            raise SchemaError(f"Table '{self.name}' declares no primary key")
        return primary_key

    def has_column(self, name: str) -> bool:
        return name in self._columns

    def column(self, name: str) -> ColumnDefinition:
        """Get a column by name.

        Raises:
            SchemaError: If the column is not declared.
        """
        try:
            return self._columns[name]
        except KeyError:
            raise SchemaError(f"Table '{self.name}' has no column '{name}'") from None

    def index(self, name: str) -> IndexDefinition:
        try:
            return self._indexes[name]
        except KeyError:
            raise SchemaError(f"Table '{self.name}' has no index '{name}'") from None

    def add_column(
        self,
        column: ColumnDefinition | str,
        column_type: ColumnType | type | str | None = None,
        properties: ColumnProperties = ColumnProperties.NONE,
        default: Any = None,
    ) -> TableDefinition:
        """Append a column and return the definition for chaining.

        Accepts either a ready ColumnDefinition or the arguments to build one.

        Raises:
            SchemaError: If the name is taken or a second primary key is declared.
        """
        if not isinstance(column, ColumnDefinition):
            if column_type is None:
                raise SchemaError(f"Column '{column}' needs a type")
            column = ColumnDefinition(column, column_type, properties, default)

        if column.name in self._columns:
            raise SchemaError(f"Column '{column.name}' already exists in table '{self.name}'")
        if column.is_primary_key and self.primary_key is not None:
            raise SchemaError(
                f"Table '{self.name}' already has primary key '{self.primary_key.name}'"
            )

        self._columns[column.name] = column
        return self

    def add_index(self, *column_names: str, name: str | None = None) -> TableDefinition:
        """Register a secondary index over existing columns.

        Raises:
            SchemaError: If a column is undefined or the index name is taken.
        """
        if not column_names:
            raise SchemaError("An index needs at least one column")
        if len(set(column_names)) != len(column_names):
            raise SchemaError(f"Index columns repeat: {column_names}")
        for column_name in column_names:
            if column_name not in self._columns:
                raise SchemaError(
                    f"Cannot index undefined column '{column_name}' in table '{self.name}'"
                )

        index_name = name or f"ix_{self.name}_{'_'.join(column_names)}"
        if not is_valid_identifier(index_name):
            raise SchemaError(f"Invalid index name: {index_name!r}")
        if index_name in self._indexes:
            raise SchemaError(f"Index '{index_name}' already exists in table '{self.name}'")

        self._indexes[index_name] = IndexDefinition(name=index_name, columns=tuple(column_names))
        return self

    def validate(self) -> None:
        """Check that the definition can back a table.

        Raises:
            SchemaError: If no primary key is declared.
        """
        self.key_column()

    def copy(self) -> TableDefinition:
        clone = TableDefinition(self.name)
        clone._columns = dict(self._columns)
        clone._indexes = dict(self._indexes)
        return clone

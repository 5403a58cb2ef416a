"""Table - CRUD, lookup and schema evolution on one table of a connection.

A Table is a view over engine state, not a container: every read goes to
the engine, so ``count`` and ``get_rows`` always reflect what the
connection can currently see (committed data plus its own uncommitted
writes).

Row lookup paths:
    get_row(key)         exact primary-key seek
    get_rows(partial)    primary-key seek if the key is given, else the
                         secondary index with the longest filtered prefix,
                         else a full scan; always post-filtered
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from types import TracebackType
from typing import TYPE_CHECKING, Any, Iterator, Mapping, MutableMapping

from isam_tables.application.engine_errors import engine_errors
from isam_tables.application.schema_mapping import from_engine_spec, to_engine_column
from isam_tables.domain.entities import (
    ColumnDefinition,
    IndexDefinition,
    Row,
    TableDefinition,
    matches,
)
from isam_tables.domain.exceptions import InvalidStateError, NotFoundError, SchemaError
from isam_tables.domain.value_objects import ColumnProperties, ColumnType, TableName
from isam_tables.infrastructure.logging import get_logger
from isam_tables.ports.outbound import EngineCursor

if TYPE_CHECKING:
    from isam_tables.application.connection import Connection

logger = get_logger(__name__)


class Table:
    """A table bound to a connection. Obtained from Connection.create_table/get_table.

    Not thread-safe.
    """

    def __init__(self, connection: Connection, definition: TableDefinition) -> None:
        self._connection = connection
        self._definition = definition
        self._closed = False
        self._logger = logger.bind(table=definition.name)

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def definition(self) -> TableDefinition:
        """The table schema, including columns added through other handles."""
        if not self._closed and not self._connection.is_closed:
            self._schema()
        return self._definition

    @property
    def primary_key(self) -> ColumnDefinition:
        return self._definition.key_column()

    @property
    def columns(self) -> list[ColumnDefinition]:
        return list(self.definition.columns)

    @property
    def count(self) -> int:
        """Number of rows visible to this connection."""
        with self._operation("count"):
            with engine_errors():
                return self._cursor().count()

    def __len__(self) -> int:
        return self.count

    def _check_open(self) -> None:
        if self._closed:
            raise InvalidStateError(f"Table '{self.name}' is closed")
        self._connection.check_open()

    def _schema(self) -> TableDefinition:
        """Return the definition, reloaded if the stored schema has grown.

        Columns are only ever added, so a differing column count means
        another handle changed the schema.
        """
        self._check_open()
        with engine_errors():
            spec = self._connection.session.get_table_spec(self.name)
        if spec is None:
            raise NotFoundError(f"Table '{self.name}' does not exist")
        if len(spec.columns) != len(self._definition.columns):
            self._definition = from_engine_spec(spec)
        return self._definition

    def _cursor(self) -> EngineCursor:
        self._check_open()
        with engine_errors():
            return self._connection.session.open_cursor(self.name)

    @contextmanager
    def _operation(self, operation: str) -> Iterator[None]:
        metrics = self._connection.manager.metrics
        start = time.perf_counter()
        try:
            yield
        except Exception:
            metrics.table_operations_total.labels(operation=operation, status="error").inc()
            raise
        else:
            metrics.table_operations_total.labels(operation=operation, status="success").inc()
        finally:
            metrics.operation_latency_seconds.labels(operation=operation).observe(
                time.perf_counter() - start
            )

    def _check_key(self, key: Any) -> None:
        if not self.primary_key.accepts(key):
            raise SchemaError(
                f"Key {key!r} is not a valid {self.primary_key.column_type.value} "
                f"for table '{self.name}'"
            )

    def _check_values(self, row: Mapping[str, Any]) -> None:
        """Check that every value in ``row`` fits a declared column. The key is checked separately."""
        key_column = self.primary_key.name
        for column_name, value in row.items():
            if not self._definition.has_column(column_name):
                raise SchemaError(f"Table '{self.name}' has no column '{column_name}'")
            if column_name == key_column:
                continue
            column = self._definition.column(column_name)
            if not column.accepts(value):
                raise SchemaError(
                    f"Value {value!r} of column '{column_name}' is not a {column.column_type.value}"
                )

    def _complete(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Fill every declared column, using defaults for absent ones."""
        return {c.name: record.get(c.name, c.default) for c in self._definition.columns}

    def _to_row(self, record: Mapping[str, Any]) -> Row:
        return Row(self._complete(record))

    def insert(self, row: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        """Insert a new row.

        A missing or None auto-increment key is allocated and written back
        into ``row``.

        Returns:
            ``row``, with its key set.

        Raises:
            SchemaError: If a column is unknown, a value has the wrong type,
                or the key is missing and not auto-increment.
            DuplicateKeyError: If the key already exists.
        """
        with self._operation("insert"):
            self._schema()
            self._check_values(row)
            cursor = self._cursor()
            key_column = self.primary_key
            key = row.get(key_column.name)
            allocated = False
            if key is None:
                if not key_column.is_auto_increment:
                    raise SchemaError(
                        f"Row has no value for primary key '{key_column.name}' of table '{self.name}'"
                    )
                with engine_errors():
                    key = self._connection.manager.sequences.allocate(
                        TableName(self.name), cursor.seek_last
                    )
                allocated = True
            else:
                self._check_key(key)

            record = self._complete(row)
            record[key_column.name] = key
            with engine_errors():
                cursor.insert(record)

            if allocated:
                row[key_column.name] = key
            return row

    def upsert(self, row: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        """Insert ``row``, or update the columns it carries if its key exists.

        Columns absent from ``row`` keep their stored values on update.
        """
        key = row.get(self.primary_key.name)
        if key is None:
            return self.insert(row)

        with self._operation("upsert"):
            self._schema()
            self._check_values(row)
            self._check_key(key)
            cursor = self._cursor()
            with engine_errors():
                existing = cursor.seek_exact(key)
                if existing is None:
                    cursor.insert(self._complete(row))
                else:
                    merged = self._complete(existing)
                    merged.update(row)
                    cursor.update(key, merged)
            return row

    def get_row(self, key: Any) -> Row:
        """Return the row stored under ``key``.

        Raises:
            NotFoundError: If no row has that key.
        """
        with self._operation("get_row"):
            self._schema()
            self._check_key(key)
            with engine_errors():
                record = self._cursor().seek_exact(key)
            if record is None:
                raise NotFoundError(f"No row with key {key!r} in table '{self.name}'")
            return self._to_row(record)

    def exists(self, key: Any) -> bool:
        with self._operation("exists"):
            self._check_key(key)
            with engine_errors():
                return self._cursor().seek_exact(key) is not None

    def delete(self, key: Any) -> None:
        """Delete the row stored under ``key``.

        Raises:
            NotFoundError: If no row has that key.
        """
        with self._operation("delete"):
            self._check_key(key)
            with engine_errors():
                self._cursor().delete(key)

    def get_rows(self, partial: Mapping[str, Any] | None = None) -> Iterator[Row]:
        """Iterate over the rows matching every value of ``partial``.

        With no filter every row is returned in key order. The filter is
        checked eagerly; rows are fetched lazily.

        Raises:
            SchemaError: If the filter names an unknown column.
        """
        filters = dict(partial or {})
        self._schema()
        for column_name in filters:
            if not self._definition.has_column(column_name):
                raise SchemaError(f"Table '{self.name}' has no column '{column_name}'")
        cursor = self._cursor()
        return self._iter_rows(cursor, filters)

    def _choose_index(self, filters: Mapping[str, Any]) -> tuple[IndexDefinition | None, int]:
        best: IndexDefinition | None = None
        best_width = 0
        for index in self._definition.indexes:
            width = index.leading_match(filters)
            if width > best_width:
                best, best_width = index, width
        return best, best_width

    def _iter_rows(self, cursor: EngineCursor, filters: dict[str, Any]) -> Iterator[Row]:
        key_column = self.primary_key.name
        records: Iterator[Mapping[str, Any]]
        index, width = self._choose_index(filters)
        if key_column in filters:
            access_path = "key"
            key = filters[key_column]
            with engine_errors():
                found = cursor.seek_exact(key) if self.primary_key.accepts(key) else None
            records = iter([found] if found is not None else [])
        elif index is not None:
            access_path = "index"
            prefix = tuple(filters[c] for c in index.columns[:width])
            with engine_errors():
                records = cursor.seek_range(index.name, prefix)
        else:
            access_path = "scan"
            with engine_errors():
                records = cursor.scan_all()

        rows_scanned = self._connection.manager.metrics.rows_scanned_total.labels(
            access_path=access_path
        )
        with engine_errors():
            for record in records:
                rows_scanned.inc()
                row = self._to_row(record)
                if matches(row, filters):
                    yield row

    def truncate(self) -> None:
        """Remove every row atomically, keeping the schema."""
        with self._operation("truncate"):
            cursor = self._cursor()
            session = self._connection.session
            implicit = not session.in_transaction
            with engine_errors():
                if implicit:
                    session.begin()
                try:
                    keys = [record[self.primary_key.name] for record in cursor.scan_all()]
                    for key in keys:
                        cursor.delete(key)
                    if implicit:
                        session.commit()
                except BaseException:
                    if implicit and session.in_transaction:
                        session.rollback()
                    raise
            self._logger.info("table_truncated", rows=len(keys))

    def add_column(
        self,
        column: ColumnDefinition | str,
        column_type: ColumnType | type | str | None = None,
        properties: ColumnProperties = ColumnProperties.NONE,
        default: Any = None,
    ) -> Table:
        """Add a column. Existing rows read it back as its default.

        Raises:
            SchemaError: If the column exists or is a primary key.
        """
        with self._operation("add_column"):
            self._schema()
            if not isinstance(column, ColumnDefinition):
                if column_type is None:
                    raise SchemaError(f"Column '{column}' needs a type")
                column = ColumnDefinition(column, column_type, properties, default)
            if column.is_primary_key:
                raise SchemaError(
                    f"Cannot add primary key column '{column.name}' to existing table '{self.name}'"
                )
            if self._definition.has_column(column.name):
                raise SchemaError(f"Column '{column.name}' already exists in table '{self.name}'")
            with engine_errors():
                self._connection.session.add_column(self.name, to_engine_column(column))
            self._definition.add_column(column)
            self._logger.info("column_added", column=column.name, type=column.column_type.value)
            return self

    def close(self) -> None:
        """Detach the handle. The table and its rows are unaffected."""
        self._closed = True

    def __enter__(self) -> Table:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Table(name={self.name!r}, columns={self._definition.column_names})"

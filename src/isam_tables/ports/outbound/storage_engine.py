"""Storage Engine port - the ISAM engine the access layer sits on.

This outbound port is the only contract the access layer relies on for
physical storage. The engine provides:
- create/open a database by path
- create a table with typed columns, a key column and named indexes
- add a column to an existing table
- cursors: seek by key, seek by index prefix, insert, update, delete, scan
- flat transactions per session: begin/commit/rollback

Records cross the port as plain ``dict[str, Any]``. A stored record may
lack columns that were added after it was written; the access layer fills
those in from the schema.

Engines report their own error signals (EngineFailure subclasses below),
which the access layer translates into its public error taxonomy.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Protocol

from isam_tables.domain.value_objects import (
    ColumnType,
    IndexName,
    SessionId,
    TableName,
)


EngineRecord = dict[str, Any]


@dataclass(frozen=True)
class EngineColumnSpec:
    """A typed column as stored in engine metadata."""

    name: str
    column_type: ColumnType
    primary_key: bool = False
    auto_increment: bool = False
    default: Any = None


@dataclass(frozen=True)
class EngineIndexSpec:
    """A secondary index as stored in engine metadata."""

    name: IndexName
    columns: tuple[str, ...]


@dataclass
class EngineTableSpec:
    """Table metadata as stored by the engine."""

    name: TableName
    key_column: str
    columns: list[EngineColumnSpec] = field(default_factory=list)
    indexes: list[EngineIndexSpec] = field(default_factory=list)

    def index(self, name: str) -> EngineIndexSpec | None:
        for index in self.indexes:
            if index.name == name:
                return index
        return None


class EngineCursor(Protocol):
    """Protocol for a cursor over one table within a session.

    Reads see committed data plus the session's own uncommitted writes.
    Writes go to the session's open transaction, or are committed
    immediately when none is open.
    """

    @abstractmethod
    def seek_exact(self, key: Any) -> EngineRecord | None:
        """Return a copy of the record stored under ``key``, or None."""
        ...

    @abstractmethod
    def seek_range(self, index_name: str, prefix: tuple[Any, ...]) -> Iterator[EngineRecord]:
        """Yield records whose leading index columns equal ``prefix``.

        Raises:
            EngineFailure: If the index does not exist.
        """
        ...

    @abstractmethod
    def seek_last(self) -> Any | None:
        """Return the largest key in the table, or None if it is empty."""
        ...

    @abstractmethod
    def insert(self, record: EngineRecord) -> None:
        """Insert a record.

        Raises:
            EngineKeyExistsError: If the key is already present.
        """
        ...

    @abstractmethod
    def update(self, key: Any, record: EngineRecord) -> None:
        """Replace the record stored under ``key``.

        Raises:
            EngineKeyNotFoundError: If the key is absent.
        """
        ...

    @abstractmethod
    def delete(self, key: Any) -> None:
        """Delete the record stored under ``key``.

        Raises:
            EngineKeyNotFoundError: If the key is absent.
        """
        ...

    @abstractmethod
    def scan_all(self) -> Iterator[EngineRecord]:
        """Yield every record in key order."""
        ...

    @abstractmethod
    def count(self) -> int:
        """Return the number of records visible to the session."""
        ...


class EngineSession(Protocol):
    """Protocol for one engine session (one per Connection).

    A session runs at most one flat transaction at a time.
    Schema changes are applied immediately and are not transactional.
    """

    @property
    @abstractmethod
    def session_id(self) -> SessionId:
        ...

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """True while a transaction is open on this session."""
        ...

    @abstractmethod
    def create_table(self, spec: EngineTableSpec) -> None:
        """Create a table and its indexes.

        Raises:
            EngineTableExistsError: If the name is taken.
        """
        ...

    @abstractmethod
    def add_column(self, table: str, column: EngineColumnSpec) -> None:
        """Add a column to a table without rewriting stored records.

        Raises:
            EngineTableNotFoundError: If the table does not exist.
            EngineColumnExistsError: If the column already exists.
        """
        ...

    @abstractmethod
    def get_table_spec(self, table: str) -> EngineTableSpec | None:
        """Return the table metadata, or None if the table does not exist."""
        ...

    @abstractmethod
    def list_tables(self) -> list[TableName]:
        ...

    @abstractmethod
    def open_cursor(self, table: str) -> EngineCursor:
        """Open a cursor over a table.

        Raises:
            EngineTableNotFoundError: If the table does not exist.
        """
        ...

    @abstractmethod
    def begin(self) -> None:
        """Begin a transaction.

        Raises:
            EngineTransactionError: If a transaction is already open.
        """
        ...

    @abstractmethod
    def commit(self) -> None:
        """Atomically apply the open transaction's writes.

        On failure the transaction is discarded before the error is raised.

        Raises:
            EngineTransactionError: If no transaction is open.
            EngineKeyExistsError: If a write conflicts with committed data.
        """
        ...

    @abstractmethod
    def rollback(self) -> None:
        """Discard the open transaction's writes.

        Raises:
            EngineTransactionError: If no transaction is open.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Discard any open transaction and release the session."""
        ...


class StorageEngine(Protocol):
    """Protocol for the storage engine itself."""

    @abstractmethod
    def create_database(self, path: str | Path) -> None:
        """Create the backing store for a database.

        Raises:
            EngineDatabaseExistsError: If it already exists.
        """
        ...

    @abstractmethod
    def database_exists(self, path: str | Path) -> bool:
        ...

    @abstractmethod
    def open_session(self, path: str | Path) -> EngineSession:
        """Open a session on an existing database.

        Raises:
            EngineDatabaseNotFoundError: If the database does not exist.
        """
        ...


class EngineFailure(Exception):
    """Base class for errors signalled by a storage engine."""


class EngineDatabaseExistsError(EngineFailure):
    """The database store already exists."""


class EngineDatabaseNotFoundError(EngineFailure):
    """The database store does not exist."""


class EngineTableExistsError(EngineFailure):
    """A table with that name already exists."""


class EngineTableNotFoundError(EngineFailure):
    """The table does not exist."""


class EngineColumnExistsError(EngineFailure):
    """A column with that name already exists."""


class EngineKeyExistsError(EngineFailure):
    """The key is already present."""

    def __init__(self, message: str, key: Any = None) -> None:
        super().__init__(message)
        self.key = key


class EngineKeyNotFoundError(EngineFailure):
    """The key is absent."""

    def __init__(self, message: str, key: Any = None) -> None:
        super().__init__(message)
        self.key = key


class EngineTransactionError(EngineFailure):
    """Transaction begin/commit/rollback called in the wrong state."""

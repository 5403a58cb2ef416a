"""In-memory implementation of the StorageEngine port.

Each database holds its committed tables behind a single lock. A table is a
primary B+Tree (key -> record) plus one B+Tree per secondary index
(index values + key -> key).

Sessions isolate uncommitted work in a private write set:

    session.begin()
    cursor.insert(...)      # recorded in the write set only
    cursor.seek_exact(...)  # sees the write set over committed data
    session.commit()        # validated and applied atomically under the lock

Other sessions never observe a write set, which gives read-committed
isolation with read-your-own-writes. A commit whose insert collides with a
key committed meanwhile by another session fails with
EngineKeyExistsError and the write set is discarded. Writes issued outside
a transaction are committed one by one.

Thread Safety:
    Engine, databases and sessions may be shared across threads; cursors
    and a session's open transaction belong to one logical flow.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterator

from isam_tables.adapters.outbound.btree import (
    DEFAULT_MAX_KEYS,
    BTree,
    SortKey,
    composite_key,
    key_value,
    sort_key,
)
from isam_tables.domain.value_objects import SessionId, TableName, TransactionId
from isam_tables.infrastructure.logging import get_logger
from isam_tables.ports.outbound.storage_engine import (
    EngineColumnExistsError,
    EngineColumnSpec,
    EngineDatabaseExistsError,
    EngineDatabaseNotFoundError,
    EngineFailure,
    EngineIndexSpec,
    EngineKeyExistsError,
    EngineKeyNotFoundError,
    EngineRecord,
    EngineTableExistsError,
    EngineTableNotFoundError,
    EngineTableSpec,
    EngineTransactionError,
)

logger = get_logger(__name__)


def copy_spec(spec: EngineTableSpec) -> EngineTableSpec:
    """Copy table metadata so callers cannot mutate engine state."""
    return replace(spec, columns=list(spec.columns), indexes=list(spec.indexes))


@dataclass(frozen=True)
class Change:
    """Net effect of a committed write on one key. ``record`` None means deleted."""

    table: TableName
    key: Any
    record: EngineRecord | None


class StoredTable:
    """Committed contents of one table."""

    def __init__(self, spec: EngineTableSpec, max_keys: int) -> None:
        self.spec = spec
        self.primary = BTree(max_keys)
        self.indexes: dict[str, BTree] = {
            index.name: BTree(max_keys) for index in spec.indexes
        }

    def _column_value(self, record: EngineRecord, column: str) -> Any:
        if column in record:
            return record[column]
        for spec in self.spec.columns:
            if spec.name == column:
                return spec.default
        return None

    def index_key(self, index: EngineIndexSpec, record: EngineRecord) -> SortKey:
        values = tuple(self._column_value(record, c) for c in index.columns)
        return composite_key(values + (record[self.spec.key_column],))

    def matches_prefix(self, index: EngineIndexSpec, record: EngineRecord, prefix: SortKey) -> bool:
        return self.index_key(index, record)[: len(prefix)] == prefix

    def get(self, key: Any) -> EngineRecord | None:
        found, record = self.primary.search(sort_key(key))
        return record if found else None

    def contains(self, key: Any) -> bool:
        return self.primary.contains(sort_key(key))

    def put(self, record: EngineRecord) -> None:
        """Insert or replace a record, maintaining every secondary index.

        Every key is built before the first tree is touched, so a record
        that cannot be keyed leaves the table unchanged.
        """
        key = record[self.spec.key_column]
        primary_key = sort_key(key)
        previous = self.get(key)
        stale = (
            []
            if previous is None
            else [(index.name, self.index_key(index, previous)) for index in self.spec.indexes]
        )
        fresh = [(index.name, self.index_key(index, record)) for index in self.spec.indexes]

        for name, index_key in stale:
            self.indexes[name].delete(index_key)
        if previous is not None:
            self.primary.replace(primary_key, record)
        else:
            self.primary.insert(primary_key, record)
        for name, index_key in fresh:
            self.indexes[name].insert(index_key, key)

    def remove(self, key: Any) -> bool:
        previous = self.get(key)
        if previous is None:
            return False
        self._unindex(previous)
        self.primary.delete(sort_key(key))
        return True

    def _unindex(self, record: EngineRecord) -> None:
        for index in self.spec.indexes:
            self.indexes[index.name].delete(self.index_key(index, record))


class Database:
    """Committed state of one database.

    Subclasses persist schema changes and commits by overriding
    ``log_schema`` and ``log_commit``; both are called with the lock held,
    before the change is applied in memory.
    """

    def __init__(self, path: str, max_keys: int = DEFAULT_MAX_KEYS) -> None:
        self.path = path
        self.lock = threading.RLock()
        self.tables: dict[TableName, StoredTable] = {}
        self._max_keys = max_keys

    def log_schema(self, entry: dict[str, Any]) -> None:
        """Hook for persisting a schema change."""

    def log_commit(self, changes: list[Change]) -> None:
        """Hook for persisting a committed write set."""

    def close(self) -> None:
        """Hook for releasing resources held by the database."""

    def table(self, name: str) -> StoredTable:
        try:
            return self.tables[TableName(name)]
        except KeyError:
            raise EngineTableNotFoundError(f"Table '{name}' does not exist") from None

    def create_table(self, spec: EngineTableSpec) -> None:
        with self.lock:
            if spec.name in self.tables:
                raise EngineTableExistsError(f"Table '{spec.name}' already exists")
            column_names = {c.name for c in spec.columns}
            if spec.key_column not in column_names:
                raise EngineFailure(f"Key column '{spec.key_column}' is not a column of '{spec.name}'")
            for index in spec.indexes:
                missing = [c for c in index.columns if c not in column_names]
                if missing:
                    raise EngineFailure(f"Index '{index.name}' references unknown columns {missing}")
            self.log_schema({"op": "create_table", "spec": spec})
            self.tables[spec.name] = StoredTable(copy_spec(spec), self._max_keys)

    def add_column(self, table_name: str, column: EngineColumnSpec) -> None:
        with self.lock:
            table = self.table(table_name)
            if any(c.name == column.name for c in table.spec.columns):
                raise EngineColumnExistsError(
                    f"Column '{column.name}' already exists in table '{table_name}'"
                )
            self.log_schema({"op": "add_column", "table": table_name, "column": column})
            table.spec.columns.append(column)

    def apply(self, changes: list[Change]) -> None:
        """Apply a validated write set. Caller holds the lock."""
        self.log_commit(changes)
        for change in changes:
            table = self.table(change.table)
            if change.record is None:
                table.remove(change.key)
            else:
                table.put(dict(change.record))


@dataclass
class PendingWrite:
    """Latest uncommitted state of one key within a write set."""

    key: Any
    record: EngineRecord | None
    existed_before: bool


@dataclass
class WriteSet:
    """Uncommitted writes of one transaction, per table and key."""

    txn_id: TransactionId
    tables: dict[TableName, dict[SortKey, PendingWrite]] = field(default_factory=dict)

    def for_table(self, table: str) -> dict[SortKey, PendingWrite]:
        return self.tables.setdefault(TableName(table), {})

    def changes(self) -> list[Change]:
        return [
            Change(table=table, key=pending.key, record=pending.record)
            for table, pending_writes in self.tables.items()
            for pending in pending_writes.values()
        ]


class MemoryCursor:
    """Cursor over one table of a MemorySession."""

    def __init__(self, session: MemorySession, table: str) -> None:
        self._session = session
        self._table_name = TableName(table)

    def _stored(self) -> StoredTable:
        return self._session.database.table(self._table_name)

    def _pending(self) -> dict[SortKey, PendingWrite]:
        write_set = self._session.write_set
        if write_set is None:
            return {}
        return write_set.tables.get(self._table_name, {})

    def _key_of(self, record: EngineRecord) -> Any:
        key_column = self._stored().spec.key_column
        if record.get(key_column) is None:
            raise EngineFailure(f"Record has no value for key column '{key_column}'")
        return record[key_column]

    def seek_exact(self, key: Any) -> EngineRecord | None:
        self._session.check_open()
        pending = self._pending().get(sort_key(key))
        if pending is not None:
            return dict(pending.record) if pending.record is not None else None
        with self._session.database.lock:
            record = self._stored().get(key)
            return dict(record) if record is not None else None

    def seek_range(self, index_name: str, prefix: tuple[Any, ...]) -> Iterator[EngineRecord]:
        self._session.check_open()
        pending = dict(self._pending())
        with self._session.database.lock:
            stored = self._stored()
            index = stored.spec.index(index_name)
            if index is None:
                raise EngineFailure(f"Table '{self._table_name}' has no index '{index_name}'")
            if len(prefix) > len(index.columns):
                raise EngineFailure(f"Prefix longer than index '{index_name}'")
            key_prefix = composite_key(prefix)
            found = [
                (index_key, dict(stored.get(key)))
                for index_key, key in stored.indexes[index_name].prefix_scan(key_prefix)
                if sort_key(key) not in pending
            ]
            for write in pending.values():
                if write.record is not None and stored.matches_prefix(index, write.record, key_prefix):
                    found.append((stored.index_key(index, write.record), dict(write.record)))
        found.sort(key=lambda item: item[0])
        for _, record in found:
            yield record

    def seek_last(self) -> Any | None:
        self._session.check_open()
        with self._session.database.lock:
            last = self._stored().primary.last_key()
        candidates = [last] if last is not None else []
        candidates.extend(k for k, w in self._pending().items() if w.record is not None)
        if not candidates:
            return None
        return key_value(max(candidates))

    def insert(self, record: EngineRecord) -> None:
        key = self._key_of(record)
        if self.seek_exact(key) is not None:
            raise EngineKeyExistsError(f"Key {key!r} already exists in '{self._table_name}'", key)
        self._session.write(self._table_name, key, dict(record), expect_present=False)

    def update(self, key: Any, record: EngineRecord) -> None:
        if self.seek_exact(key) is None:
            raise EngineKeyNotFoundError(f"Key {key!r} not found in '{self._table_name}'", key)
        if sort_key(self._key_of(record)) != sort_key(key):
            raise EngineFailure("Updating the key column is not supported")
        self._session.write(self._table_name, key, dict(record), expect_present=True)

    def delete(self, key: Any) -> None:
        if self.seek_exact(key) is None:
            raise EngineKeyNotFoundError(f"Key {key!r} not found in '{self._table_name}'", key)
        self._session.write(self._table_name, key, None, expect_present=True)

    def scan_all(self) -> Iterator[EngineRecord]:
        self._session.check_open()
        pending = dict(self._pending())
        with self._session.database.lock:
            merged = {
                key: record
                for key, record in self._stored().primary.scan_all()
                if key not in pending
            }
        for key, write in pending.items():
            if write.record is not None:
                merged[key] = write.record
        for key in sorted(merged):
            yield dict(merged[key])

    def count(self) -> int:
        self._session.check_open()
        pending = self._pending()
        with self._session.database.lock:
            stored = self._stored()
            total = len(stored.primary)
            for key, write in pending.items():
                total += int(write.record is not None) - int(stored.primary.contains(key))
        return total


class MemorySession:
    """One engine session over a Database."""

    def __init__(self, engine: InMemoryStorageEngine, database: Database, session_id: SessionId) -> None:
        self._engine = engine
        self.database = database
        self._session_id = session_id
        self.write_set: WriteSet | None = None
        self._closed = False

    @property
    def session_id(self) -> SessionId:
        return self._session_id

    @property
    def in_transaction(self) -> bool:
        return self.write_set is not None

    def check_open(self) -> None:
        if self._closed:
            raise EngineFailure(f"Session {self._session_id} is closed")

    def create_table(self, spec: EngineTableSpec) -> None:
        self.check_open()
        self.database.create_table(spec)

    def add_column(self, table: str, column: EngineColumnSpec) -> None:
        self.check_open()
        self.database.add_column(table, column)

    def get_table_spec(self, table: str) -> EngineTableSpec | None:
        self.check_open()
        with self.database.lock:
            stored = self.database.tables.get(TableName(table))
            return copy_spec(stored.spec) if stored is not None else None

    def list_tables(self) -> list[TableName]:
        self.check_open()
        with self.database.lock:
            return sorted(self.database.tables)

    def open_cursor(self, table: str) -> MemoryCursor:
        self.check_open()
        with self.database.lock:
            self.database.table(table)
        return MemoryCursor(self, table)

    def write(self, table: TableName, key: Any, record: EngineRecord | None, expect_present: bool) -> None:
        """Record a write, or commit it at once when no transaction is open.

        ``expect_present`` is re-checked under the lock for autocommitted
        writes, since another session may have changed the key meanwhile.
        """
        if self.write_set is not None:
            pending = self.write_set.for_table(table)
            sk = sort_key(key)
            if sk in pending:
                pending[sk].record = record
            else:
                with self.database.lock:
                    existed = self.database.table(table).contains(key)
                pending[sk] = PendingWrite(key=key, record=record, existed_before=existed)
            return

        with self.database.lock:
            present = self.database.table(table).contains(key)
            if present and not expect_present:
                raise EngineKeyExistsError(f"Key {key!r} already exists in '{table}'", key)
            if not present and expect_present:
                raise EngineKeyNotFoundError(f"Key {key!r} not found in '{table}'", key)
            self.database.apply([Change(table=table, key=key, record=record)])

    def begin(self) -> None:
        self.check_open()
        if self.write_set is not None:
            raise EngineTransactionError(
                f"Session {self._session_id} already has transaction {self.write_set.txn_id}"
            )
        self.write_set = WriteSet(txn_id=self._engine.next_transaction_id())

    def commit(self) -> None:
        self.check_open()
        if self.write_set is None:
            raise EngineTransactionError(f"Session {self._session_id} has no open transaction")
        write_set, self.write_set = self.write_set, None

        with self.database.lock:
            for table, pending_writes in write_set.tables.items():
                stored = self.database.table(table)
                for pending in pending_writes.values():
                    if (
                        pending.record is not None
                        and not pending.existed_before
                        and stored.contains(pending.key)
                    ):
                        raise EngineKeyExistsError(
                            f"Key {pending.key!r} was inserted into '{table}' by a concurrent transaction",
                            pending.key,
                        )
            self.database.apply(write_set.changes())

    def rollback(self) -> None:
        self.check_open()
        if self.write_set is None:
            raise EngineTransactionError(f"Session {self._session_id} has no open transaction")
        self.write_set = None

    def close(self) -> None:
        if self._closed:
            return
        self.write_set = None
        self._closed = True
        self._engine.release_session(self._session_id)


class InMemoryStorageEngine:
    """StorageEngine holding every database in process memory.

    Databases are keyed by their resolved path; nothing is written to disk.

    Usage:
        engine = InMemoryStorageEngine()
        engine.create_database("people.edb")
        session = engine.open_session("people.edb")
    """

    def __init__(self, max_keys: int = DEFAULT_MAX_KEYS) -> None:
        self._lock = threading.Lock()
        self._max_keys = max_keys
        self._databases: dict[str, Database] = {}
        self._session_ids = itertools.count(1)
        self._txn_ids = itertools.count(1)
        self._open_sessions: set[SessionId] = set()

    @staticmethod
    def database_key(path: str | Path) -> str:
        return str(Path(path).expanduser().resolve())

    def _new_database(self, key: str) -> Database:
        return Database(key, self._max_keys)

    def _load_database(self, key: str) -> Database | None:
        """Return the database for ``key``. Caller holds the engine lock."""
        return self._databases.get(key)

    def create_database(self, path: str | Path) -> None:
        key = self.database_key(path)
        with self._lock:
            if self._databases.get(key) is not None or self._store_exists(key):
                raise EngineDatabaseExistsError(f"Database '{key}' already exists")
            self._databases[key] = self._new_database(key)
        logger.debug("engine_database_created", path=key)

    def _store_exists(self, key: str) -> bool:
        return False

    def database_exists(self, path: str | Path) -> bool:
        key = self.database_key(path)
        with self._lock:
            return key in self._databases or self._store_exists(key)

    def open_session(self, path: str | Path) -> MemorySession:
        key = self.database_key(path)
        with self._lock:
            database = self._load_database(key)
            if database is None:
                raise EngineDatabaseNotFoundError(f"Database '{key}' does not exist")
            session_id = SessionId(next(self._session_ids))
            self._open_sessions.add(session_id)
        return MemorySession(self, database, session_id)

    def next_transaction_id(self) -> TransactionId:
        with self._lock:
            return TransactionId(next(self._txn_ids))

    def release_session(self, session_id: SessionId) -> None:
        with self._lock:
            self._open_sessions.discard(session_id)

    @property
    def open_session_count(self) -> int:
        with self._lock:
            return len(self._open_sessions)

    def close(self) -> None:
        """Release every loaded database."""
        with self._lock:
            for database in self._databases.values():
                database.close()
            self._databases.clear()

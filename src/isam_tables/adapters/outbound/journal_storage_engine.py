"""Durable StorageEngine backed by one journal file per database.

The in-memory engine keeps serving reads and writes; this adapter adds a
journal that records every schema change and every committed write set
before it is applied in memory. Opening a database replays its journal:

    create_table / add_column entries  -> schema restored
    commit entries                     -> net row changes re-applied

Uncommitted transactions never reach the journal, so nothing needs undoing
on replay. A torn final entry is discarded by JournalFile.

A journal is opened at most once per process. Every engine that opens the
same resolved path shares one JournaledDatabase, so writes from separate
connection managers land in a single journal and see each other.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable

from isam_tables.adapters.outbound.btree import DEFAULT_MAX_KEYS
from isam_tables.adapters.outbound.journal_file import (
    JournalError,
    JournalFile,
    SyncMode,
    decode_record,
    decode_value,
    encode_record,
    encode_value,
)
from isam_tables.adapters.outbound.memory_storage_engine import (
    Change,
    Database,
    InMemoryStorageEngine,
)
from isam_tables.domain.value_objects import ColumnType, IndexName, TableName
from isam_tables.infrastructure.logging import get_logger
from isam_tables.ports.outbound.storage_engine import (
    EngineColumnSpec,
    EngineIndexSpec,
    EngineTableSpec,
)

logger = get_logger(__name__)


def column_to_json(column: EngineColumnSpec) -> dict[str, Any]:
    return {
        "name": column.name,
        "type": column.column_type.value,
        "primary_key": column.primary_key,
        "auto_increment": column.auto_increment,
        "default": encode_value(column.default),
    }


def column_from_json(data: dict[str, Any]) -> EngineColumnSpec:
    return EngineColumnSpec(
        name=data["name"],
        column_type=ColumnType(data["type"]),
        primary_key=data.get("primary_key", False),
        auto_increment=data.get("auto_increment", False),
        default=decode_value(data.get("default")),
    )


def spec_to_json(spec: EngineTableSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "key_column": spec.key_column,
        "columns": [column_to_json(c) for c in spec.columns],
        "indexes": [{"name": i.name, "columns": list(i.columns)} for i in spec.indexes],
    }


def spec_from_json(data: dict[str, Any]) -> EngineTableSpec:
    return EngineTableSpec(
        name=TableName(data["name"]),
        key_column=data["key_column"],
        columns=[column_from_json(c) for c in data["columns"]],
        indexes=[
            EngineIndexSpec(name=IndexName(i["name"]), columns=tuple(i["columns"]))
            for i in data["indexes"]
        ],
    )


class JournaledDatabase(Database):
    """Database whose changes are appended to a journal before being applied."""

    def __init__(self, path: str, journal: JournalFile, max_keys: int = DEFAULT_MAX_KEYS) -> None:
        super().__init__(path, max_keys)
        self._journal = journal
        self._replaying = False

    def _append(self, entry: dict[str, Any]) -> None:
        if self._replaying:
            return
        try:
            self._journal.append(entry)
        except OSError as e:
            raise JournalError(f"Journal write failed for '{self.path}': {e}") from e

    def log_schema(self, entry: dict[str, Any]) -> None:
        if entry["op"] == "create_table":
            self._append({"op": "create_table", "spec": spec_to_json(entry["spec"])})
        else:
            self._append({
                "op": "add_column",
                "table": entry["table"],
                "column": column_to_json(entry["column"]),
            })

    def log_commit(self, changes: list[Change]) -> None:
        if not changes:
            return
        self._append({
            "op": "commit",
            "changes": [
                {
                    "table": change.table,
                    "key": encode_value(change.key),
                    "record": encode_record(change.record) if change.record is not None else None,
                }
                for change in changes
            ],
        })

    def replay(self) -> int:
        """Rebuild in-memory state from the journal. Returns the entry count."""
        count = 0
        self._replaying = True
        try:
            with self.lock:
                for entry in self._journal.replay():
                    self._replay_entry(entry)
                    count += 1
        finally:
            self._replaying = False
        return count

    def _replay_entry(self, entry: dict[str, Any]) -> None:
        op = entry.get("op")
        if op == "create_table":
            self.create_table(spec_from_json(entry["spec"]))
        elif op == "add_column":
            self.add_column(entry["table"], column_from_json(entry["column"]))
        elif op == "commit":
            self.apply([
                Change(
                    table=TableName(change["table"]),
                    key=decode_value(change["key"]),
                    record=decode_record(change["record"]) if change["record"] is not None else None,
                )
                for change in entry["changes"]
            ])
        else:
            raise JournalError(f"Unknown journal entry {op!r} in '{self.path}'")

    def close(self) -> None:
        self._journal.close()


class OpenJournals:
    """Process-wide table of open journaled databases, reference counted.

    The first engine to need a path loads its database; later engines get
    the same object. The journal is closed when the last holder releases it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._databases: dict[str, JournaledDatabase] = {}
        self._holders: dict[str, int] = {}

    def acquire(
        self, key: str, loader: Callable[[], JournaledDatabase]
    ) -> JournaledDatabase:
        """Return the shared database for ``key``, calling ``loader`` if none is open."""
        with self._lock:
            database = self._databases.get(key)
            if database is None:
                database = loader()
                self._databases[key] = database
                self._holders[key] = 0
            self._holders[key] += 1
            return database

    def release(self, key: str) -> None:
        with self._lock:
            if key not in self._holders:
                return
            self._holders[key] -= 1
            if self._holders[key] > 0:
                return
            del self._holders[key]
            database = self._databases.pop(key)
        database.close()
        logger.debug("journal_closed", path=key)

    def is_open(self, key: str) -> bool:
        with self._lock:
            return key in self._databases

    def holders(self, key: str) -> int:
        with self._lock:
            return self._holders.get(key, 0)


open_journals = OpenJournals()


class JournaledStorageEngine(InMemoryStorageEngine):
    """StorageEngine persisting each database as a journal file at its path.

    Usage:
        engine = JournaledStorageEngine(sync_mode=SyncMode.FSYNC)
        engine.create_database("data/people.edb")
        session = engine.open_session("data/people.edb")
    """

    def __init__(
        self,
        sync_mode: SyncMode | str = SyncMode.FSYNC,
        max_keys: int = DEFAULT_MAX_KEYS,
    ) -> None:
        super().__init__(max_keys)
        self._sync_mode = SyncMode(sync_mode)

    @property
    def sync_mode(self) -> SyncMode:
        return self._sync_mode

    def _store_exists(self, key: str) -> bool:
        return open_journals.is_open(key) or Path(key).exists()

    def _new_database(self, key: str) -> Database:
        def create() -> JournaledDatabase:
            try:
                journal = JournalFile.create(key, self._sync_mode)
            except OSError as e:
                raise JournalError(f"Cannot create journal '{key}': {e}") from e
            return JournaledDatabase(key, journal, self._max_keys)

        return open_journals.acquire(key, create)

    def _load_database(self, key: str) -> Database | None:
        database = self._databases.get(key)
        if database is not None or not self._store_exists(key):
            return database
        database = open_journals.acquire(key, lambda: self._replay(key))
        self._databases[key] = database
        return database

    def _replay(self, key: str) -> JournaledDatabase:
        try:
            journal = JournalFile.open(key, self._sync_mode)
        except OSError as e:
            raise JournalError(f"Cannot open journal '{key}': {e}") from e
        database = JournaledDatabase(key, journal, self._max_keys)
        try:
            entries = database.replay()
        except Exception:
            journal.close()
            raise
        logger.info("journal_replayed", path=key, entries=entries, tables=len(database.tables))
        return database

    def close(self) -> None:
        """Release this engine's hold on every database it opened."""
        with self._lock:
            keys = list(self._databases)
            self._databases.clear()
        for key in keys:
            open_journals.release(key)

"""Outbound adapters - implementations of outbound ports.

These adapters implement the storage engine the access layer sits on:
B+Tree indexes, in-memory databases, and journal-file persistence.
"""

from isam_tables.adapters.outbound.btree import BTree, composite_key, key_value, sort_key
from isam_tables.adapters.outbound.journal_file import JournalError, JournalFile, SyncMode
from isam_tables.adapters.outbound.journal_storage_engine import JournaledStorageEngine
from isam_tables.adapters.outbound.memory_storage_engine import InMemoryStorageEngine

__all__ = [
    "BTree",
    "composite_key",
    "key_value",
    "sort_key",
    "JournalError",
    "JournalFile",
    "SyncMode",
    "JournaledStorageEngine",
    "InMemoryStorageEngine",
]

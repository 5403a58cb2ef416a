"""Adapters layer - concrete implementations of port interfaces.

Outbound adapters implement the storage engine port: an in-memory engine
and a journaled engine that persists each database to a file.
"""

from isam_tables.adapters.outbound import (
    InMemoryStorageEngine,
    JournaledStorageEngine,
)

__all__ = [
    # Outbound adapters
    "InMemoryStorageEngine",
    "JournaledStorageEngine",
]

"""Application layer for the table access layer.

The application layer orchestrates domain objects and the storage engine
port to fulfill the public operations.

Exports:
    Connections:
        - ConnectionManager: Entry point bound to one database path
        - Connection: One engine session with schema and transaction operations
    Data access:
        - Table: CRUD, lookup, truncate and schema evolution on one table
        - Transaction: Flat, scoped unit of work
    Object mapping:
        - MappingRegistry: Table definitions of mapped dataclasses
        - RecordMapper: Find, save and migrate instances of one dataclass
"""

from isam_tables.application.connection import Connection
from isam_tables.application.connection_manager import ConnectionManager
from isam_tables.application.record_mapper import MappingRegistry, RecordMapper
from isam_tables.application.table import Table
from isam_tables.application.transaction import Transaction

__all__ = [
    "ConnectionManager",
    "Connection",
    "Table",
    "Transaction",
    "MappingRegistry",
    "RecordMapper",
]

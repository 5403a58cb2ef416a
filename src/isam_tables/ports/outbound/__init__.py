"""Outbound ports - interfaces for external dependencies.

The storage engine is the only external dependency of the access layer.
"""

from isam_tables.ports.outbound.storage_engine import (
    EngineColumnExistsError,
    EngineColumnSpec,
    EngineCursor,
    EngineDatabaseExistsError,
    EngineDatabaseNotFoundError,
    EngineFailure,
    EngineIndexSpec,
    EngineKeyExistsError,
    EngineKeyNotFoundError,
    EngineRecord,
    EngineSession,
    EngineTableExistsError,
    EngineTableNotFoundError,
    EngineTableSpec,
    EngineTransactionError,
    StorageEngine,
)

__all__ = [
    "StorageEngine",
    "EngineSession",
    "EngineCursor",
    "EngineRecord",
    "EngineColumnSpec",
    "EngineIndexSpec",
    "EngineTableSpec",
    "EngineFailure",
    "EngineDatabaseExistsError",
    "EngineDatabaseNotFoundError",
    "EngineTableExistsError",
    "EngineTableNotFoundError",
    "EngineColumnExistsError",
    "EngineKeyExistsError",
    "EngineKeyNotFoundError",
    "EngineTransactionError",
]

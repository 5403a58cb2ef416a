"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Outbound ports: Dependencies on external systems (the storage engine)

Adapters implement these ports with concrete functionality.
"""

from isam_tables.ports.outbound import EngineCursor, EngineSession, StorageEngine

__all__ = [
    "StorageEngine",
    "EngineSession",
    "EngineCursor",
]

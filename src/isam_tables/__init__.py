"""
isam_tables - Tabular data access over an ISAM-style storage engine

Typed table schemas with a primary key and secondary indexes, row CRUD with
auto-increment keys, index-based partial lookup, flat transactions and
schema evolution, plus a small dataclass mapping layer.
"""

__version__ = "0.1.0"

from isam_tables.application import (  # noqa: E402
    Connection,
    ConnectionManager,
    MappingRegistry,
    RecordMapper,
    Table,
    Transaction,
)
from isam_tables.domain.entities import (  # noqa: E402
    ColumnDefinition,
    IndexDefinition,
    Row,
    TableDefinition,
)
from isam_tables.domain.exceptions import (  # noqa: E402
    AlreadyExistsError,
    DuplicateKeyError,
    EngineError,
    InvalidStateError,
    IsamTablesError,
    NotFoundError,
    SchemaError,
)
from isam_tables.domain.services import derive_schema, describe_dataclass  # noqa: E402
from isam_tables.domain.value_objects import (  # noqa: E402
    ColumnProperties,
    ColumnType,
    TransactionState,
)

__all__ = [
    "__version__",
    "ConnectionManager",
    "Connection",
    "Table",
    "Transaction",
    "MappingRegistry",
    "RecordMapper",
    "ColumnDefinition",
    "IndexDefinition",
    "TableDefinition",
    "Row",
    "ColumnType",
    "ColumnProperties",
    "TransactionState",
    "derive_schema",
    "describe_dataclass",
    "IsamTablesError",
    "SchemaError",
    "NotFoundError",
    "DuplicateKeyError",
    "InvalidStateError",
    "AlreadyExistsError",
    "EngineError",
]

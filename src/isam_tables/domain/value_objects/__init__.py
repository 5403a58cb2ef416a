"""Value objects for the table access layer domain.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    Identifiers:
        - TableName, IndexName: Names of schema objects
        - SessionId, TransactionId: Engine session and transaction identifiers

    Column Types:
        - ColumnType: Fixed set of scalar column types
        - ColumnProperties: PRIMARY_KEY / AUTO_INCREMENT flags

    Transaction Types:
        - TransactionState: ACTIVE, COMMITTED, ROLLED_BACK
"""

from isam_tables.domain.value_objects.column_types import ColumnProperties, ColumnType
from isam_tables.domain.value_objects.identifiers import (
    IndexName,
    SessionId,
    TableName,
    TransactionId,
    is_valid_identifier,
)
from isam_tables.domain.value_objects.transaction_types import TransactionState

__all__ = [
    # Identifiers
    "TableName",
    "IndexName",
    "SessionId",
    "TransactionId",
    "is_valid_identifier",
    # Column types
    "ColumnType",
    "ColumnProperties",
    # Transaction types
    "TransactionState",
]

"""Domain entities for the table access layer.

Exports:
    Schema:
        - ColumnDefinition: One typed column with PRIMARY_KEY/AUTO_INCREMENT flags
        - IndexDefinition: Named secondary index over one or more columns
        - TableDefinition: Fluent builder for a table's columns and indexes

    Row:
        - Row: Ordered column-name-to-value mapping
        - matches: Strict partial-row comparison
"""

from isam_tables.domain.entities.row import Row, matches
from isam_tables.domain.entities.table_definition import (
    ColumnDefinition,
    IndexDefinition,
    TableDefinition,
)

__all__ = [
    "ColumnDefinition",
    "IndexDefinition",
    "TableDefinition",
    "Row",
    "matches",
]

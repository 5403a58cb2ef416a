"""Conversion between TableDefinition and the engine's table metadata."""

from __future__ import annotations

from isam_tables.domain.entities import ColumnDefinition, TableDefinition
from isam_tables.domain.value_objects import ColumnProperties, IndexName, TableName
from isam_tables.ports.outbound.storage_engine import (
    EngineColumnSpec,
    EngineIndexSpec,
    EngineTableSpec,
)


def to_engine_column(column: ColumnDefinition) -> EngineColumnSpec:
    return EngineColumnSpec(
        name=column.name,
        column_type=column.column_type,
        primary_key=column.is_primary_key,
        auto_increment=column.is_auto_increment,
        default=column.default,
    )


def to_engine_spec(definition: TableDefinition) -> EngineTableSpec:
    """Describe a validated definition as engine metadata."""
    primary_key = definition.key_column()
    return EngineTableSpec(
        name=TableName(definition.name),
        key_column=primary_key.name,
        columns=[to_engine_column(c) for c in definition.columns],
        indexes=[
            EngineIndexSpec(name=IndexName(index.name), columns=index.columns)
            for index in definition.indexes
        ],
    )


def from_engine_spec(spec: EngineTableSpec) -> TableDefinition:
    """Rebuild a TableDefinition from stored engine metadata."""
    definition = TableDefinition(spec.name)
    for column in spec.columns:
        properties = ColumnProperties.NONE
        if column.primary_key or column.name == spec.key_column:
            properties |= ColumnProperties.PRIMARY_KEY
        if column.auto_increment:
            properties |= ColumnProperties.AUTO_INCREMENT
        definition.add_column(
            ColumnDefinition(column.name, column.column_type, properties, column.default)
        )
    for index in spec.indexes:
        definition.add_index(*index.columns, name=index.name)
    return definition

"""Schema inference for the object-mapping layer.

A class is turned into a TableDefinition in two steps:

1. ``describe_dataclass`` reads a dataclass's fields into a plain
   TypeDescriptor (name, members, primary-key markers).
2. ``derive_schema`` turns any TypeDescriptor into a TableDefinition:
   one member becomes one column, and the member marked as primary key
   becomes the PRIMARY_KEY (optionally AUTO_INCREMENT) column.

Only step 1 looks at classes. Step 2 is a pure function over data, so the
storage layer never depends on introspection.

Marking a dataclass field as primary key:

    @dataclass
    class Person:
        __table_name__ = "people"
        id: int | None = field(default=None, metadata={"primary_key": True, "auto_increment": True})
        name: str = ""
"""

from __future__ import annotations

import dataclasses
import types
import typing
from dataclasses import dataclass
from typing import Any, Union

from isam_tables.domain.entities import ColumnDefinition, TableDefinition
from isam_tables.domain.exceptions import SchemaError
from isam_tables.domain.value_objects import ColumnProperties, ColumnType

PRIMARY_KEY = "primary_key"
AUTO_INCREMENT = "auto_increment"
TABLE_NAME_ATTRIBUTE = "__table_name__"


@dataclass(frozen=True)
class MemberDescriptor:
    """One persisted member of a mapped type."""

    name: str
    python_type: type
    primary_key: bool = False
    auto_increment: bool = False


@dataclass(frozen=True)
class TypeDescriptor:
    """Language-neutral description of a mapped type."""

    name: str
    members: tuple[MemberDescriptor, ...]
    table_name: str | None = None

    @property
    def effective_table_name(self) -> str:
        return self.table_name or self.name


def derive_schema(descriptor: TypeDescriptor) -> TableDefinition:
    """Build a TableDefinition from a type descriptor.

    Raises:
        SchemaError: If a member type is not storable, or more than one
            member is marked as primary key.
    """
    definition = TableDefinition(descriptor.effective_table_name)
    for member in descriptor.members:
        properties = ColumnProperties.NONE
        if member.primary_key:
            properties |= ColumnProperties.PRIMARY_KEY
            if member.auto_increment:
                properties |= ColumnProperties.AUTO_INCREMENT
        definition.add_column(ColumnDefinition(member.name, member.python_type, properties))
    return definition


def describe_dataclass(cls: type) -> TypeDescriptor:
    """Describe a dataclass as a TypeDescriptor.

    ``Optional[X]`` / ``X | None`` annotations are unwrapped to ``X``. Fields
    declared with ``init=False`` are still persisted.

    Raises:
        SchemaError: If ``cls`` is not a dataclass or a field type is unsupported.
    """
    if not dataclasses.is_dataclass(cls) or not isinstance(cls, type):
        raise SchemaError(f"{cls!r} is not a dataclass type")

    hints = typing.get_type_hints(cls)
    members = []
    for f in dataclasses.fields(cls):
        python_type = _unwrap_optional(hints.get(f.name, f.type))
        if not isinstance(python_type, type) or not is_storable(python_type):
            raise SchemaError(f"Field '{cls.__name__}.{f.name}' has unsupported type {python_type!r}")
        members.append(
            MemberDescriptor(
                name=f.name,
                python_type=python_type,
                primary_key=bool(f.metadata.get(PRIMARY_KEY, False)),
                auto_increment=bool(f.metadata.get(AUTO_INCREMENT, False)),
            )
        )

    return TypeDescriptor(
        name=cls.__name__,
        members=tuple(members),
        table_name=getattr(cls, TABLE_NAME_ATTRIBUTE, None),
    )


def _unwrap_optional(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def is_storable(python_type: type) -> bool:
    """Check whether a Python type maps to a column type."""
    try:
        ColumnType.from_python(python_type)
    except ValueError:
        return False
    return True

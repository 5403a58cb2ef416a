"""Object mapping: persisting dataclass instances as table rows.

    @dataclass
    class Person:
        id: int | None = field(default=None, metadata={"primary_key": True, "auto_increment": True})
        name: str = ""

    registry = MappingRegistry(manager)
    people = registry.mapper(Person)
    people.migrate()
    saved = people.save(Person(name="Booboo"))   # saved.id is now set
    people.find(saved.id)

Mapping is expressed purely through Connection and Table operations. The
per-class table definitions are cached on the MappingRegistry, so their
lifetime is the registry's.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from isam_tables.domain.entities import Row, TableDefinition
from isam_tables.domain.services import derive_schema, describe_dataclass
from isam_tables.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from isam_tables.application.connection_manager import ConnectionManager

logger = get_logger(__name__)

T = TypeVar("T")


class MappingRegistry:
    """Table definitions of mapped classes, bound to one ConnectionManager."""

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self._lock = threading.Lock()
        self._definitions: dict[type, TableDefinition] = {}

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    def definition_for(self, cls: type) -> TableDefinition:
        """Return the table definition derived from ``cls``.

        Raises:
            SchemaError: If ``cls`` cannot be mapped.
        """
        with self._lock:
            definition = self._definitions.get(cls)
            if definition is None:
                definition = derive_schema(describe_dataclass(cls))
                self._definitions[cls] = definition
            return definition.copy()

    def table_name(self, cls: type) -> str:
        return self.definition_for(cls).name

    def mapper(self, cls: type[T]) -> RecordMapper[T]:
        return RecordMapper(cls, self)

    def clear(self) -> None:
        with self._lock:
            self._definitions.clear()


class RecordMapper(Generic[T]):
    """Find, save and migrate instances of one dataclass."""

    def __init__(self, cls: type[T], registry: MappingRegistry) -> None:
        self._cls = cls
        self._registry = registry
        self._definition = registry.definition_for(cls)

    @property
    def table_name(self) -> str:
        return self._definition.name

    def build(self, **values: Any) -> T:
        """Create a new, unsaved instance."""
        return self._cls(**values)

    def to_row(self, instance: T) -> Row:
        return Row({c.name: getattr(instance, c.name) for c in self._definition.columns})

    def from_row(self, row: Row) -> T:
        init_values = {}
        late_values = {}
        for f in dataclasses.fields(self._cls):  # type: ignore[arg-type]
            if f.name not in row:
                continue
            if f.init:
                init_values[f.name] = row[f.name]
            else:
                late_values[f.name] = row[f.name]
        instance = self._cls(**init_values)
        for name, value in late_values.items():
            setattr(instance, name, value)
        return instance

    def find(self, key: Any) -> T:
        """Load the instance stored under ``key``.

        Raises:
            NotFoundError: If the table or the row does not exist.
        """
        with self._registry.manager.get_connection() as connection:
            with connection.get_table(self.table_name) as table:
                return self.from_row(table.get_row(key))

    def save(self, instance: T) -> T:
        """Insert ``instance`` as a new row, setting an auto-increment key on it.

        Raises:
            DuplicateKeyError: If a row with the same key exists.
        """
        with self._registry.manager.get_connection() as connection:
            with connection.get_table(self.table_name) as table:
                row = self.to_row(instance)
                table.insert(row)
        key_column = self._definition.key_column()
        setattr(instance, key_column.name, row[key_column.name])
        return instance

    def migrate(self, keep_existing_data: bool = True) -> None:
        """Create the table, or bring an existing one up to the class's fields.

        Fields missing from an existing table are added as columns. With
        ``keep_existing_data=False`` the existing rows are removed as well.
        """
        with self._registry.manager.get_connection() as connection:
            if not connection.table_exists(self.table_name):
                connection.create_table(self._definition)
                logger.info("mapping_table_created", table=self.table_name, type=self._cls.__name__)
                return

            with connection.get_table(self.table_name) as table:
                for column in self._definition.columns:
                    if not table.definition.has_column(column.name) and not column.is_primary_key:
                        table.add_column(column)
                if not keep_existing_data:
                    table.truncate()
            logger.info(
                "mapping_table_migrated",
                table=self.table_name,
                type=self._cls.__name__,
                kept_data=keep_existing_data,
            )

"""Integration tests for Table semantics and error paths."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from isam_tables import (
    ColumnProperties,
    Connection,
    ConnectionManager,
    DuplicateKeyError,
    InvalidStateError,
    NotFoundError,
    Row,
    SchemaError,
    TableDefinition,
)
from isam_tables.adapters.outbound import InMemoryStorageEngine
from isam_tables.application import Table
from isam_tables.infrastructure.metrics import MetricsRegistry


@pytest.mark.integration
class TestTableSchema:
    """Tests for table creation and schema evolution."""

    def test_create_returns_bound_table(self, connection: Connection, person_definition: TableDefinition) -> None:
        """create_table returns a usable table."""
        table = connection.create_table(person_definition)

        assert table.name == "person"
        assert table.primary_key.name == "ssn"
        assert connection.table_exists("person")
        assert connection.list_tables() == ["person"]

    def test_duplicate_table(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Table names are unique."""
        connection.create_table(person_definition)

        with pytest.raises(SchemaError):
            connection.create_table(person_definition)

    def test_table_without_primary_key(self, connection: Connection) -> None:
        """Tables need a primary key."""
        with pytest.raises(SchemaError):
            connection.create_table(TableDefinition("log").add_column("message", str))
        assert not connection.table_exists("log")

    def test_get_missing_table(self, connection: Connection) -> None:
        """Opening an undeclared table fails."""
        assert not connection.table_exists("nope")
        with pytest.raises(NotFoundError):
            connection.get_table("nope")

    def test_schema_round_trips(self, connection: Connection) -> None:
        """Reopened tables carry types, flags, defaults and indexes."""
        connection.create_table(
            TableDefinition("event")
            .add_column("id", int, ColumnProperties.AUTO_INCREMENT)
            .add_column("at", datetime)
            .add_column("payload", bytes)
            .add_column("score", float, default=0.0)
            .add_index("at", "score", name="ix_event_time")
        )

        table = connection.get_table("event")

        assert table.primary_key.is_auto_increment
        assert table.definition.column("score").default == 0.0
        assert table.definition.index("ix_event_time").columns == ("at", "score")

    def test_added_column_defaults_for_old_rows(
        self, connection: Connection, person_definition: TableDefinition
    ) -> None:
        """Rows stored before a column existed read back its default."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1, firstname="a", lastname="b"))

        table.add_column("age", int, default=0)
        table.add_column("nickname", str)

        assert table.get_row(1) == {"ssn": 1, "firstname": "a", "lastname": "b", "age": 0, "nickname": None}
        assert connection.get_table("person").definition.has_column("age")

    def test_add_existing_column(self, connection: Connection, person_definition: TableDefinition) -> None:
        """A column cannot be added twice."""
        table = connection.create_table(person_definition)

        with pytest.raises(SchemaError):
            table.add_column("lastname", str)

    def test_add_primary_key_column(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Primary keys cannot be added later."""
        table = connection.create_table(person_definition)

        with pytest.raises(SchemaError):
            table.add_column("id", int, ColumnProperties.PRIMARY_KEY)

    def test_handles_share_added_columns(self, connection: Connection, person_definition: TableDefinition) -> None:
        """A column added through one handle is usable through another."""
        first = connection.create_table(person_definition)
        second = connection.get_table("person")

        first.add_column("extra", str)
        second.insert(Row(ssn=1, extra="x"))

        assert second.get_row(1)["extra"] == "x"
        assert [r["ssn"] for r in second.get_rows({"extra": "x"})] == [1]
        assert "extra" in [c.name for c in second.columns]
        with pytest.raises(SchemaError):
            second.add_column("extra", str)

    def test_handles_on_other_connections(
        self, connection_manager: ConnectionManager, person_definition: TableDefinition
    ) -> None:
        """Handles on other connections pick up added columns too."""
        with connection_manager.get_connection() as a, connection_manager.get_connection() as b:
            table_a = a.create_table(person_definition)
            table_b = b.get_table("person")
            table_b.insert(Row(ssn=1))

            table_a.add_column("age", int, default=7)

            assert table_b.get_row(1)["age"] == 7
            assert table_b.definition.column("age").default == 7


@pytest.mark.integration
class TestTableRows:
    """Tests for row operations."""

    def test_get_row_fills_all_columns(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Columns absent from the inserted row read back as None."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1, lastname="smith"))

        row = table.get_row(1)

        assert row.columns == ["ssn", "firstname", "lastname"]
        assert row["firstname"] is None

    def test_duplicate_key(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Inserting an existing key fails and keeps the stored row."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1, lastname="smith"))

        with pytest.raises(DuplicateKeyError) as exc_info:
            table.insert(Row(ssn=1, lastname="jones"))

        assert exc_info.value.key == 1
        assert table.get_row(1)["lastname"] == "smith"

    def test_unknown_column(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Rows may only carry declared columns."""
        table = connection.create_table(person_definition)

        with pytest.raises(SchemaError):
            table.insert(Row(ssn=1, age=3))
        assert table.count == 0

    def test_wrong_type(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Values must match their column type."""
        table = connection.create_table(person_definition)

        with pytest.raises(SchemaError):
            table.insert(Row(ssn=1, lastname=42))
        with pytest.raises(SchemaError):
            table.insert(Row(ssn="1", lastname="smith"))

    def test_missing_key(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Non-auto-increment keys must be supplied."""
        table = connection.create_table(person_definition)

        with pytest.raises(SchemaError):
            table.insert(Row(lastname="smith"))

    def test_get_missing_row(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Absent keys raise NotFoundError."""
        table = connection.create_table(person_definition)

        with pytest.raises(NotFoundError):
            table.get_row(5)

    def test_delete_absent_key(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Deleting an absent key raises NotFoundError."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1, lastname="smith"))

        table.delete(1)
        with pytest.raises(NotFoundError):
            table.delete(1)

    def test_wrong_key_type_on_lookup(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Keys of the wrong type are rejected."""
        table = connection.create_table(person_definition)

        with pytest.raises(SchemaError):
            table.exists("1")

    def test_upsert_merges_columns(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Upsert only overwrites the columns it carries."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1, firstname="john", lastname="smith"))

        table.upsert(Row(ssn=1, lastname="jones"))

        assert table.get_row(1) == {"ssn": 1, "firstname": "john", "lastname": "jones"}

    def test_upsert_follows_index(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Index lookups see values changed by upsert."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1, lastname="smith"))

        table.upsert(Row(ssn=1, lastname="jones"))

        assert list(table.get_rows({"lastname": "smith"})) == []
        assert [r["ssn"] for r in table.get_rows({"lastname": "jones"})] == [1]

    def test_all_column_types(self, connection: Connection) -> None:
        """Every column type stores and returns its values."""
        table = connection.create_table(
            TableDefinition("sample")
            .add_column("id", int, ColumnProperties.PRIMARY_KEY)
            .add_column("name", str)
            .add_column("ratio", float)
            .add_column("flag", bool)
            .add_column("blob", bytes)
            .add_column("at", datetime)
        )
        moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        table.insert(Row(id=1, name="x", ratio=0.5, flag=True, blob=b"\x01", at=moment))

        assert table.get_row(1) == {"id": 1, "name": "x", "ratio": 0.5, "flag": True, "blob": b"\x01", "at": moment}

    def test_len_matches_count(self, connection: Connection, person_definition: TableDefinition) -> None:
        """len(table) is the live row count."""
        table = connection.create_table(person_definition)
        for ssn in range(3):
            table.insert(Row(ssn=ssn))

        assert len(table) == table.count == 3

    def test_naive_and_aware_datetimes_indexed(self, connection: Connection) -> None:
        """Naive and aware datetimes share an indexed column."""
        table = connection.create_table(
            TableDefinition("event")
            .add_column("id", int, ColumnProperties.PRIMARY_KEY)
            .add_column("at", datetime)
            .add_index("at")
        )
        naive = datetime(2024, 1, 1)
        aware = datetime(2024, 1, 1, tzinfo=timezone.utc)

        table.insert(Row(id=1, at=naive))
        table.insert(Row(id=2, at=aware))
        table.upsert(Row(id=1, at=aware))

        assert table.count == 2
        assert [r["id"] for r in table.get_rows({"at": aware})] == [1, 2]
        assert list(table.get_rows({"at": naive})) == []

    def test_datetime_primary_key(self, connection: Connection) -> None:
        """Naive and aware datetimes are distinct primary keys."""
        table = connection.create_table(
            TableDefinition("reading").add_column("at", datetime, ColumnProperties.PRIMARY_KEY)
        )
        naive = datetime(2024, 1, 1)
        aware = datetime(2024, 1, 1, tzinfo=timezone.utc)

        table.insert(Row(at=naive))
        table.insert(Row(at=aware))

        assert table.exists(naive)
        assert table.exists(aware)
        assert [r["at"] for r in table.get_rows()] == [naive, aware]

    @pytest.mark.parametrize("preexisting", [False, True])
    def test_upsert_idempotent(
        self, connection: Connection, person_definition: TableDefinition, preexisting: bool
    ) -> None:
        """Upserting a row twice leaves the table as a single upsert does."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1, firstname="ann", lastname="lee"))
        if preexisting:
            table.insert(Row(ssn=2, firstname="bob", lastname="smith"))
        row = Row(ssn=2, lastname="jones")

        table.upsert(row)
        once = (table.count, table.get_row(2), list(table.get_rows()))
        table.upsert(row)
        twice = (table.count, table.get_row(2), list(table.get_rows()))

        assert twice == once
        assert [r["ssn"] for r in table.get_rows({"lastname": "jones"})] == [2]


@pytest.mark.integration
class TestGetRows:
    """Tests for partial lookup."""

    @pytest.fixture
    def people(self, connection: Connection) -> Table:
        """A table with a composite index and a mix of names."""
        table = connection.create_table(
            TableDefinition("people")
            .add_column("id", int, ColumnProperties.PRIMARY_KEY)
            .add_column("first", str)
            .add_column("last", str)
            .add_column("age", int)
            .add_index("last", "first")
        )
        data = [
            (1, "john", "smith", 30),
            (2, "jane", "smith", 25),
            (3, "john", "jones", 30),
            (4, "john", "smith", 41),
            (5, "mary", "brown", 30),
        ]
        for id_, first, last, age in data:
            table.insert(Row(id=id_, first=first, last=last, age=age))
        return table

    def test_index_prefix(self, people: Table) -> None:
        """A filter on the leading index column uses the index."""
        assert sorted(r["id"] for r in people.get_rows({"last": "smith"})) == [1, 2, 4]

    def test_full_index(self, people: Table) -> None:
        """A filter on every index column narrows further."""
        assert sorted(r["id"] for r in people.get_rows({"last": "smith", "first": "john"})) == [1, 4]

    def test_post_filter(self, people: Table) -> None:
        """Columns outside the index are still filtered."""
        assert [r["id"] for r in people.get_rows({"last": "smith", "age": 41})] == [4]

    def test_scan_without_usable_index(self, people: Table) -> None:
        """Filters that skip the leading column fall back to a scan."""
        assert [r["id"] for r in people.get_rows({"first": "john"})] == [1, 3, 4]
        assert [r["id"] for r in people.get_rows({"age": 30})] == [1, 3, 5]

    def test_key_filter(self, people: Table) -> None:
        """A filter on the key seeks it directly."""
        assert [r["id"] for r in people.get_rows({"id": 3, "first": "john"})] == [3]
        assert list(people.get_rows({"id": 3, "first": "mary"})) == []
        assert list(people.get_rows({"id": 99})) == []

    def test_strict_equality(self, people: Table) -> None:
        """Filters do not coerce types."""
        assert list(people.get_rows({"age": 30.0})) == []
        assert list(people.get_rows({"age": True})) == []

    def test_unknown_filter_column(self, people: Table) -> None:
        """Unknown filter columns fail at call time."""
        with pytest.raises(SchemaError):
            people.get_rows({"height": 180})

    def test_rows_are_lazy(self, people: Table) -> None:
        """Rows are produced one at a time."""
        rows = people.get_rows()

        assert next(rows)["id"] == 1
        assert next(rows)["id"] == 2

    def test_index_and_scan_agree(self, people: Table) -> None:
        """Index and scan paths return the same rows."""
        by_index = sorted(r["id"] for r in people.get_rows({"last": "jones"}))
        by_scan = [r["id"] for r in people.get_rows() if r["last"] == "jones"]

        assert by_index == by_scan


@pytest.mark.integration
class TestLifecycle:
    """Tests for closed handles."""

    def test_closed_connection(self, connection_manager: ConnectionManager, person_definition: TableDefinition) -> None:
        """Closed connections and their tables reject operations."""
        connection = connection_manager.get_connection()
        table = connection.create_table(person_definition)
        connection.close()
        connection.close()

        assert connection.is_closed
        with pytest.raises(InvalidStateError):
            connection.get_table("person")
        with pytest.raises(InvalidStateError):
            table.insert(Row(ssn=1))

    def test_closed_table(self, connection: Connection, person_definition: TableDefinition) -> None:
        """Closed tables reject operations; the data stays."""
        with connection.create_table(person_definition) as table:
            table.insert(Row(ssn=1))

        with pytest.raises(InvalidStateError):
            table.get_row(1)
        assert connection.get_table("person").exists(1)

    def test_missing_database(self, temp_dir: Path, metrics_registry: MetricsRegistry) -> None:
        """Connections need a created database."""
        manager = ConnectionManager(temp_dir / "none.edb", engine=InMemoryStorageEngine(), metrics=metrics_registry)

        assert not manager.database_exists()
        with pytest.raises(NotFoundError):
            manager.get_connection()


@pytest.mark.integration
class TestMetrics:
    """Tests for operation metrics."""

    def test_operations_counted(
        self,
        connection: Connection,
        person_definition: TableDefinition,
        metrics_registry: MetricsRegistry,
    ) -> None:
        """Successful and failed operations are counted by label."""
        table = connection.create_table(person_definition)
        table.insert(Row(ssn=1))
        with pytest.raises(DuplicateKeyError):
            table.insert(Row(ssn=1))

        counter = metrics_registry.table_operations_total
        assert counter.labels(operation="insert", status="success")._value.get() == 1
        assert counter.labels(operation="insert", status="error")._value.get() == 1
        assert metrics_registry.connections_active._value.get() == 1

    def test_access_paths_counted(
        self,
        connection: Connection,
        person_definition: TableDefinition,
        metrics_registry: MetricsRegistry,
    ) -> None:
        """Rows produced are counted per access path."""
        table = connection.create_table(person_definition)
        for ssn in range(4):
            table.insert(Row(ssn=ssn, lastname="smith" if ssn % 2 else "jones"))

        list(table.get_rows({"lastname": "smith"}))
        list(table.get_rows())

        scanned = metrics_registry.rows_scanned_total
        assert scanned.labels(access_path="index")._value.get() == 2
        assert scanned.labels(access_path="scan")._value.get() == 4

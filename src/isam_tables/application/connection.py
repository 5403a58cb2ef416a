"""Connection - one engine session plus the schema and transaction operations on it."""

from __future__ import annotations

from types import TracebackType
from typing import TYPE_CHECKING

from isam_tables.application.engine_errors import engine_errors
from isam_tables.application.schema_mapping import from_engine_spec, to_engine_spec
from isam_tables.application.table import Table
from isam_tables.application.transaction import Transaction
from isam_tables.domain.entities import TableDefinition
from isam_tables.domain.exceptions import InvalidStateError, NotFoundError
from isam_tables.infrastructure.logging import get_logger
from isam_tables.infrastructure.tracing import trace_span
from isam_tables.ports.outbound import EngineSession

if TYPE_CHECKING:
    from isam_tables.application.connection_manager import ConnectionManager

logger = get_logger(__name__)


class Connection:
    """A handle on the database, obtained from ConnectionManager.get_connection().

    A connection runs at most one transaction at a time. Writes made outside
    a transaction are committed immediately. Closing the connection (or
    leaving its ``with`` block) rolls back an active transaction and
    releases the engine session.

    Not thread-safe: use one connection per thread.
    """

    def __init__(self, manager: ConnectionManager, session: EngineSession) -> None:
        self._manager = manager
        self._session = session
        self._transaction: Transaction | None = None
        self._closed = False
        self._logger = logger.bind(session_id=session.session_id)
        manager.metrics.connections_active.inc()
        self._logger.debug("connection_opened")

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    @property
    def session(self) -> EngineSession:
        return self._session

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def active_transaction(self) -> Transaction | None:
        """The transaction in progress, if any."""
        return self._transaction

    def check_open(self) -> None:
        if self._closed:
            raise InvalidStateError("Connection is closed")

    def create_table(self, definition: TableDefinition) -> Table:
        """Create a table and return a handle bound to this connection.

        Raises:
            SchemaError: If the definition is invalid or the table exists.
        """
        self.check_open()
        definition.validate()
        spec = to_engine_spec(definition)
        with trace_span("isam.create_table", {"table.name": definition.name}), engine_errors():
            self._session.create_table(spec)
        self._logger.info(
            "table_created",
            table=definition.name,
            columns=definition.column_names,
            indexes=[index.name for index in definition.indexes],
        )
        return Table(self, definition.copy())

    def table_exists(self, name: str) -> bool:
        self.check_open()
        with engine_errors():
            return self._session.get_table_spec(name) is not None

    def get_table(self, name: str) -> Table:
        """Open an existing table.

        Raises:
            NotFoundError: If no table with that name exists.
        """
        self.check_open()
        with engine_errors():
            spec = self._session.get_table_spec(name)
        if spec is None:
            raise NotFoundError(f"Table '{name}' does not exist")
        return Table(self, from_engine_spec(spec))

    def list_tables(self) -> list[str]:
        self.check_open()
        with engine_errors():
            return [str(name) for name in self._session.list_tables()]

    def begin_transaction(self) -> Transaction:
        """Begin a transaction.

        Raises:
            InvalidStateError: If a transaction is already active.
        """
        self.check_open()
        if self._transaction is not None:
            raise InvalidStateError("A transaction is already active on this connection")
        with engine_errors():
            self._session.begin()
        self._transaction = Transaction(self)
        return self._transaction

    def transaction_finished(self, transaction: Transaction) -> None:
        """Called by a transaction once it reaches a terminal state."""
        if self._transaction is transaction:
            self._transaction = None

    def close(self) -> None:
        """Roll back any active transaction and release the session. Idempotent."""
        if self._closed:
            return
        try:
            if self._transaction is not None:
                self._transaction.rollback()
        finally:
            self._closed = True
            self._session.close()
            self._manager.metrics.connections_active.dec()
            self._logger.debug("connection_closed")

    def __enter__(self) -> Connection:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

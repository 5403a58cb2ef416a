"""Transaction - a scoped, flat unit of work on one connection.

    with connection.begin_transaction() as txn:
        table.insert(row)
        txn.commit()

Leaving the ``with`` block while the transaction is still ACTIVE (because
of an exception or a missing ``commit()``) rolls it back.
"""

from __future__ import annotations

from types import TracebackType
from typing import TYPE_CHECKING

from isam_tables.application.engine_errors import engine_errors
from isam_tables.domain.exceptions import InvalidStateError, IsamTablesError
from isam_tables.domain.value_objects import TransactionState
from isam_tables.infrastructure.logging import get_logger
from isam_tables.infrastructure.tracing import trace_span

if TYPE_CHECKING:
    from isam_tables.application.connection import Connection

logger = get_logger(__name__)


class Transaction:
    """A transaction started by Connection.begin_transaction()."""

    def __init__(self, connection: Connection) -> None:
        self._connection = connection
        self._state = TransactionState.ACTIVE
        self._logger = logger.bind(session_id=connection.session.session_id)
        connection.manager.metrics.transactions_active.inc()
        self._logger.debug("transaction_begun")

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state.is_active()

    def _check_active(self) -> None:
        if not self._state.is_active():
            raise InvalidStateError(f"Transaction is already {self._state.name.lower()}")

    def commit(self) -> None:
        """Make every write of the transaction visible atomically.

        Raises:
            InvalidStateError: If the transaction already ended.
            DuplicateKeyError: If a write conflicts with data committed
                meanwhile; the transaction ends rolled back.
        """
        self._check_active()
        try:
            with trace_span("isam.transaction.commit"), engine_errors():
                self._connection.session.commit()
        except IsamTablesError:
            self._finish(TransactionState.ROLLED_BACK)
            raise
        self._finish(TransactionState.COMMITTED)

    def rollback(self) -> None:
        """Discard every write of the transaction.

        Raises:
            InvalidStateError: If the transaction already ended.
        """
        self._check_active()
        try:
            with trace_span("isam.transaction.rollback"), engine_errors():
                self._connection.session.rollback()
        finally:
            self._finish(TransactionState.ROLLED_BACK)

    def _finish(self, state: TransactionState) -> None:
        self._state = state
        metrics = self._connection.manager.metrics
        metrics.transactions_active.dec()
        metrics.transactions_total.labels(outcome=state.name.lower()).inc()
        self._connection.transaction_finished(self)
        self._logger.debug("transaction_finished", outcome=state.name.lower())

    def __enter__(self) -> Transaction:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._state.is_active():
            self.rollback()

"""ConnectionManager - entry point bound to one database path.

Usage:
    from isam_tables import ConnectionManager, TableDefinition

    manager = ConnectionManager("data/people.edb")
    manager.create_database()

    with manager.get_connection() as connection:
        table = connection.create_table(
            TableDefinition("person")
            .add_column("ssn", int, ColumnProperties.PRIMARY_KEY)
            .add_column("lastname", str)
            .add_index("lastname")
        )
        table.insert(Row(ssn=1000, lastname="Booboo"))

The manager owns the storage engine, the auto-increment sequences and the
metrics registry shared by every connection it hands out.
"""

from __future__ import annotations

import threading
from pathlib import Path

from isam_tables.adapters.outbound import InMemoryStorageEngine, JournaledStorageEngine
from isam_tables.application.connection import Connection
from isam_tables.application.engine_errors import engine_errors
from isam_tables.domain.exceptions import AlreadyExistsError
from isam_tables.domain.services import KeySequenceRegistry
from isam_tables.infrastructure.config import Config, get_config
from isam_tables.infrastructure.logging import get_logger
from isam_tables.infrastructure.metrics import MetricsRegistry, get_metrics
from isam_tables.infrastructure.tracing import trace_span
from isam_tables.ports.outbound import StorageEngine

logger = get_logger(__name__)


class ConnectionManager:
    """Creates the database and hands out connections to it.

    Thread Safety:
        ``create_database`` is serialized, so concurrent callers see at most
        one successful initialization. Connections may be opened from any
        thread; each connection is used by one thread at a time.
    """

    def __init__(
        self,
        path: str | Path,
        engine: StorageEngine | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            path: Location of the database store.
            engine: Storage engine (default: a journaled engine with fsync).
            metrics: Metrics registry (default: the global registry).
        """
        self._path = Path(path)
        self._engine: StorageEngine = engine if engine is not None else JournaledStorageEngine()
        self._metrics = metrics if metrics is not None else get_metrics()
        self._sequences = KeySequenceRegistry()
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> ConnectionManager:
        """Build a manager for the database described by the configuration."""
        config = config or get_config()
        config.ensure_directories()
        engine: StorageEngine
        if config.storage.engine == "memory":
            engine = InMemoryStorageEngine()
        else:
            engine = JournaledStorageEngine(sync_mode=config.storage.sync_mode)
        return cls(config.database_path, engine=engine, metrics=metrics)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def engine(self) -> StorageEngine:
        return self._engine

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def sequences(self) -> KeySequenceRegistry:
        """Auto-increment sequences shared by this manager's connections."""
        return self._sequences

    def create_database(self) -> None:
        """Create the backing store.

        Raises:
            AlreadyExistsError: If the store already exists.
            EngineError: If the engine cannot create it.
        """
        with self._lock, trace_span("isam.create_database", {"db.path": str(self._path)}):
            if self.database_exists():
                raise AlreadyExistsError(f"Database '{self._path}' already exists")
            with engine_errors():
                self._engine.create_database(self._path)
        logger.info("database_created", path=str(self._path))

    def database_exists(self) -> bool:
        with engine_errors():
            return self._engine.database_exists(self._path)

    def get_connection(self) -> Connection:
        """Open a new connection.

        Raises:
            NotFoundError: If the database has not been created.
        """
        with engine_errors():
            session = self._engine.open_session(self._path)
        return Connection(self, session)

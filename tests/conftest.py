"""Pytest configuration and fixtures for isam_tables tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from isam_tables.adapters.outbound import InMemoryStorageEngine, JournaledStorageEngine, SyncMode
from isam_tables.application import Connection, ConnectionManager
from isam_tables.domain.entities import TableDefinition
from isam_tables.domain.value_objects import ColumnProperties
from isam_tables.infrastructure.config import Config, ObservabilityConfig, StorageConfig
from isam_tables.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir: Path) -> Config:
    """Provide a test configuration with temporary directories."""
    return Config(
        storage=StorageConfig(
            data_dir=temp_dir / "data",
            database_file="test.edb",
            engine="journal",
            sync_mode="none",  # Faster for tests
        ),
        observability=ObservabilityConfig(log_level="DEBUG", log_format="console"),
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def connection_manager(
    temp_dir: Path, metrics_registry: MetricsRegistry
) -> Generator[ConnectionManager, None, None]:
    """Provide a manager over a freshly created in-memory database."""
    engine = InMemoryStorageEngine(max_keys=4)
    manager = ConnectionManager(temp_dir / "test.edb", engine=engine, metrics=metrics_registry)
    manager.create_database()
    yield manager
    engine.close()


@pytest.fixture
def journal_manager(
    temp_dir: Path, metrics_registry: MetricsRegistry
) -> Generator[ConnectionManager, None, None]:
    """Provide a manager over a freshly created journaled database."""
    engine = JournaledStorageEngine(sync_mode=SyncMode.NONE, max_keys=4)
    manager = ConnectionManager(temp_dir / "journal.edb", engine=engine, metrics=metrics_registry)
    manager.create_database()
    yield manager
    engine.close()


@pytest.fixture
def connection(connection_manager: ConnectionManager) -> Generator[Connection, None, None]:
    """Provide an open connection, closed after the test."""
    with connection_manager.get_connection() as conn:
        yield conn


@pytest.fixture
def person_definition() -> TableDefinition:
    """The person table used across tests: ssn key, names, an index on lastname."""
    return (
        TableDefinition("person")
        .add_column("ssn", int, ColumnProperties.PRIMARY_KEY)
        .add_column("firstname", str)
        .add_column("lastname", str)
        .add_index("lastname")
    )


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")

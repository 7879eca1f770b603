"""Pytest configuration and fixtures for kv_store tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from kv_store.adapters.outbound.file_storage import FileStorageManager
from kv_store.application import BulkOperationEngine
from kv_store.domain.services import DatabaseLockManager, TransactionExecutor
from kv_store.infrastructure.config import Config, ServerConfig, StorageConfig
from kv_store.infrastructure.metrics import MetricsRegistry


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
            sync_mode="none",  # Faster for tests
        ),
        server=ServerConfig(username="zack", password="123"),
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def storage(test_config: Config, metrics_registry: MetricsRegistry) -> FileStorageManager:
    """Provide a storage manager rooted in the temporary data directory."""
    return FileStorageManager.from_config(test_config.storage, metrics=metrics_registry)


@pytest.fixture
def executor(
    storage: FileStorageManager, metrics_registry: MetricsRegistry
) -> TransactionExecutor:
    """Provide a transaction executor over the test storage."""
    return TransactionExecutor(storage, DatabaseLockManager(), metrics=metrics_registry)


@pytest.fixture
def engine(executor: TransactionExecutor, metrics_registry: MetricsRegistry) -> BulkOperationEngine:
    """Provide a bulk operation engine over the test executor."""
    return BulkOperationEngine(executor, metrics=metrics_registry)


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "property: Property-based tests")
    config.addinivalue_line("markers", "slow: Slow tests")

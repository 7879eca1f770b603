"""Bulk Operation Engine - the three verbs offered to the network layer.

Usage:
    from kv_store.application import BulkOperationEngine
    from kv_store.infrastructure.config import StorageConfig

    engine = BulkOperationEngine.from_config(StorageConfig(data_dir="/var/lib/kv"))

    engine.write_many("shop", "food", {"apple": "red", "pear": "green"})
    # OperationResult(success=True, message="Updated 2 keys in food", count=2)

    engine.read_many("shop", "food")
    # keystore={"apple": "red", "pear": "green"}

    engine.delete_many("shop", "food", ["apple"])
    # message="Deleted 1 keys in food"

Every verb runs in exactly one transaction and never raises: failures come
back as OperationResult(success=False, message="Error: '...'").
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from typing import Callable

from kv_store.adapters.outbound.file_storage import FileStorageManager
from kv_store.domain.entities import Transaction
from kv_store.domain.errors import (
    InvalidInputError,
    KVStoreError,
    StorageCorruptedError,
    TransactionAbortedError,
)
from kv_store.domain.services import DatabaseLockManager, TransactionExecutor
from kv_store.domain.value_objects import bucket_name, database_name
from kv_store.infrastructure.config import StorageConfig
from kv_store.infrastructure.logging import get_logger, log_context
from kv_store.infrastructure.metrics import MetricsRegistry
from kv_store.infrastructure.tracing import trace_span
from kv_store.ports.inbound.key_value_service import OperationResult

logger = get_logger(__name__)


def _decode(raw: bytes, database: str, bucket: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise StorageCorruptedError(
            f"Stored data is not valid UTF-8: {raw[:32]!r}", database=database, bucket=bucket
        ) from exc


def _require_str(value: object, what: str) -> str:
    if not isinstance(value, str):
        raise InvalidInputError(f"{what} must be a string, got {type(value).__name__}")
    return value


def _key_list(keys: Iterable[str] | Mapping[str, str] | None) -> list[str]:
    """Normalize a key filter; mapping values (as sent by clients) are ignored."""
    if keys is None:
        return []
    if isinstance(keys, (str, bytes)):
        raise InvalidInputError("Keys must be a collection of strings, not a single string")
    return [_require_str(key, "Key") for key in keys]


class BulkOperationEngine:
    """Implements write_many / read_many / delete_many on the executor.

    Thread Safety:
        Stateless apart from the executor; one instance serves all workers.
    """

    def __init__(
        self,
        executor: TransactionExecutor,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            executor: Transactional executor bound to a storage manager.
            metrics: Optional metrics registry.
        """
        self._executor = executor
        self._metrics = metrics

    @classmethod
    def from_config(
        cls, config: StorageConfig, metrics: MetricsRegistry | None = None
    ) -> BulkOperationEngine:
        """Wire storage, lock manager and executor from storage settings."""
        storage = FileStorageManager.from_config(config, metrics=metrics)
        executor = TransactionExecutor(
            storage,
            lock_manager=DatabaseLockManager(),
            lock_timeout=config.lock_timeout_seconds,
            metrics=metrics,
        )
        return cls(executor, metrics=metrics)

    @property
    def executor(self) -> TransactionExecutor:
        return self._executor

    def write_many(
        self, database: str, bucket: str, entries: Mapping[str, str]
    ) -> OperationResult:
        """Upsert every entry in one write transaction, creating the bucket."""

        def body() -> OperationResult:
            db, name = self._validate(database, bucket)
            if not isinstance(entries, Mapping):
                raise InvalidInputError("Entries must be a mapping of keys to values")
            pairs = [
                (_require_str(key, "Key"), _require_str(value, "Value"))
                for key, value in entries.items()
            ]
            if any(not key for key, _ in pairs):
                raise InvalidInputError("Key required", database=db, bucket=name)

            def apply(txn: Transaction) -> int:
                target = txn.buckets.ensure_bucket(name)
                for key, value in pairs:
                    target.put(key, value)
                return len(pairs)

            count = self._executor.write(db, apply)
            return OperationResult.ok(f"Updated {count} keys in {name}", count)

        return self._run("write", database, bucket, body)

    def read_many(
        self,
        database: str,
        bucket: str,
        keys: Iterable[str] | Mapping[str, str] | None = None,
    ) -> OperationResult:
        """Read the requested keys, or every entry when no keys are given.

        Requested keys missing from the bucket are left out of the result.
        Stored bytes that are not valid UTF-8 fail the read rather than being
        replaced, so distinct keys never collapse into one.
        """

        def body() -> OperationResult:
            db, name = self._validate(database, bucket)
            wanted = _key_list(keys)

            def collect(txn: Transaction) -> dict[str, str]:
                source = txn.buckets.lookup_bucket(name)
                if not wanted:
                    return {
                        _decode(key, db, name): _decode(value, db, name)
                        for key, value in source.items()
                    }

                found: dict[str, str] = {}
                for key in wanted:
                    value = source.get(key)
                    if value is not None:
                        found[key] = _decode(value, db, name)
                return found

            keystore = self._executor.read(db, collect)
            return OperationResult.ok(
                f"Got {len(keystore)} keys in {name}", len(keystore), keystore
            )

        return self._run("read", database, bucket, body)

    def delete_many(
        self,
        database: str,
        bucket: str,
        keys: Iterable[str] | Mapping[str, str],
    ) -> OperationResult:
        """Delete the requested keys in one write transaction.

        The reported count is the number of keys requested, whether or not
        they were present.
        """

        def body() -> OperationResult:
            db, name = self._validate(database, bucket)
            requested = _key_list(keys)

            def remove(txn: Transaction) -> int:
                target = txn.buckets.lookup_bucket(name)
                for key in requested:
                    target.delete(key)
                return len(requested)

            count = self._executor.write(db, remove)
            return OperationResult.ok(f"Deleted {count} keys in {name}", count)

        return self._run("delete", database, bucket, body)

    @staticmethod
    def _validate(database: object, bucket: object) -> tuple[str, str]:
        db = database_name(database)
        return db, bucket_name(bucket, database=db)

    def _run(
        self,
        operation: str,
        database: str,
        bucket: str,
        body: Callable[[], OperationResult],
    ) -> OperationResult:
        start = time.perf_counter()
        attributes = {"kv.database": str(database), "kv.bucket": str(bucket)}

        with log_context(operation=operation, database=database, bucket=bucket), trace_span(
            f"kv.{operation}", attributes
        ) as span:
            try:
                result = body()
            except KVStoreError as exc:
                logger.warning("operation_failed", error=exc.message, **exc.context())
                result = OperationResult.failure(exc)
            except Exception as exc:
                logger.exception("operation_error")
                result = OperationResult.failure(
                    TransactionAbortedError(str(exc), database=database, bucket=bucket)
                )

            span.set_attribute("kv.success", result.success)
            span.set_attribute("kv.count", result.count)

        if self._metrics is not None:
            status = "success" if result.success else "error"
            self._metrics.operations_total.labels(operation=operation, status=status).inc()
            self._metrics.operation_latency_seconds.labels(operation=operation).observe(
                time.perf_counter() - start
            )

        return result

"""Transactional Executor - runs a function as one atomic unit.

run_write(handle, fn):
    1. Acquire the database writer lock (in-process, then file-level)
    2. Load the committed image and give fn a private copy
    3. fn succeeds -> write the copy back as a new commit (durable on return)
       fn raises   -> discard the copy, re-raise the exception unchanged
    4. Release both locks

run_read(handle, fn):
    Load the committed image and give fn a read-only view. No locks are
    taken, so readers never wait for writers or each other.

Writers on the same database are totally ordered by the writer lock, and a
commit is visible to every read that loads the file after it returns.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator, TypeVar

from kv_store.domain.entities import Transaction
from kv_store.domain.errors import (
    KVStoreError,
    LockTimeoutError,
    TransactionAbortedError,
    TransactionClosedError,
)
from kv_store.domain.services.bucket_directory import BucketDirectory
from kv_store.domain.services.lock_manager import DatabaseLockManager
from kv_store.domain.value_objects import TransactionMode, TransactionState

if TYPE_CHECKING:
    from kv_store.infrastructure.metrics import MetricsRegistry
    from kv_store.ports.outbound.storage import StorageHandle, StorageManager, StoredImage

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")


class TransactionExecutor:
    """Executes read-only and read-write transactions against database files.

    Usage:
        executor = TransactionExecutor(storage)
        with storage.handle("shop") as handle:
            executor.run_write(handle, lambda txn: txn.buckets.ensure_bucket("food").put("k", "v"))

    Thread Safety:
        All methods are safe to call from concurrent worker threads.
    """

    def __init__(
        self,
        storage: StorageManager,
        lock_manager: DatabaseLockManager | None = None,
        lock_timeout: float | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            storage: Storage Handle Manager used by read()/write().
            lock_manager: Writer lock registry (created if not provided).
            lock_timeout: Max seconds to wait for a writer lock (None = forever).
            metrics: Optional metrics registry.
        """
        self._storage = storage
        self._lock_manager = lock_manager or DatabaseLockManager()
        self._lock_timeout = lock_timeout
        self._metrics = metrics

    @property
    def lock_manager(self) -> DatabaseLockManager:
        return self._lock_manager

    def write(self, database: str, fn: Callable[[Transaction], ResultT]) -> ResultT:
        """Open a handle for database, run fn in a write transaction, close the handle."""
        with self._storage.handle(database) as handle:
            return self.run_write(handle, fn)

    def read(self, database: str, fn: Callable[[Transaction], ResultT]) -> ResultT:
        """Open a handle for database, run fn in a read transaction, close the handle."""
        with self._storage.handle(database) as handle:
            return self.run_read(handle, fn)

    def run_write(self, handle: StorageHandle, fn: Callable[[Transaction], ResultT]) -> ResultT:
        """Run fn with exclusive access and commit its changes atomically.

        Raises:
            LockTimeoutError: If the writer lock is not acquired in time.
            TransactionAbortedError: If the commit itself fails.
            Exception: Whatever fn raised, after rolling back.
        """
        with self._writer_lock(handle):
            stored = handle.read_image()
            txn = self._begin(handle, TransactionMode.READ_WRITE, stored)

            with self._tracking(txn):
                try:
                    result = fn(txn)
                except BaseException as exc:
                    self._abort(txn, exc)
                    raise

                self._commit(handle, txn)
                return result

    def run_read(self, handle: StorageHandle, fn: Callable[[Transaction], ResultT]) -> ResultT:
        """Run fn against a consistent snapshot of the database.

        Raises:
            StorageUnavailableError: If the file cannot be read.
            Exception: Whatever fn raised.
        """
        stored = handle.read_image()
        txn = self._begin(handle, TransactionMode.READ_ONLY, stored)

        with self._tracking(txn):
            try:
                result = fn(txn)
            except BaseException as exc:
                self._abort(txn, exc)
                raise

            txn.state = TransactionState.COMMITTED
            self._record(txn, "commit")
            return result

    @contextmanager
    def _writer_lock(self, handle: StorageHandle) -> Iterator[None]:
        resource = str(handle.path)
        wait_start = time.perf_counter()

        if not self._lock_manager.acquire(resource, self._lock_timeout):
            self._lock_timed_out(handle)

        try:
            # Other processes serialize on the file itself
            remaining = None
            if self._lock_timeout is not None:
                remaining = max(0.0, self._lock_timeout - (time.perf_counter() - wait_start))
            try:
                handle.lock_exclusive(remaining)
            except LockTimeoutError:
                self._lock_timed_out(handle)

            if self._metrics is not None:
                self._metrics.write_lock_wait_seconds.observe(time.perf_counter() - wait_start)

            try:
                yield
            finally:
                handle.unlock()
        finally:
            self._lock_manager.release(resource)

    def _lock_timed_out(self, handle: StorageHandle) -> None:
        if self._metrics is not None:
            self._metrics.lock_timeouts_total.inc()
        logger.warning(
            f"Write lock wait on {handle.database!r} exceeded {self._lock_timeout}s"
        )
        raise LockTimeoutError(
            f"Timed out after {self._lock_timeout}s waiting for the write lock",
            database=handle.database,
        )

    def _begin(
        self, handle: StorageHandle, mode: TransactionMode, stored: StoredImage
    ) -> Transaction:
        image = stored.image.copy() if mode is TransactionMode.READ_WRITE else stored.image
        txn = Transaction(
            database=handle.database,
            mode=mode,
            base_txid=stored.txid,
            image=image,
        )
        txn.buckets = BucketDirectory(txn)
        txn.state = TransactionState.ACTIVE
        return txn

    def _commit(self, handle: StorageHandle, txn: Transaction) -> None:
        if not txn.state.can_commit():
            raise TransactionClosedError(
                f"Cannot commit a {txn.state.name.lower()} transaction", database=txn.database
            )
        txn.state = TransactionState.COMMITTING

        if txn.dirty:
            try:
                handle.write_image(txn.image, txn.base_txid)
            except KVStoreError as exc:
                self._abort(txn, exc)
                raise
            except OSError as exc:
                self._abort(txn, exc)
                raise TransactionAbortedError(
                    f"Commit failed: {exc.strerror or exc}", database=txn.database
                ) from exc

        txn.state = TransactionState.COMMITTED
        self._record(txn, "commit")

    def _abort(self, txn: Transaction, reason: BaseException) -> None:
        if not txn.state.can_abort():
            return
        txn.state = TransactionState.ABORTING
        # The working image is private to txn; dropping it is the rollback
        txn.dirty = False
        txn.state = TransactionState.ABORTED
        self._record(txn, "abort")

        if txn.writable:
            logger.info(
                f"Write transaction on {txn.database!r} aborted: "
                f"{type(reason).__name__}: {reason}"
            )

    @contextmanager
    def _tracking(self, txn: Transaction) -> Iterator[None]:
        if self._metrics is None:
            yield
            return

        self._metrics.transactions_active.inc()
        try:
            yield
        finally:
            self._metrics.transactions_active.dec()

    def _record(self, txn: Transaction, status: str) -> None:
        if self._metrics is not None:
            self._metrics.transactions_total.labels(mode=txn.mode.label, status=status).inc()

"""Lock Manager for per-database writer exclusion.

Each database file admits a single read-write transaction at a time.
Readers never take a lock here: they work on an immutable snapshot of the
file, so only writers are serialized.

Lock Table:
    resource key (resolved file path) -> WriterLockEntry

Entries are created on first use and dropped once nobody holds or waits
for them, so the table only ever contains databases with live writers.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict

from kv_store.domain.errors import LockConflictError


@dataclass
class WriterLockEntry:
    """Entry in the lock table for one database."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    owner: int | None = None  # thread ident of the holder
    waiters: int = 0


class DatabaseLockManager:
    """Registry of writer locks keyed by database resource.

    Thread Safety:
        The table itself is guarded by one internal lock; waiting for a
        writer lock happens outside of it.
    """

    def __init__(self) -> None:
        """Initialize the lock manager."""
        self._lock = threading.Lock()
        self._lock_table: Dict[str, WriterLockEntry] = {}

    def acquire(self, resource: str, timeout: float | None = None) -> bool:
        """Acquire the writer lock for a resource.

        Args:
            resource: Database resource key.
            timeout: Max seconds to wait (None = forever).

        Returns:
            True if acquired, False if the timeout expired.

        Raises:
            LockConflictError: If the calling thread already holds the lock.
        """
        me = threading.get_ident()

        with self._lock:
            entry = self._lock_table.setdefault(resource, WriterLockEntry())
            if entry.owner == me:
                raise LockConflictError(
                    f"Write transaction already open on {resource} in this thread"
                )
            entry.waiters += 1

        acquired = False
        try:
            acquired = entry.lock.acquire(timeout=-1 if timeout is None else timeout)
        finally:
            with self._lock:
                entry.waiters -= 1
                if acquired:
                    entry.owner = me
                else:
                    self._cleanup(resource, entry)

        return acquired

    def release(self, resource: str) -> bool:
        """Release the writer lock held by the calling thread.

        Returns:
            True if the lock was released, False if not held by this thread.
        """
        with self._lock:
            entry = self._lock_table.get(resource)
            if entry is None or entry.owner != threading.get_ident():
                return False

            entry.owner = None
            entry.lock.release()
            self._cleanup(resource, entry)
            return True

    def is_locked(self, resource: str) -> bool:
        """Check whether some thread holds the writer lock."""
        with self._lock:
            entry = self._lock_table.get(resource)
            return entry is not None and entry.owner is not None

    def held_by_current_thread(self, resource: str) -> bool:
        with self._lock:
            entry = self._lock_table.get(resource)
            return entry is not None and entry.owner == threading.get_ident()

    def get_stats(self) -> dict[str, int]:
        """Return lock table statistics for monitoring."""
        with self._lock:
            return {
                "resources": len(self._lock_table),
                "held": sum(1 for e in self._lock_table.values() if e.owner is not None),
                "waiters": sum(e.waiters for e in self._lock_table.values()),
            }

    def _cleanup(self, resource: str, entry: WriterLockEntry) -> None:
        """Drop an entry nobody holds or waits for. Caller holds self._lock."""
        if entry.owner is None and entry.waiters == 0:
            if self._lock_table.get(resource) is entry:
                del self._lock_table[resource]

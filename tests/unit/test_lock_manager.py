"""Unit tests for DatabaseLockManager."""

from __future__ import annotations

import threading
import time

import pytest

from kv_store.domain.errors import LockConflictError
from kv_store.domain.services import DatabaseLockManager


@pytest.mark.unit
class TestDatabaseLockManagerBasic:
    """Basic lock manager tests."""

    @pytest.fixture
    def lock_manager(self) -> DatabaseLockManager:
        """Create a lock manager for testing."""
        return DatabaseLockManager()

    def test_acquire_and_release(self, lock_manager: DatabaseLockManager) -> None:
        """Writer lock can be acquired on a free resource."""
        assert lock_manager.acquire("/data/shop.db") is True
        assert lock_manager.is_locked("/data/shop.db")
        assert lock_manager.held_by_current_thread("/data/shop.db")

        assert lock_manager.release("/data/shop.db") is True
        assert not lock_manager.is_locked("/data/shop.db")

    def test_release_not_held(self, lock_manager: DatabaseLockManager) -> None:
        """Releasing a lock that is not held returns False."""
        assert lock_manager.release("/data/shop.db") is False

    def test_nested_acquire_is_a_conflict(self, lock_manager: DatabaseLockManager) -> None:
        """A thread cannot open a second writer on a database it holds."""
        lock_manager.acquire("/data/shop.db")

        with pytest.raises(LockConflictError):
            lock_manager.acquire("/data/shop.db")

    def test_different_databases_do_not_contend(
        self, lock_manager: DatabaseLockManager
    ) -> None:
        """Locks on different resources are independent."""
        assert lock_manager.acquire("/data/shop.db")
        assert lock_manager.acquire("/data/bank.db")

    def test_timeout_when_held_by_other_thread(
        self, lock_manager: DatabaseLockManager
    ) -> None:
        """A second writer times out while the first holds the lock."""
        held = threading.Event()
        done = threading.Event()

        def holder() -> None:
            lock_manager.acquire("/data/shop.db")
            held.set()
            done.wait(5)
            lock_manager.release("/data/shop.db")

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)

        start = time.monotonic()
        assert lock_manager.acquire("/data/shop.db", timeout=0.05) is False
        assert time.monotonic() - start >= 0.04

        done.set()
        thread.join(5)
        assert lock_manager.acquire("/data/shop.db", timeout=1) is True

    def test_table_is_cleaned_up(self, lock_manager: DatabaseLockManager) -> None:
        """Released, uncontended entries are dropped from the table."""
        lock_manager.acquire("/data/shop.db")
        assert lock_manager.get_stats()["resources"] == 1

        lock_manager.release("/data/shop.db")
        assert lock_manager.get_stats() == {"resources": 0, "held": 0, "waiters": 0}


@pytest.mark.unit
class TestDatabaseLockManagerOrdering:
    """Writers queue behind each other."""

    def test_waiting_writer_proceeds_after_release(self) -> None:
        lock_manager = DatabaseLockManager()
        order: list[str] = []
        lock_manager.acquire("/data/shop.db")

        def second() -> None:
            lock_manager.acquire("/data/shop.db")
            order.append("second")
            lock_manager.release("/data/shop.db")

        thread = threading.Thread(target=second)
        thread.start()
        time.sleep(0.05)
        order.append("first")
        lock_manager.release("/data/shop.db")
        thread.join(5)

        assert order == ["first", "second"]

"""Concurrency tests: atomic batches and consistent snapshots across threads."""

from __future__ import annotations

import threading

import pytest

from kv_store.application import BulkOperationEngine

KEYS = [f"key{i:02d}" for i in range(20)]


@pytest.mark.integration
@pytest.mark.slow
class TestConcurrentWriters:
    """Writers on one database are serialized."""

    def test_batches_never_interleave(self, engine: BulkOperationEngine) -> None:
        """Each writer stamps every key; the survivor must be one whole batch."""
        errors: list[str] = []

        def writer(tag: str) -> None:
            for _ in range(5):
                result = engine.write_many("shop", "food", {key: tag for key in KEYS})
                if not result.success:
                    errors.append(result.message)

        threads = [threading.Thread(target=writer, args=(f"w{n}",)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(30)

        assert errors == []
        final = engine.read_many("shop", "food").keystore
        assert set(final) == set(KEYS)
        assert len(set(final.values())) == 1

    def test_readers_see_whole_batches(self, engine: BulkOperationEngine) -> None:
        """A reader running next to writers never observes a half-applied batch."""
        engine.write_many("shop", "food", {key: "w0" for key in KEYS})
        stop = threading.Event()
        torn: list[dict[str, str]] = []

        def writer(tag: str) -> None:
            while not stop.is_set():
                engine.write_many("shop", "food", {key: tag for key in KEYS})

        def reader() -> None:
            for _ in range(50):
                snapshot = engine.read_many("shop", "food").keystore
                if len(snapshot) != len(KEYS) or len(set(snapshot.values())) != 1:
                    torn.append(snapshot)

        writers = [threading.Thread(target=writer, args=(f"w{n}",)) for n in (1, 2)]
        for thread in writers:
            thread.start()
        try:
            reader()
        finally:
            stop.set()
            for thread in writers:
                thread.join(30)

        assert torn == []

    def test_different_databases_in_parallel(self, engine: BulkOperationEngine) -> None:
        def writer(database: str) -> None:
            for i in range(10):
                engine.write_many(database, "food", {f"k{i}": database})

        threads = [threading.Thread(target=writer, args=(db,)) for db in ("shop", "bank", "zoo")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(30)

        for database in ("shop", "bank", "zoo"):
            keystore = engine.read_many(database, "food").keystore
            assert len(keystore) == 10
            assert set(keystore.values()) == {database}

    def test_concurrent_first_open(self, engine: BulkOperationEngine) -> None:
        """Racing creators of a new database all succeed on one file."""
        results = []
        barrier = threading.Barrier(6)

        def writer(n: int) -> None:
            barrier.wait(10)
            results.append(engine.write_many("fresh", "food", {f"k{n}": "v"}))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(30)

        assert all(result.success for result in results)
        assert len(engine.read_many("fresh", "food").keystore) == 6

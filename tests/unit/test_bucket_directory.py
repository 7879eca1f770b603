"""Unit tests for BucketDirectory and Bucket."""

from __future__ import annotations

import pytest

from kv_store.domain.entities import DatabaseImage, Transaction
from kv_store.domain.errors import (
    BucketNotFoundError,
    InvalidInputError,
    TransactionClosedError,
    TransactionNotWritableError,
)
from kv_store.domain.services import BucketDirectory
from kv_store.domain.value_objects import (
    DatabaseName,
    TransactionId,
    TransactionMode,
    TransactionState,
)


def _transaction(mode: TransactionMode, image: DatabaseImage | None = None) -> Transaction:
    txn = Transaction(
        database=DatabaseName("shop"),
        mode=mode,
        base_txid=TransactionId(1),
        image=image or DatabaseImage(),
        state=TransactionState.ACTIVE,
    )
    txn.buckets = BucketDirectory(txn)
    return txn


@pytest.mark.unit
class TestBucketDirectory:
    """ensure_bucket creates, lookup_bucket never does."""

    def test_ensure_creates_bucket(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE)

        bucket = txn.buckets.ensure_bucket("food")

        assert bucket.name == "food"
        assert txn.image.buckets == {b"food": {}}
        assert txn.dirty

    def test_ensure_existing_bucket_is_clean(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE, DatabaseImage({b"food": {b"a": b"1"}}))

        bucket = txn.buckets.ensure_bucket("food")

        assert bucket.get("a") == b"1"
        assert not txn.dirty

    def test_lookup_missing_bucket(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE)

        with pytest.raises(BucketNotFoundError) as exc_info:
            txn.buckets.lookup_bucket("ghost")

        assert exc_info.value.bucket == "ghost"
        assert exc_info.value.database == "shop"
        assert txn.image.buckets == {}

    def test_read_only_cannot_create(self) -> None:
        txn = _transaction(TransactionMode.READ_ONLY)

        with pytest.raises(TransactionNotWritableError):
            txn.buckets.ensure_bucket("food")

    def test_empty_bucket_name(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE)

        with pytest.raises(InvalidInputError):
            txn.buckets.ensure_bucket("")

    def test_bucket_names_sorted(self) -> None:
        image = DatabaseImage({b"zoo": {}, b"apple": {}, b"food": {}})
        txn = _transaction(TransactionMode.READ_ONLY, image)

        assert txn.buckets.bucket_names() == ["apple", "food", "zoo"]
        assert txn.buckets.has_bucket("food")
        assert not txn.buckets.has_bucket("ghost")

    def test_has_bucket_validates_name(self) -> None:
        txn = _transaction(TransactionMode.READ_ONLY)

        with pytest.raises(InvalidInputError):
            txn.buckets.has_bucket("")

    def test_closed_transaction(self) -> None:
        txn = _transaction(TransactionMode.READ_ONLY, DatabaseImage({b"food": {}}))
        txn.state = TransactionState.COMMITTED

        with pytest.raises(TransactionClosedError):
            txn.buckets.lookup_bucket("food")


@pytest.mark.unit
class TestBucket:
    """Entry operations through a transaction."""

    def test_put_get_and_own_writes(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE)
        bucket = txn.buckets.ensure_bucket("food")

        bucket.put("apple", "red")
        bucket.put("apple", "green")

        assert bucket.get("apple") == b"green"
        assert bucket.get("pear") is None
        assert "apple" in bucket
        assert len(bucket) == 1

    def test_empty_key_rejected(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE)
        bucket = txn.buckets.ensure_bucket("food")

        with pytest.raises(InvalidInputError, match="Key required"):
            bucket.put("", "value")

    def test_empty_value_allowed(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE)
        bucket = txn.buckets.ensure_bucket("food")

        bucket.put("apple", "")

        assert bucket.get("apple") == b""

    def test_delete(self) -> None:
        image = DatabaseImage({b"food": {b"apple": b"red"}})
        txn = _transaction(TransactionMode.READ_WRITE, image)
        bucket = txn.buckets.lookup_bucket("food")

        assert bucket.delete("ghost") is False
        assert not txn.dirty
        assert bucket.delete("apple") is True
        assert txn.dirty
        assert len(bucket) == 0

    def test_items_in_key_order(self) -> None:
        image = DatabaseImage({b"food": {b"pear": b"2", b"apple": b"1", b"fig": b"3"}})
        txn = _transaction(TransactionMode.READ_ONLY, image)

        bucket = txn.buckets.lookup_bucket("food")

        assert list(bucket.items()) == [(b"apple", b"1"), (b"fig", b"3"), (b"pear", b"2")]
        assert list(bucket) == [b"apple", b"fig", b"pear"]

    def test_read_only_rejects_put(self) -> None:
        txn = _transaction(TransactionMode.READ_ONLY, DatabaseImage({b"food": {}}))
        bucket = txn.buckets.lookup_bucket("food")

        with pytest.raises(TransactionNotWritableError):
            bucket.put("apple", "red")
        with pytest.raises(TransactionNotWritableError):
            bucket.delete("apple")

    def test_non_string_key(self) -> None:
        txn = _transaction(TransactionMode.READ_WRITE)
        bucket = txn.buckets.ensure_bucket("food")

        with pytest.raises(InvalidInputError):
            bucket.put(42, "value")  # type: ignore[arg-type]


@pytest.mark.unit
class TestTransactionState:
    """Transaction lifecycle helpers."""

    def test_terminal_states(self) -> None:
        assert TransactionState.COMMITTED.is_terminal()
        assert TransactionState.ABORTED.is_terminal()
        assert not TransactionState.ACTIVE.is_terminal()

    def test_commit_and_abort_transitions(self) -> None:
        assert TransactionState.ACTIVE.can_commit()
        assert not TransactionState.COMMITTED.can_commit()
        assert TransactionState.COMMITTING.can_abort()
        assert not TransactionState.ABORTED.can_abort()

    def test_mode_labels(self) -> None:
        assert TransactionMode.READ_ONLY.label == "read"
        assert TransactionMode.READ_WRITE.label == "write"

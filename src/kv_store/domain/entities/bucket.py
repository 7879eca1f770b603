"""Bucket entity - a key/value namespace seen through a transaction."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from kv_store.domain.errors import InvalidInputError
from kv_store.domain.value_objects import BucketName

if TYPE_CHECKING:
    from kv_store.domain.entities.transaction import Transaction


def as_bytes(value: str | bytes, what: str = "key") -> bytes:
    """Encode str as UTF-8; pass bytes through unchanged."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise InvalidInputError(f"{what} must be str or bytes, got {type(value).__name__}")


class Bucket:
    """A bucket bound to one transaction.

    Reads and writes go straight to the transaction's working image, so a
    read-write transaction observes its own writes immediately. Iteration
    follows the byte order of keys.
    """

    def __init__(
        self,
        txn: Transaction,
        name: BucketName,
        entries: dict[bytes, bytes],
    ) -> None:
        self._txn = txn
        self._name = name
        self._entries = entries

    @property
    def name(self) -> BucketName:
        return self._name

    def get(self, key: str | bytes) -> bytes | None:
        """Return the value for key, or None if absent."""
        self._txn.check_active()
        return self._entries.get(as_bytes(key))

    def put(self, key: str | bytes, value: str | bytes) -> None:
        """Insert or replace an entry.

        Raises:
            InvalidInputError: If the key is empty.
            TransactionNotWritableError: In a read-only transaction.
        """
        self._txn.check_writable()
        raw_key = as_bytes(key)
        if not raw_key:
            raise InvalidInputError("Key required", database=self._txn.database, bucket=self._name)
        self._entries[raw_key] = as_bytes(value, "value")
        self._txn.mark_dirty()

    def delete(self, key: str | bytes) -> bool:
        """Remove an entry. Deleting an absent key is a no-op.

        Returns:
            True if the key was present.
        """
        self._txn.check_writable()
        removed = self._entries.pop(as_bytes(key), None) is not None
        if removed:
            self._txn.mark_dirty()
        return removed

    def items(self) -> Iterator[tuple[bytes, bytes]]:
        """Iterate entries in key order."""
        self._txn.check_active()
        for key in sorted(self._entries):
            yield key, self._entries[key]

    def keys(self) -> list[bytes]:
        self._txn.check_active()
        return sorted(self._entries)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, bytes)):
            return False
        return as_bytes(key) in self._entries

    def __repr__(self) -> str:
        return f"Bucket({self._name!r}, entries={len(self._entries)})"

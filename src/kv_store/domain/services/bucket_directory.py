"""Bucket Directory - resolves bucket names inside a transaction.

Two separate capabilities:

    ensure_bucket  write path, creates the bucket if it is missing
    lookup_bucket  read/delete path, never creates, raises BucketNotFoundError
"""

from __future__ import annotations

import logging

from kv_store.domain.entities import Bucket, Transaction, as_bytes
from kv_store.domain.errors import BucketNotFoundError
from kv_store.domain.value_objects import BucketName, bucket_name

logger = logging.getLogger(__name__)


class BucketDirectory:
    """Bucket namespace of one transaction's database image."""

    def __init__(self, txn: Transaction) -> None:
        self._txn = txn
        self._open: dict[BucketName, Bucket] = {}

    def ensure_bucket(self, name: str) -> Bucket:
        """Return the bucket, creating it first if it does not exist.

        Raises:
            InvalidInputError: If name is empty.
            TransactionNotWritableError: In a read-only transaction.
        """
        self._txn.check_writable()
        validated = bucket_name(name, database=self._txn.database)
        if validated in self._open:
            return self._open[validated]

        raw = as_bytes(validated)
        entries = self._txn.image.buckets.get(raw)
        if entries is None:
            entries = self._txn.image.buckets[raw] = {}
            self._txn.mark_dirty()
            logger.debug(f"Created bucket {validated!r} in {self._txn.database!r}")

        return self._remember(validated, entries)

    def lookup_bucket(self, name: str) -> Bucket:
        """Return an existing bucket.

        Raises:
            InvalidInputError: If name is empty.
            BucketNotFoundError: If the bucket was never created.
        """
        self._txn.check_active()
        validated = bucket_name(name, database=self._txn.database)
        if validated in self._open:
            return self._open[validated]

        entries = self._txn.image.buckets.get(as_bytes(validated))
        if entries is None:
            raise BucketNotFoundError(validated, database=self._txn.database)

        return self._remember(validated, entries)

    def has_bucket(self, name: str) -> bool:
        self._txn.check_active()
        validated = bucket_name(name, database=self._txn.database)
        return as_bytes(validated) in self._txn.image.buckets

    def bucket_names(self) -> list[str]:
        """Names of all buckets, in byte order."""
        self._txn.check_active()
        return [raw.decode("utf-8", errors="replace") for raw in sorted(self._txn.image.buckets)]

    def _remember(self, name: BucketName, entries: dict[bytes, bytes]) -> Bucket:
        bucket = Bucket(self._txn, name, entries)
        self._open[name] = bucket
        return bucket

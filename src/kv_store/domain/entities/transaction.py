"""Transaction entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kv_store.domain.entities.image import DatabaseImage
from kv_store.domain.errors import TransactionClosedError, TransactionNotWritableError
from kv_store.domain.value_objects import (
    DatabaseName,
    TransactionId,
    TransactionMode,
    TransactionState,
)

if TYPE_CHECKING:
    from kv_store.domain.services.bucket_directory import BucketDirectory


@dataclass
class Transaction:
    """A unit of work against one database.

    A read-only transaction works on the image it loaded at begin; a
    read-write transaction works on a private copy that is written back as
    a whole on commit.
    """

    database: DatabaseName
    mode: TransactionMode
    base_txid: TransactionId
    image: DatabaseImage
    state: TransactionState = TransactionState.IDLE
    dirty: bool = False
    buckets: BucketDirectory | None = field(default=None, repr=False)

    @property
    def writable(self) -> bool:
        return self.mode is TransactionMode.READ_WRITE

    def is_active(self) -> bool:
        """Return True if transaction can still perform operations."""
        return self.state.is_active()

    def is_terminal(self) -> bool:
        """Return True if transaction has ended."""
        return self.state.is_terminal()

    def check_active(self) -> None:
        if not self.is_active():
            raise TransactionClosedError(
                f"Transaction is {self.state.name.lower()}", database=self.database
            )

    def check_writable(self) -> None:
        self.check_active()
        if not self.writable:
            raise TransactionNotWritableError(
                "Transaction is read-only", database=self.database
            )

    def mark_dirty(self) -> None:
        self.dirty = True

"""Storage port for database files.

This outbound port defines the contract of the Storage Handle Manager:
mapping a database name to its backing file and handing out short-lived
handles, one per operation.

References:
    - bbolt: one file per database, single writer, MVCC readers
"""

from __future__ import annotations

from abc import abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from kv_store.domain.entities import DatabaseImage
from kv_store.domain.value_objects import DatabaseName, TransactionId


@dataclass(frozen=True)
class StoredImage:
    """A committed database image and the commit that produced it."""

    txid: TransactionId
    image: DatabaseImage


class StorageHandle(Protocol):
    """Protocol for an open database file.

    A handle is held for exactly one transaction and closed right after.

    Thread Safety:
        read_image may run concurrently with a writer on another handle.
        write_image requires lock_exclusive to be held.
    """

    @property
    @abstractmethod
    def database(self) -> DatabaseName:
        """Logical database name."""
        ...

    @property
    @abstractmethod
    def path(self) -> Path:
        """Resolved path of the backing file, used as the lock resource."""
        ...

    @abstractmethod
    def read_image(self) -> StoredImage:
        """Load the most recently committed image.

        Raises:
            StorageUnavailableError: If the file cannot be read or validated.
        """
        ...

    @abstractmethod
    def write_image(self, image: DatabaseImage, base_txid: TransactionId) -> TransactionId:
        """Durably replace the committed image.

        Either the new image becomes current or the previous one stays
        current; nothing in between is ever observable.

        Args:
            image: The full new database image.
            base_txid: Commit the caller's image was derived from.

        Returns:
            The id of the new commit.

        Raises:
            TransactionAbortedError: If the file changed underneath the caller.
            OSError: If the write or sync fails.
        """
        ...

    @abstractmethod
    def lock_exclusive(self, timeout: float | None = None) -> None:
        """Take the file-level writer lock.

        Raises:
            LockTimeoutError: If timeout expires first.
        """
        ...

    @abstractmethod
    def unlock(self) -> None:
        """Release the file-level writer lock if held."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close the handle. Idempotent."""
        ...


class StorageManager(Protocol):
    """Protocol for the Storage Handle Manager."""

    @abstractmethod
    def open(self, database: str) -> StorageHandle:
        """Open (creating if needed) the file for a database.

        Raises:
            InvalidInputError: If the name is empty or escapes the data dir.
            StorageUnavailableError: If the file cannot be opened or created.
        """
        ...

    @abstractmethod
    def close(self, handle: StorageHandle) -> None:
        """Close a handle. Idempotent."""
        ...

    @abstractmethod
    def handle(self, database: str) -> AbstractContextManager[StorageHandle]:
        """Open a handle scoped to a with-block; closed on every exit path."""
        ...

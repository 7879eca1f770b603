"""Error taxonomy for the key-value store.

Every failure raised by the core is a KVStoreError carrying an ErrorKind
tag plus structured context (database, bucket). Turning an error into the
text shown to clients is a separate step, see format_error().
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Classification of core failures."""

    STORAGE_UNAVAILABLE = "storage_unavailable"
    """The database file cannot be opened, read or validated."""

    BUCKET_NOT_FOUND = "bucket_not_found"
    """A read or delete named a bucket that was never created."""

    TRANSACTION_ABORTED = "transaction_aborted"
    """The transaction failed mid-way and was rolled back."""

    INVALID_INPUT = "invalid_input"
    """The request was rejected before any storage access."""

    TIMEOUT = "timeout"
    """The writer lock could not be acquired within the configured bound."""


class KVStoreError(Exception):
    """Base class for all key-value store errors."""

    kind: ErrorKind = ErrorKind.TRANSACTION_ABORTED

    def __init__(
        self,
        message: str,
        *,
        database: str | None = None,
        bucket: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.database = database
        self.bucket = bucket

    def context(self) -> dict[str, str]:
        """Return the structured context, omitting unset fields."""
        ctx = {"kind": self.kind.value}
        if self.database is not None:
            ctx["database"] = self.database
        if self.bucket is not None:
            ctx["bucket"] = self.bucket
        return ctx


class StorageUnavailableError(KVStoreError):
    """Raised when a database file cannot be opened or read."""

    kind = ErrorKind.STORAGE_UNAVAILABLE


class StorageCorruptedError(StorageUnavailableError):
    """Raised when a database file fails header or checksum validation."""


class BucketNotFoundError(KVStoreError):
    """Raised when a read or delete targets a bucket that does not exist."""

    kind = ErrorKind.BUCKET_NOT_FOUND

    def __init__(self, bucket: str, *, database: str | None = None) -> None:
        super().__init__("Bucket does not exist", database=database, bucket=bucket)


class TransactionAbortedError(KVStoreError):
    """Raised when a transaction fails and is rolled back."""

    kind = ErrorKind.TRANSACTION_ABORTED


class TransactionNotWritableError(TransactionAbortedError):
    """Raised when a read-only transaction attempts a mutation."""


class TransactionClosedError(TransactionAbortedError):
    """Raised when a finished transaction is used again."""


class LockConflictError(TransactionAbortedError):
    """Raised when a thread opens a second write transaction on a database it already holds."""


class InvalidInputError(KVStoreError):
    """Raised when a request is missing or has malformed fields."""

    kind = ErrorKind.INVALID_INPUT


class LockTimeoutError(KVStoreError):
    """Raised when the writer lock wait exceeds the configured bound."""

    kind = ErrorKind.TIMEOUT


def format_error(error: BaseException) -> str:
    """Render an error for display in an operation result."""
    detail = error.message if isinstance(error, KVStoreError) else str(error)
    return f"Error: '{detail}'"

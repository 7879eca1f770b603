"""Key-value service port offered to the network layer.

Three bulk verbs, each scoped to one database and one bucket. Failures are
never raised across this port: they come back as an OperationResult with
success=False.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol

from kv_store.domain.errors import ErrorKind, KVStoreError, format_error


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a bulk operation."""

    success: bool
    message: str
    count: int = 0
    keystore: dict[str, str] = field(default_factory=dict)
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, message: str, count: int, keystore: dict[str, str] | None = None) -> OperationResult:
        return cls(success=True, message=message, count=count, keystore=keystore or {})

    @classmethod
    def failure(cls, error: KVStoreError) -> OperationResult:
        return cls(success=False, message=format_error(error), error_kind=error.kind)


class KeyValueService(Protocol):
    """Protocol for the bulk operation engine."""

    @abstractmethod
    def write_many(
        self, database: str, bucket: str, entries: Mapping[str, str]
    ) -> OperationResult:
        """Upsert all entries atomically, creating the bucket if needed."""
        ...

    @abstractmethod
    def read_many(
        self, database: str, bucket: str, keys: Iterable[str] = ()
    ) -> OperationResult:
        """Read the given keys, or the whole bucket when keys is empty."""
        ...

    @abstractmethod
    def delete_many(
        self, database: str, bucket: str, keys: Iterable[str]
    ) -> OperationResult:
        """Delete the given keys atomically."""
        ...

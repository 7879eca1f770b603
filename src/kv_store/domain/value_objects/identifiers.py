"""Core identifiers and name validation for the key-value store.

Database and bucket names arrive as plain strings from the network layer.
These helpers turn them into typed identifiers once, at the boundary, so
the rest of the core never has to re-check them.
"""

from __future__ import annotations

import os
from typing import NewType

from kv_store.domain.errors import InvalidInputError


DatabaseName = NewType("DatabaseName", str)
"""Logical database name. Maps to one file in the data directory."""

BucketName = NewType("BucketName", str)
"""Bucket name, unique within one database."""

TransactionId = NewType("TransactionId", int)
"""Commit counter stored in the file's meta slot. Monotonically increasing."""

INVALID_TXN_ID = TransactionId(0)

_FORBIDDEN_DATABASE_NAMES = frozenset({".", ".."})


def database_name(value: object) -> DatabaseName:
    """Validate and wrap a database name.

    Raises:
        InvalidInputError: If the name is empty, not a string, or would
            escape the data directory.
    """
    if not isinstance(value, str) or not value:
        raise InvalidInputError("Database name must be a non-empty string")
    separators = {os.sep, "/"} | ({os.altsep} if os.altsep else set())
    if value in _FORBIDDEN_DATABASE_NAMES or any(sep in value for sep in separators):
        raise InvalidInputError(f"Invalid database name: {value!r}", database=value)
    if "\x00" in value:
        raise InvalidInputError("Database name must not contain NUL", database=value)
    return DatabaseName(value)


def bucket_name(value: object, *, database: str | None = None) -> BucketName:
    """Validate and wrap a bucket name.

    Raises:
        InvalidInputError: If the name is empty or not a string.
    """
    if not isinstance(value, str) or not value:
        raise InvalidInputError("Bucket name must be a non-empty string", database=database)
    return BucketName(value)

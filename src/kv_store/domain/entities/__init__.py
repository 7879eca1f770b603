"""Domain entities for the key-value store.

Exports:
    - DatabaseImage: All buckets of a database, with its binary codec
    - Bucket: Key/value namespace bound to a transaction
    - Transaction: Unit of work against one database
"""

from kv_store.domain.entities.bucket import Bucket, as_bytes
from kv_store.domain.entities.image import DatabaseImage
from kv_store.domain.entities.transaction import Transaction

__all__ = [
    "Bucket",
    "DatabaseImage",
    "Transaction",
    "as_bytes",
]

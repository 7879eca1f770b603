"""Domain services for business logic.

Services coordinate entities and value objects: resolving buckets,
serializing writers and running transactions.
"""

from kv_store.domain.services.bucket_directory import BucketDirectory
from kv_store.domain.services.lock_manager import DatabaseLockManager
from kv_store.domain.services.transaction_executor import TransactionExecutor

__all__ = [
    "BucketDirectory",
    "DatabaseLockManager",
    "TransactionExecutor",
]

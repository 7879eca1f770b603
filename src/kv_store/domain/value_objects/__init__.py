"""Value objects for the key-value store domain.

Exports:
    Identifiers:
        - DatabaseName, BucketName: Validated names
        - TransactionId: Commit counter
        - database_name, bucket_name: Validating constructors

    Transaction Types:
        - TransactionMode: READ_ONLY or READ_WRITE
        - TransactionState: Transaction lifecycle states
"""

from kv_store.domain.value_objects.identifiers import (
    INVALID_TXN_ID,
    BucketName,
    DatabaseName,
    TransactionId,
    bucket_name,
    database_name,
)
from kv_store.domain.value_objects.transaction_types import (
    TransactionMode,
    TransactionState,
)

__all__ = [
    # Identifiers
    "DatabaseName",
    "BucketName",
    "TransactionId",
    "INVALID_TXN_ID",
    "database_name",
    "bucket_name",
    # Transaction types
    "TransactionMode",
    "TransactionState",
]

"""Application layer for the key-value store.

Exports:
    - BulkOperationEngine: write_many / read_many / delete_many
"""

from kv_store.application.bulk_engine import BulkOperationEngine

__all__ = ["BulkOperationEngine"]

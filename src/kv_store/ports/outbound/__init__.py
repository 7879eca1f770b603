"""Outbound ports - dependencies on external systems."""

from kv_store.ports.outbound.storage import StorageHandle, StorageManager, StoredImage

__all__ = [
    "StorageHandle",
    "StorageManager",
    "StoredImage",
]

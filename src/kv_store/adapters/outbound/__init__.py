"""Outbound adapters - concrete implementations of outbound ports."""

from kv_store.adapters.outbound.file_storage import FileHandle, FileStorageManager

__all__ = [
    "FileHandle",
    "FileStorageManager",
]

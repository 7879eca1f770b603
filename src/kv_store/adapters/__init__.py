"""Adapters layer - concrete implementations of port interfaces.

Adapters provide the actual implementations:
- Inbound adapters: Handle incoming requests (REST)
- Outbound adapters: Implement external dependencies (database files)
"""

from kv_store.adapters.outbound import FileHandle, FileStorageManager

__all__ = [
    # Outbound adapters
    "FileHandle",
    "FileStorageManager",
]

"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: APIs offered to clients (KeyValueService)
- Outbound ports: Dependencies on external systems (StorageManager)

Adapters implement these ports with concrete functionality.
"""

from kv_store.ports.inbound import KeyValueService, OperationResult
from kv_store.ports.outbound import StorageHandle, StorageManager, StoredImage

__all__ = [
    # Inbound ports
    "KeyValueService",
    "OperationResult",
    # Outbound ports
    "StorageHandle",
    "StorageManager",
    "StoredImage",
]

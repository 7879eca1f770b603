"""Inbound ports - APIs offered to clients."""

from kv_store.ports.inbound.key_value_service import KeyValueService, OperationResult

__all__ = [
    "KeyValueService",
    "OperationResult",
]

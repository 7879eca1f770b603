"""Inbound adapters for the key-value store.

Inbound adapters handle incoming requests and convert them to
bulk operations.

Exports:
    REST API:
        - create_app: Create a FastAPI application
        - run_server: Run the REST API server
        - Payload, KeystoreResponse: Request/response models
"""

from kv_store.adapters.inbound.rest_api import (
    KeystoreResponse,
    Payload,
    create_app,
    run_server,
)

__all__ = [
    "create_app",
    "run_server",
    "Payload",
    "KeystoreResponse",
]

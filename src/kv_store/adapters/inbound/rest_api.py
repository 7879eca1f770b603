"""REST API adapter for the key-value store.

This module provides a FastAPI application exposing the bulk operations
behind HTTP Basic authentication.

Endpoints:
    POST /v1   - Write keys   (body: {"db", "bucket", "keystore": {key: value}})
    GET /v1    - Read keys    (empty keystore reads the whole bucket)
    DELETE /v1 - Delete keys  (values in keystore are ignored)
    GET /health - Health check (no authentication)

Every /v1 response carries {"success", "message", "keystore"}; the
success flag, not the HTTP status, tells whether the operation worked.

Usage:
    from kv_store.adapters.inbound.rest_api import create_app
    from kv_store.application import BulkOperationEngine

    app = create_app(engine, server_config)
    # Run with uvicorn: uvicorn app:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import json
import secrets
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field, ValidationError

from kv_store import __version__
from kv_store.infrastructure.config import ServerConfig
from kv_store.infrastructure.logging import get_logger
from kv_store.ports.inbound.key_value_service import KeyValueService

logger = get_logger(__name__)


class Payload(BaseModel):
    """Request body shared by all three verbs."""

    db: str = Field(..., min_length=1, description="Database name")
    bucket: str = Field(..., min_length=1, description="Bucket name")
    keystore: dict[str, str] = Field(
        default_factory=dict, description="Keys (and values, for writes)"
    )


class KeystoreResponse(BaseModel):
    """Response model for /v1."""

    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field("", description="Status or error message")
    keystore: dict[str, str] = Field(default_factory=dict, description="Resulting keys")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="API version")


def _reply(status_code: int, content: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content)


def create_app(service: KeyValueService, server: ServerConfig) -> FastAPI:
    """Create a FastAPI application for the key-value store.

    Args:
        service: The bulk operation engine.
        server: Server settings; username and password must be set.

    Returns:
        A configured FastAPI application.

    Raises:
        ValueError: If credentials are missing from server.
    """
    if not server.username or not server.password:
        raise ValueError("Server credentials must be set before creating the app")

    expected_user = server.username.encode("utf-8")
    expected_pass = server.password.encode("utf-8")
    basic = HTTPBasic(auto_error=False)

    app = FastAPI(
        title="KV Store API",
        description="Bucketed key-value storage over HTTP",
        version=__version__,
    )

    async def authenticate(request: Request) -> bool:
        try:
            credentials: HTTPBasicCredentials | None = await basic(request)
        except HTTPException:
            # Malformed Authorization header
            return False
        if credentials is None:
            return False
        user_ok = secrets.compare_digest(credentials.username.encode("utf-8"), expected_user)
        pass_ok = secrets.compare_digest(credentials.password.encode("utf-8"), expected_pass)
        return user_ok and pass_ok

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @app.api_route(
        "/v1",
        methods=["GET", "POST", "DELETE"],
        response_model=KeystoreResponse,
        tags=["Keys"],
    )
    async def handle_keys(request: Request) -> JSONResponse:
        """Dispatch a keystore request to the matching bulk operation.

        Args:
            request: Raw request; the body is parsed here so that a bad
                body yields the structured 406 reply.

        Returns:
            The structured operation result.
        """
        if not await authenticate(request):
            logger.warning("authentication_failed", method=request.method)
            return _reply(
                status.HTTP_403_FORBIDDEN,
                {"success": False, "message": "Incorrect credentials"},
            )

        try:
            payload = Payload.model_validate(json.loads(await request.body()))
        except (ValueError, ValidationError):
            return _reply(
                status.HTTP_406_NOT_ACCEPTABLE,
                KeystoreResponse(success=False, message="Cannot bind JSON").model_dump(),
            )

        keystore = payload.keystore
        # Engine calls block on file I/O and locks
        if request.method == "POST":
            result = await run_in_threadpool(
                service.write_many, payload.db, payload.bucket, payload.keystore
            )
        elif request.method == "GET":
            result = await run_in_threadpool(
                service.read_many, payload.db, payload.bucket, payload.keystore
            )
            keystore = result.keystore
        else:
            result = await run_in_threadpool(
                service.delete_many, payload.db, payload.bucket, payload.keystore
            )

        response = KeystoreResponse(
            success=result.success, message=result.message, keystore=keystore
        )
        return _reply(status.HTTP_200_OK, response.model_dump())

    return app


def run_server(service: KeyValueService, server: ServerConfig) -> None:
    """Run the REST API server.

    Args:
        service: The bulk operation engine.
        server: Server settings (host, port, credentials).
    """
    import uvicorn

    app = create_app(service, server)
    uvicorn.run(app, host=server.host, port=server.port)

"""FastAPI application for the database API.

This module sets up the application by:
1. Resolving configuration and configuring logging
2. Creating the connection pool and probing the database at startup
3. Registering the table browsing and query routes
4. Translating engine and validation failures into JSON error bodies
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import AppConfig, resolve_config
from ..db import DatabaseClient, create_pool
from ..errors import DbApiError, EngineError
from ..logging_utils import configure_logging, log_extra

REQUEST_ID_HEADER = "X-Request-ID"

_log = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _client(request: Request) -> DatabaseClient:
    return request.app.state.db_client


def _error_body(kind: str, message: str, request_id: str | None) -> dict[str, Any]:
    body = {"error": kind, "message": message}
    if request_id:
        body["request_id"] = request_id
    return body


def _register_routes(app: FastAPI) -> None:
    @app.get("/", include_in_schema=False)
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"message": "Database API is running", "status": "healthy"}

    @app.get("/health/db")
    async def database_health(request: Request) -> dict[str, Any]:
        """Run ``SELECT 1`` on a pooled connection."""
        return await asyncio.to_thread(_client(request).ping, _request_id(request))

    @app.get("/tables")
    async def list_tables(request: Request) -> dict[str, Any]:
        return await asyncio.to_thread(_client(request).list_tables, _request_id(request))

    @app.get("/tables/{table}/columns")
    async def table_columns(table: str, request: Request) -> dict[str, Any]:
        return await asyncio.to_thread(
            _client(request).table_columns, table, _request_id(request)
        )

    @app.get("/tables/{table}/columns/{column}/values")
    async def column_values(
        table: str, column: str, request: Request, limit: str | None = None
    ) -> dict[str, Any]:
        """Distinct values of one column; ``limit`` falls back to the default when not a positive integer."""
        return await asyncio.to_thread(
            _client(request).column_values, table, column, limit, _request_id(request)
        )

    @app.get("/tables/{table}/count")
    async def table_count(table: str, request: Request) -> dict[str, Any]:
        return await asyncio.to_thread(
            _client(request).table_count, table, _request_id(request)
        )

    @app.get("/query/{table}")
    async def query_table(
        table: str,
        request: Request,
        field: str | None = None,
        value: str | None = None,
        columns: str | None = None,
        limit: str | None = None,
    ) -> dict[str, Any]:
        return await asyncio.to_thread(
            _client(request).query_table,
            table,
            field,
            value,
            columns,
            limit,
            _request_id(request),
        )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DbApiError)
    async def handle_db_api_error(request: Request, exc: DbApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.kind, str(exc), _request_id(request)),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        return _unexpected_error_response(request)


def _unexpected_error_response(request: Request) -> JSONResponse:
    """Log the active exception and answer with a 500 EngineError body."""
    request_id = _request_id(request)
    _log.exception(
        "Unhandled error while serving request",
        extra=log_extra(request_id=request_id, path=request.url.path),
    )
    response = JSONResponse(
        status_code=EngineError.status_code,
        content=_error_body(EngineError.kind, "Internal server error", request_id),
    )
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


def create_app(
    config: AppConfig | None = None, client: DatabaseClient | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration. If None, it is resolved from the environment.
        client: Pre-built database client. If None, a pool and client are created
            at startup and the pool is closed at shutdown.

    Returns:
        FastAPI: The configured application
    """
    if config is None:
        config = resolve_config()
    configure_logging(config.observability.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if client is not None:
            yield
            return

        pool = create_pool(config)
        db_client = DatabaseClient(config, pool)
        try:
            await asyncio.to_thread(db_client.ping)
        except DbApiError:
            _log.error(
                "Database connection test failed",
                extra=log_extra(host=config.database.host, database=config.database.name),
            )
            pool.close()
            raise
        _log.info(
            "Successfully connected to database",
            extra=log_extra(host=config.database.host, database=config.database.name),
        )
        app.state.db_client = db_client
        try:
            yield
        finally:
            pool.close()
            _log.info("Connection pool closed")

    app = FastAPI(
        title="Database API",
        description="Browse and query a MySQL database over HTTP",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    if client is not None:
        app.state.db_client = client

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        """Propagate or generate the request ID and echo it on the response."""
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and config.observability.propagate_request_ids:
            request_id = incoming
        else:
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        except Exception:
            # Exception handlers for bare Exception run outside this middleware.
            return _unexpected_error_response(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    _register_routes(app)
    _register_error_handlers(app)
    return app

"""FastAPI application factory and entry point.

Exposes the tool registry over HTTP:

``GET /health``
    Process-level liveness.
``GET /tools``
    ``[{name, description, input_schema}]`` for every tool.
``POST /tools/{name}``
    Run a tool with the JSON request body as its arguments.  Always answers
    ``200``; failures are reported in the ``{"error": {...}}`` body.

Usage::

    # Development server (from project root)
    uvicorn wayback_observatory.api.main:app --reload

    # Or via the console script
    wayback-observatory
"""

from __future__ import annotations

import json
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from wayback_observatory.config.settings import get_settings
from wayback_observatory.core.logging_config import configure_logging, request_id_var
from wayback_observatory.tools.registry import ERROR_INVALID_INPUT, ToolRegistry, error_document
from wayback_observatory.wayback.client import WaybackClient

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(client: WaybackClient | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        client: Optional pre-built client.  When omitted, one is created at
            startup from the settings and closed at shutdown.  An injected
            client is still initialized and closed by the application.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        wayback_client = client or WaybackClient(settings)
        await wayback_client.initialize()
        application.state.registry = ToolRegistry(wayback_client)
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            debug=settings.debug,
            log_level=settings.log_level,
            cache_path=str(wayback_client.cache.path),
        )
        try:
            yield
        finally:
            await wayback_client.close()
            logger.info("application_shutdown")

    application = FastAPI(
        title=settings.app_name,
        description="Wayback Machine availability, snapshot and change-analysis tools.",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration under a request ID."""
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn("request_complete", status_code=status_code, elapsed_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routes -------------------------------------------------------------

    @application.get("/health", tags=["system"])
    async def health() -> JSONResponse:
        """Return ``{"status": "ok"}`` without performing any I/O."""
        return JSONResponse({"status": "ok"})

    @application.get("/tools", tags=["tools"])
    async def list_tools(request: Request) -> JSONResponse:
        registry: ToolRegistry = request.app.state.registry
        return JSONResponse(registry.list_tools())

    @application.post("/tools/{name}", tags=["tools"])
    async def call_tool(name: str, request: Request) -> Response:
        """Run tool *name* with the JSON object in the request body.

        An empty body means no arguments.  A body that is not a JSON object is
        answered with an ``INVALID_INPUT`` document.
        """
        registry: ToolRegistry = request.app.state.registry
        structlog.contextvars.bind_contextvars(tool=name)

        raw = await request.body()
        try:
            arguments: Any = json.loads(raw) if raw.strip() else {}
        except ValueError:
            arguments = None
        if not isinstance(arguments, dict):
            logger.info("tool_arguments_rejected", body_type=type(arguments).__name__)
            document = error_document(
                ERROR_INVALID_INPUT, "Request body must be a JSON object"
            )
        else:
            document = await registry.call(name, arguments)
        return Response(content=document, media_type="application/json")

    return application


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Serve the application with Uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "wayback_observatory.api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


app = create_app()
"""The FastAPI application instance passed to Uvicorn."""

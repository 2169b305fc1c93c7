"""FastAPI application factory for the kubediag agent.

Usage::

    from kubediag.api.app import create_app

    app = create_app(engines=engines, node_name="node-1")

The factory is used by both the production bootstrap (``kubediag.app``) and
unit tests.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from kubediag.api.routes import health_router, router
from kubediag.api.schemas import ErrorResponse
from kubediag.chain.engine import StageEngine
from kubediag.store.base import ResourceStoreError

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(engines: Iterable[StageEngine], node_name: str = "") -> FastAPI:
    """Create and configure the inspection API.

    Args:
        engines:   Running stage engines; each contributes one endpoint.
        node_name: Reported by ``/healthz``.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubediag import __version__

    app = FastAPI(
        title="kubediag",
        summary="Kubernetes diagnosis agent",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.engines = {engine.stage.processor_type: engine for engine in engines}
    app.state.node_name = node_name

    app.include_router(router, prefix=_API_PREFIX)
    app.include_router(health_router)
    app.mount("/metrics", make_asgi_app())

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(ResourceStoreError)
    async def store_exception_handler(
        request: Request,
        exc: ResourceStoreError,
    ) -> JSONResponse:
        _log.warning("store_request_failed", path=str(request.url.path), error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="STORE_ERROR", detail=str(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app

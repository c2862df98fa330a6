"""FastAPI application factory.

The in-page agent posts snapshots from whatever origin the user is
browsing, so CORS is open by default and narrowed through
``PAGE_CONTEXT_CORS_ORIGINS``.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from page_context.infrastructure.config import get_settings
from page_context.interface.dependencies import get_container, shutdown, startup
from page_context.interface.error_handlers import register_error_handlers
from page_context.interface.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    await startup()
    settings = get_container().settings
    logger.info(
        "Page context service ready — deadline=%.1fs agent=%s store=%s",
        settings.pipeline_deadline_seconds,
        settings.agent_url or "none",
        settings.outcome_store_dir or "memory",
    )
    try:
        yield
    finally:
        await shutdown()
        logger.info("Page context service stopped")


async def _log_timing(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    logger.debug(
        "%s %s -> %d in %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


def create_app() -> FastAPI:
    """Build and wire the FastAPI application."""
    app = FastAPI(
        title="Page Context",
        version="1.0.0",
        description=(
            "Classifies the development environment shown on a web page, "
            "extracts its project files, and returns a scored, checksummed "
            "context package."
        ),
        lifespan=_lifespan,
    )

    app.middleware("http")(_log_timing)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app

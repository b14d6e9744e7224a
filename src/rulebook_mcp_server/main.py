"""
Rulebook Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling and logging, and provides a
test-friendly application factory.

Design Goals
------------
- Deterministic startup
- Explicit dependency initialization order
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .config import Settings, settings
from .core.errors import RulebookError, register_exception_handlers
from .runtime import build_runtime

from .api import (
    corpus_routes,
    health_routes,
    search_routes,
    tool_routes,
)
from .api.dependencies import set_runtime


logger = logging.getLogger("rulebook.app")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------

def configure_logging(level: Optional[str] = None) -> None:
    """
    Send log records to stderr at `level` (defaults to settings.log_level).

    A root handler that is already installed (uvicorn, pytest) is kept.
    """
    level_name = (level or settings.log_level).strip().upper()
    resolved = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger("rulebook").setLevel(resolved)


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

def _make_lifespan(config: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Build the runtime, bring the index up to date and tear down on exit.

        Configuration errors abort startup. Indexing failures do not: the
        server comes up on whatever generation is available and a later
        POST /update retries.
        """
        configure_logging(config.log_level)
        logger.info("Starting rulebook-mcp-server (format=%s)", config.corpus_format)

        runtime = build_runtime(config)
        set_runtime(runtime)

        if config.index_on_startup:
            try:
                snapshot = await runtime.update_service.initialize()
                logger.info(
                    "Serving revision %s with %d documents",
                    snapshot.revision,
                    snapshot.document_count,
                )
            except RulebookError:
                logger.exception("Startup indexing failed; serving without a fresh index")

        try:
            yield
        finally:
            logger.info("Shutting down rulebook-mcp-server")
            set_runtime(None)
            await runtime.close()

    return lifespan


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Isolated app instances for integration tests
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="rulebook-mcp-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=_make_lifespan(config or settings),
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    register_exception_handlers(app)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(search_routes.router)
    app.include_router(corpus_routes.router)
    app.include_router(tool_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()

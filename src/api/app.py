# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the pair-matching API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from src import __version__
from src.api.dependencies import close_services, init_services
from src.api.routes import health
from src.api.v1 import router as v1_router
from src.core.config import get_settings
from src.domains.pair_matching.service import PairMatchingService
from src.utils.logging import clear_context, setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes and cleans up:
    - Logging
    - Database connection and catalog seed
    - Pair-matching service (session timers are stopped on shutdown)

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting pair-matching API: environment=%s, debug=%s",
        settings.environment,
        settings.debug,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    await init_services(app.state.pair_matching_service)
    logger.info("Services initialized")

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    try:
        await close_services()
        logger.info("Services closed")
    except Exception as e:
        logger.warning("Error closing services: %s", str(e))

    logger.info("Shutting down pair-matching API")


def create_app(service: PairMatchingService | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Prebuilt service to serve instead of the SQL-backed one.
            Tests pass a service built on in-memory stores.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Pair Matching API",
        description="Timed pair-matching games with level and stage progression",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # State
    # =========================================================================
    app.state.pair_matching_service = service

    # =========================================================================
    # Middleware
    # =========================================================================

    @app.middleware("http")
    async def logging_context(request: Request, call_next):
        # Request-scoped log context must not leak into the next request
        clear_context()
        try:
            return await call_next(request)
        finally:
            clear_context()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app

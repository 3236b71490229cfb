"""
Story Exchange Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures logging and global exception handling, and provides a
test-friendly application factory.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .core.errors import database_exception_handler, unhandled_exception_handler
from .db.session import create_schema, dispose_engines

from .api import (
    health_routes,
    submit_routes,
    moderation_routes,
    process_routes,
    feed_routes,
    social_routes,
    profile_routes,
    inbox_routes,
    transcribe_routes,
)


logger = logging.getLogger("stories.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Fail-fast validation at startup, schema creation, and engine disposal
    at shutdown.
    """
    logger.info("Starting story-exchange")

    # Touch critical secrets to force validation now (not at first use)
    _ = settings.llm_api_key.get_secret_value()
    _ = settings.auth_jwt_secret.get_secret_value()

    if settings.admin_api_key is None:
        logger.warning("ADMIN_API_KEY is not set; moderator routes are disabled")

    if settings.auto_create_schema:
        await create_schema()
        logger.info("Database schema ready")

    logger.info(
        "Configuration validated (embedding provider=%s, threshold=%.2f)",
        settings.embedding_provider,
        settings.matching.similarity_threshold,
    )

    yield

    logger.info("Shutting down story-exchange")
    await dispose_engines()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="story-exchange",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(submit_routes.router)
    app.include_router(moderation_routes.router)
    app.include_router(process_routes.router)
    app.include_router(feed_routes.router)
    app.include_router(social_routes.router)
    app.include_router(profile_routes.router)
    app.include_router(inbox_routes.router)
    app.include_router(transcribe_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()

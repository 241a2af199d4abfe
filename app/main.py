"""
FastAPI application entrypoint for the Slack message scheduler.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.dependencies import get_message_dispatcher, get_schedule_reconciler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Rebuild armed timers from persisted state, then drop them on shutdown."""
    reconciler = app.dependency_overrides.get(
        get_schedule_reconciler, get_schedule_reconciler
    )()
    dispatcher = app.dependency_overrides.get(
        get_message_dispatcher, get_message_dispatcher
    )()
    reconciler.reconcile()
    try:
        yield
    finally:
        await dispatcher.shutdown()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Slack Message Scheduler",
        version="0.1.0",
        description="Connect Slack workspaces and deliver messages now or later.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix="/api")
    logger.info("Application created for environment %s", settings.environment)
    return app


app = create_app()

__all__ = ["app", "create_app", "lifespan"]

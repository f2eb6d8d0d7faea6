"""FastAPI application factory for the live dashboard feed."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from config.settings import Settings, settings
from paperhand.services.notifier import Notifier

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from paperhand.parsers.helius.ws_client import HeliusTransactionMonitor


def create_app(
    notifier: Notifier,
    *,
    engine: AsyncEngine | None = None,
    monitor: HeliusTransactionMonitor | None = None,
    app_settings: Settings = settings,
) -> FastAPI:
    """Build and configure the FastAPI application."""
    app = FastAPI(title="Paperhand API", version="0.1.0", docs_url=None, redoc_url=None)

    app.state.notifier = notifier
    app.state.engine = engine
    app.state.monitor = monitor
    app.state.settings = app_settings

    origins = [o.strip() for o in app_settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    from paperhand.api.routers.events import router as events_router
    from paperhand.api.routers.health import router as health_router

    app.include_router(health_router)
    app.include_router(events_router)

    return app

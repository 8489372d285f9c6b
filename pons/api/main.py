"""
Pons Sync - FastAPI Application

Provides:
- Integration management (connect, disconnect, insights)
- Sync scheduling and status (including an SSE status stream)
- Prometheus metrics at /metrics
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from pons import __version__
from pons.api.errors import register_exception_handlers
from pons.api.routes import health, integrations, sync
from pons.config import Settings, get_settings
from pons.kernel.logging import configure_logging
from pons.services import SyncServices, build_services

logger = structlog.get_logger()


def create_app(
    services: SyncServices | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built services (tests inject fakes here)
        settings: Application settings (default: environment)
    """
    settings = settings or (services.settings if services else get_settings())
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan - startup and shutdown."""
        logger.info(
            "Starting Pons Sync",
            version=__version__,
            state_path=settings.state_path,
            autostart_scheduler=settings.autostart_scheduler,
        )
        await services.startup(start_scheduler=settings.autostart_scheduler)

        yield

        logger.info("Shutting down Pons Sync")
        await services.shutdown()

    app = FastAPI(
        title="Pons Sync",
        description="Integration sync orchestration",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # Prometheus metrics endpoint
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(integrations.router)
    app.include_router(sync.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "pons-sync",
            "version": __version__,
            "docs": "/docs",
        }

    return app


def _build_default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    return create_app(settings=settings)


app = _build_default_app()

"""
Conversync API: FastAPI application factory.

The factory wires the database lifecycle, pagination, the Prometheus
metrics endpoint and the routers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi_pagination import add_pagination
from prometheus_client import make_asgi_app

from app.config import get_settings
from app.db import db_manager
from app.infra.logging_config import LoggingConfig
from app.routers.conversations_router import router as conversations_router
from app.routers.instances_router import router as instances_router
from app.routers.maintenance_router import router as maintenance_router
from app.routers.sync_runs_router import router as sync_runs_router
from app.routers.webhooks import router as webhooks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database on startup and dispose of it on shutdown."""
    db_manager.open()
    logger.info("%s started (%s)", app.title, get_settings().environment)
    yield
    db_manager.close()


def create_app(testing: bool = False) -> FastAPI:
    """
    Create and configure the FastAPI application.

    With testing=True the database lifecycle is left to the caller (the
    test suite opens db_manager on its own engine).
    """
    settings = get_settings()
    LoggingConfig(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=None if testing else lifespan,
    )

    app.include_router(webhooks_router)
    app.include_router(conversations_router)
    app.include_router(instances_router)
    app.include_router(sync_runs_router)
    app.include_router(maintenance_router)

    add_pagination(app)
    app.mount("/metrics", make_asgi_app())

    @app.get("/health", tags=["system"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()

"""FastAPI application.

Exposes the liveness check and the scheduler trigger surface.  The
scheduler owns no in-process timers; an external cron calls
``/cron/notifications``.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from devstack.api.routes.cron import router as cron_router
from devstack.api.routes.debug import router as debug_router
from devstack.api.routes.health import router as health_router
from devstack.core.logging import setup_logging
from devstack.core.settings import get_settings


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    yield


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(cron_router)
app.include_router(debug_router)

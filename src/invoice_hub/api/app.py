"""
invoice_hub.api.app

FastAPI app factory for the Invoice Hub service.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Initialize and dispose shared infrastructure (DB engine, session factory, webhook client).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from invoice_hub import __version__
from invoice_hub.api.routers.dev_auth import router as dev_auth_router
from invoice_hub.api.routers.health import router as health_router
from invoice_hub.api.routers.invoices import router as invoices_router
from invoice_hub.api.routers.payments import router as payments_router
from invoice_hub.api.routers.tickets import router as tickets_router
from invoice_hub.db.init_db import init_db
from invoice_hub.db.session import create_engine, create_sessionmaker
from invoice_hub.integrations.webhooks import WebhookDispatcher
from invoice_hub.observability.logging import configure_logging, get_logger
from invoice_hub.observability.middleware import RequestContextMiddleware
from invoice_hub.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings) -> FastAPI:
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("startup", env=settings.env)
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        app.state.http = httpx.AsyncClient()
        app.state.webhooks = WebhookDispatcher(
            http=app.state.http, timeout_s=settings.webhook_timeout_s
        )
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod uses Alembic migrations.
            await init_db(engine)
        try:
            yield
        finally:
            await app.state.http.aclose()
            await engine.dispose()
            log.info("shutdown")

    app = FastAPI(
        title="Invoice Hub",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(dev_auth_router)
    app.include_router(invoices_router)
    app.include_router(payments_router)
    app.include_router(tickets_router)

    return app

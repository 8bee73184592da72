"""
tests.test_smoke

Boot the API in test mode and hit the health endpoints.
"""

from __future__ import annotations

import httpx
import pytest

from invoice_hub import __version__
from invoice_hub.api.app import create_app


@pytest.mark.asyncio
async def test_health_endpoints(settings) -> None:
    app = create_app(settings=settings)

    # ASGITransport does not run the lifespan; enter it explicitly.
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            r = await client.get("/healthz")
            assert r.status_code == 200
            assert r.json() == {"status": "ok", "service": "invoice-hub", "version": __version__}

            r = await client.get("/readyz")
            assert r.status_code == 200
            assert r.json() == {"status": "ready", "database": "sqlite"}

            r = await client.get("/v1/invoices")
            assert r.status_code == 401

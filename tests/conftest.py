"""
tests.conftest

Shared fixtures: an in-memory database, a session, small row factories, and an
API client with its lifespan running.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from invoice_hub.api.app import create_app
from invoice_hub.auth.jwt import JwtConfig, issue_token
from invoice_hub.db.init_db import init_db
from invoice_hub.db.models import Invoice, ServiceProvider, User
from invoice_hub.db.repositories.invoices import InvoiceRepo
from invoice_hub.db.repositories.users import ServiceProviderRepo, UserRepo
from invoice_hub.db.session import create_engine, create_sessionmaker
from invoice_hub.policies.context import InvoiceStatus
from invoice_hub.settings import Settings

MEMORY_DB = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(env="test", database_url=MEMORY_DB, log_level="WARNING")


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = create_engine(settings)
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    async with create_sessionmaker(engine)() as session:
        yield session


class Factory:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._seq = 0

    async def user(
        self,
        *,
        roles: list[str] | None = None,
        permissions: list[str] | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> User:
        self._seq += 1
        return await UserRepo(self._session).create(
            name=f"User {self._seq}",
            email=f"user{self._seq}@example.test",
            roles=roles,
            permissions=permissions,
            preferences=preferences,
        )

    async def provider(self, *, settings: dict[str, Any] | None = None) -> tuple[User, ServiceProvider]:
        owner = await self.user(roles=["service_provider"])
        provider = await ServiceProviderRepo(self._session).create(
            user_id=owner.id,
            company_name=f"Provider {owner.id}",
            settings=settings,
        )
        return owner, provider

    async def invoice(
        self,
        *,
        customer: User,
        provider: ServiceProvider,
        due_date: date,
        status: InvoiceStatus = InvoiceStatus.pending,
        amount: Decimal = Decimal("100.00"),
        meta: dict[str, Any] | None = None,
    ) -> Invoice:
        self._seq += 1
        return await InvoiceRepo(self._session).create(
            invoice_number=f"INV-TEST-{self._seq:06d}",
            user_id=customer.id,
            service_provider_id=provider.id,
            title=f"Service {self._seq}",
            amount=amount,
            tax_amount=Decimal("0"),
            due_date=due_date,
            issue_date=date(2026, 1, 1),
            status=status,
            meta=meta,
        )


@pytest.fixture
def factory(session: AsyncSession) -> Factory:
    return Factory(session)


@pytest_asyncio.fixture
async def app(settings: Settings) -> AsyncIterator[FastAPI]:
    app = create_app(settings=settings)
    # ASGITransport does not run the lifespan; enter it explicitly.
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def auth_headers(settings: Settings) -> Callable[[User], dict[str, str]]:
    cfg = JwtConfig.from_settings(settings)

    def _headers(user: User) -> dict[str, str]:
        token = issue_token(cfg=cfg, subject=str(user.id), roles=list(user.roles or []))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@dataclass(slots=True)
class World:
    admin: User
    support: User
    customer: User
    other_customer: User
    provider_owner: User
    provider: ServiceProvider
    other_provider: ServiceProvider
    pending: Invoice
    paid: Invoice
    foreign: Invoice


@pytest_asyncio.fixture
async def world(app: FastAPI) -> World:
    """Seed the app's database, then close the session before any request runs."""
    async with app.state.sessionmaker() as session:
        f = Factory(session)
        admin = await f.user(roles=["admin"])
        support = await f.user(roles=["support_agent"])
        customer = await f.user(roles=["customer"])
        other_customer = await f.user(roles=["customer"])
        provider_owner, provider = await f.provider()
        _, other_provider = await f.provider()
        pending = await f.invoice(customer=customer, provider=provider, due_date=date(2026, 5, 1))
        paid = await f.invoice(
            customer=customer, provider=provider, due_date=date(2026, 2, 1), status=InvoiceStatus.paid
        )
        foreign = await f.invoice(
            customer=other_customer, provider=other_provider, due_date=date(2026, 5, 1)
        )
        await session.commit()
    return World(
        admin=admin,
        support=support,
        customer=customer,
        other_customer=other_customer,
        provider_owner=provider_owner,
        provider=provider,
        other_provider=other_provider,
        pending=pending,
        paid=paid,
        foreign=foreign,
    )

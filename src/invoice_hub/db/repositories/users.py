from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import ServiceProvider, User


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        name: str,
        email: str,
        roles: list[str] | None = None,
        permissions: list[str] | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> User:
        user = User(
            name=name,
            email=email,
            roles=list(roles or []),
            permissions=list(permissions or []),
            preferences=dict(preferences or {}),
            is_active=True,
        )
        self._session.add(user)
        await self._session.flush()
        await self._session.refresh(user, attribute_names=["service_provider"])
        return user

    async def get(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)


class ServiceProviderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        user_id: int,
        company_name: str,
        settings: dict[str, Any] | None = None,
    ) -> ServiceProvider:
        provider = ServiceProvider(
            user_id=user_id,
            company_name=company_name,
            settings=dict(settings or {}),
        )
        self._session.add(provider)
        await self._session.flush()
        owner = await self._session.get(User, user_id)
        if owner is not None:
            # Keep the owner's already-loaded `service_provider` in sync with the new row.
            await self._session.refresh(owner, attribute_names=["service_provider"])
        return provider

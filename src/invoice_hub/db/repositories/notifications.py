"""
invoice_hub.db.repositories.notifications

Repository for `Notification` entities (the in-app "database" delivery channel).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import Notification


class NotificationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, *, user_id: int, type: str, data: dict[str, Any]) -> Notification:
        notification = Notification(user_id=user_id, type=type, data=data)
        self._session.add(notification)
        await self._session.flush()
        return notification

    async def list_for_user(self, user_id: int, *, limit: int = 100) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(desc(Notification.created_at), desc(Notification.id))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())

"""
invoice_hub.db.repositories.tickets

Repository for `SupportTicket` and `TicketReply` entities.
"""

from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import (
    SupportTicket,
    TicketCategory,
    TicketPriority,
    TicketReply,
    TicketStatus,
)

# Sentinel for "assigned_to IS NULL" filters.
UNASSIGNED = object()


class TicketRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        ticket_number: str,
        user_id: int,
        subject: str,
        description: str,
        category: TicketCategory,
        priority: TicketPriority = TicketPriority.medium,
    ) -> SupportTicket:
        ticket = SupportTicket(
            ticket_number=ticket_number,
            user_id=user_id,
            subject=subject,
            description=description,
            category=category,
            priority=priority,
            status=TicketStatus.open,
        )
        self._session.add(ticket)
        await self._session.flush()
        await self._session.refresh(ticket, attribute_names=["replies"])
        return ticket

    async def get(self, ticket_id: int) -> SupportTicket | None:
        ticket = await self._session.get(SupportTicket, ticket_id)
        if ticket is None or ticket.deleted_at is not None:
            return None
        return ticket

    async def search(
        self,
        *,
        user_id: int | None = None,
        assigned_to: int | object | None = None,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
        category: TicketCategory | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SupportTicket]:
        stmt = select(SupportTicket).where(SupportTicket.deleted_at.is_(None))
        if user_id is not None:
            stmt = stmt.where(SupportTicket.user_id == user_id)
        if assigned_to is UNASSIGNED:
            stmt = stmt.where(SupportTicket.assigned_to.is_(None))
        elif assigned_to is not None:
            stmt = stmt.where(SupportTicket.assigned_to == assigned_to)
        if status is not None:
            stmt = stmt.where(SupportTicket.status == status)
        if priority is not None:
            stmt = stmt.where(SupportTicket.priority == priority)
        if category is not None:
            stmt = stmt.where(SupportTicket.category == category)
        stmt = stmt.order_by(desc(SupportTicket.created_at), desc(SupportTicket.id))
        stmt = stmt.limit(limit).offset(offset)
        return list((await self._session.execute(stmt)).scalars().all())

    async def add_reply(
        self, ticket: SupportTicket, *, user_id: int, message: str, is_internal: bool = False
    ) -> TicketReply:
        reply = TicketReply(
            ticket_id=ticket.id, user_id=user_id, message=message, is_internal=is_internal
        )
        self._session.add(reply)
        await self._session.flush()
        await self._session.refresh(ticket, attribute_names=["replies"])
        return reply

    async def last_number_with_prefix(self, prefix: str) -> str | None:
        # Soft-deleted tickets keep their number.
        stmt = (
            select(SupportTicket.ticket_number)
            .where(SupportTicket.ticket_number.like(f"{prefix}%"))
            .order_by(desc(SupportTicket.ticket_number))
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

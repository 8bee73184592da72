"""
invoice_hub.services.ticket_service

Support ticket workflow.

Responsibilities:
- Open tickets numbered `TKT-<year>-<nnnnnn>`.
- Move tickets through open -> in_progress <-> waiting_response -> resolved -> closed as
  staff and customers reply.
- Auto-assign an unassigned ticket to the first staff member who replies.
- Resolve, close, rate and soft-delete tickets.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import (
    SupportTicket,
    TicketCategory,
    TicketPriority,
    TicketReply,
    TicketStatus,
)
from invoice_hub.db.repositories.audit import AuditRepo
from invoice_hub.db.repositories.tickets import TicketRepo
from invoice_hub.observability.logging import get_logger
from invoice_hub.services.errors import TicketStateError

log = get_logger(__name__)

_EDITABLE_FIELDS = frozenset(
    {"subject", "description", "priority", "status", "category", "assigned_to"}
)


def next_ticket_number(last: str | None, *, year: int) -> str:
    prefix = f"TKT-{year}-"
    seq = 1
    if last and last.startswith(prefix):
        seq = int(last[len(prefix) :]) + 1
    return f"{prefix}{seq:06d}"


def status_after_reply(status: TicketStatus, *, by_staff: bool) -> TicketStatus:
    if status == TicketStatus.resolved:
        return TicketStatus.open
    if status == TicketStatus.waiting_response:
        return TicketStatus.in_progress if by_staff else TicketStatus.open
    if status == TicketStatus.open and by_staff:
        return TicketStatus.in_progress
    if status == TicketStatus.in_progress and not by_staff:
        return TicketStatus.waiting_response
    return status


class TicketService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._tickets = TicketRepo(session)
        self._audit = AuditRepo(session)

    async def open(
        self,
        *,
        user_id: int,
        subject: str,
        description: str,
        category: TicketCategory,
        priority: TicketPriority = TicketPriority.medium,
        now: datetime | None = None,
    ) -> SupportTicket:
        year = (now or datetime.utcnow()).year
        number = next_ticket_number(
            await self._tickets.last_number_with_prefix(f"TKT-{year}-"), year=year
        )
        ticket = await self._tickets.create(
            ticket_number=number,
            user_id=user_id,
            subject=subject,
            description=description,
            category=category,
            priority=priority,
        )
        await self._record(ticket, str(user_id), "TICKET_OPENED")
        await self._session.commit()
        log.info("ticket_opened", ticket_number=number, user_id=user_id)
        return ticket

    async def update(
        self, ticket: SupportTicket, *, actor: str, changes: dict[str, Any]
    ) -> SupportTicket:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not editable: {sorted(unknown)}")

        reassigned = "assigned_to" in changes and changes["assigned_to"] != ticket.assigned_to
        for key, value in changes.items():
            setattr(ticket, key, value)
        if reassigned and "status" not in changes:
            ticket.status = TicketStatus.in_progress
        self._stamp(ticket)

        await self._record(ticket, actor, "TICKET_UPDATED", fields=sorted(changes))
        await self._session.commit()
        return ticket

    async def reply(
        self,
        ticket: SupportTicket,
        *,
        user_id: int,
        message: str,
        by_staff: bool,
        is_internal: bool = False,
    ) -> TicketReply:
        if ticket.status == TicketStatus.closed:
            raise TicketStateError("Cannot reply to a closed ticket.", field="ticket")

        reply = await self._tickets.add_reply(
            ticket, user_id=user_id, message=message, is_internal=is_internal and by_staff
        )
        new_status = status_after_reply(ticket.status, by_staff=by_staff)
        if new_status != ticket.status:
            ticket.status = new_status
            if new_status == TicketStatus.open:
                ticket.resolved_at = None
                ticket.closed_at = None
        if by_staff and ticket.assigned_to is None:
            ticket.assigned_to = user_id

        await self._record(ticket, str(user_id), "TICKET_REPLIED", internal=reply.is_internal)
        await self._session.commit()
        return reply

    async def resolve(
        self, ticket: SupportTicket, *, actor: str, now: datetime | None = None
    ) -> SupportTicket:
        if ticket.status == TicketStatus.closed:
            raise TicketStateError("Cannot resolve a closed ticket.", field="ticket")
        ticket.status = TicketStatus.resolved
        ticket.resolved_at = now or datetime.utcnow()
        await self._record(ticket, actor, "TICKET_RESOLVED")
        await self._session.commit()
        return ticket

    async def close(
        self, ticket: SupportTicket, *, actor: str, now: datetime | None = None
    ) -> SupportTicket:
        if ticket.status == TicketStatus.closed:
            raise TicketStateError("Ticket is already closed.", field="ticket")
        now = now or datetime.utcnow()
        if ticket.status != TicketStatus.resolved:
            ticket.resolved_at = now
        ticket.status = TicketStatus.closed
        ticket.closed_at = now
        await self._record(ticket, actor, "TICKET_CLOSED")
        await self._session.commit()
        return ticket

    async def rate(
        self, ticket: SupportTicket, *, actor: str, rating: int, comment: str | None = None
    ) -> SupportTicket:
        if ticket.status not in (TicketStatus.resolved, TicketStatus.closed):
            raise TicketStateError("Only resolved or closed tickets can be rated.", field="ticket")
        if not 1 <= rating <= 5:
            raise ValueError("rating must be between 1 and 5")
        ticket.rating = rating
        ticket.rating_comment = comment
        await self._record(ticket, actor, "TICKET_RATED", rating=rating)
        await self._session.commit()
        return ticket

    async def delete(self, ticket: SupportTicket, *, actor: str) -> None:
        ticket.deleted_at = datetime.utcnow()
        await self._record(ticket, actor, "TICKET_DELETED")
        await self._session.commit()

    @staticmethod
    def _stamp(ticket: SupportTicket) -> None:
        now = datetime.utcnow()
        if ticket.status == TicketStatus.resolved and ticket.resolved_at is None:
            ticket.resolved_at = now
        if ticket.status == TicketStatus.closed and ticket.closed_at is None:
            ticket.closed_at = now

    async def _record(self, ticket: SupportTicket, actor: str, event_type: str, **details: Any) -> None:
        await self._audit.add(
            invoice_id=None,
            actor=actor,
            event_type=event_type,
            details={"ticket_number": ticket.ticket_number, **details},
        )


# --- Module Notes -----------------------------------------------------------
# Ticket audit events carry no invoice id; the ticket number is in `details`.

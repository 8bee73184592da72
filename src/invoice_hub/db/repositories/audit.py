"""
invoice_hub.db.repositories.audit

Repository for `AuditEvent` entities.

Responsibilities:
- Append audit events (user, scheduler and system actions on invoices).
- Query the audit trail per invoice.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import AuditEvent


class AuditRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        *,
        invoice_id: int | None,
        actor: str,
        event_type: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        # Audit events are append-only (no update/delete) in normal operation.
        ev = AuditEvent(
            invoice_id=invoice_id,
            actor=actor,
            event_type=event_type,
            details=dict(details or {}),
        )
        self._session.add(ev)
        await self._session.flush()
        return ev

    async def list_for_invoice(self, invoice_id: int, *, limit: int = 200) -> list[AuditEvent]:
        # Newest first.
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.invoice_id == invoice_id)
            .order_by(desc(AuditEvent.created_at), desc(AuditEvent.id))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())

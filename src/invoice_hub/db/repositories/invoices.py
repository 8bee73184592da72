"""
invoice_hub.db.repositories.invoices

Repository for `Invoice` entities.

Responsibilities:
- Create, fetch and list invoices, hiding soft-deleted rows unless asked.
- Provide the due-date queries used by the reminder commands.
- Bulk archive stamping and invoice-number sequencing.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import Invoice
from invoice_hub.policies.context import InvoiceStatus


class InvoiceRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        invoice_number: str,
        user_id: int,
        service_provider_id: int,
        title: str,
        amount: Decimal,
        tax_amount: Decimal,
        due_date: date,
        issue_date: date,
        description: str | None = None,
        status: InvoiceStatus = InvoiceStatus.pending,
        meta: dict[str, Any] | None = None,
    ) -> Invoice:
        invoice = Invoice(
            invoice_number=invoice_number,
            user_id=user_id,
            service_provider_id=service_provider_id,
            title=title,
            description=description,
            amount=amount,
            tax_amount=tax_amount,
            total_amount=amount + tax_amount,
            status=status,
            due_date=due_date,
            issue_date=issue_date,
            paid_date=issue_date if status == InvoiceStatus.paid else None,
            meta=dict(meta or {}),
        )
        self._session.add(invoice)
        await self._session.flush()
        # Lazy loads are unavailable under asyncio; load relations eagerly for callers.
        await self._session.refresh(invoice, attribute_names=["user", "service_provider"])
        return invoice

    async def get(self, invoice_id: int, *, with_trashed: bool = False) -> Invoice | None:
        invoice = await self._session.get(Invoice, invoice_id)
        if invoice is None or (invoice.deleted_at is not None and not with_trashed):
            return None
        return invoice

    async def search(
        self,
        *,
        status: InvoiceStatus | None = None,
        user_id: int | None = None,
        service_provider_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Invoice]:
        stmt = select(Invoice).where(Invoice.deleted_at.is_(None))
        if status is not None:
            stmt = stmt.where(Invoice.status == status)
        if user_id is not None:
            stmt = stmt.where(Invoice.user_id == user_id)
        if service_provider_id is not None:
            stmt = stmt.where(Invoice.service_provider_id == service_provider_id)
        stmt = stmt.order_by(desc(Invoice.created_at), desc(Invoice.id)).limit(limit).offset(offset)
        return list((await self._session.execute(stmt)).scalars().all())

    async def pending_due_on(self, due_date: date) -> list[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.deleted_at.is_(None))
            .where(Invoice.status == InvoiceStatus.pending)
            .where(Invoice.due_date == due_date)
            .order_by(Invoice.id)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def pending_due_before(self, day: date) -> list[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.deleted_at.is_(None))
            .where(Invoice.status == InvoiceStatus.pending)
            .where(Invoice.due_date < day)
            .order_by(Invoice.id)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def last_number_with_prefix(self, prefix: str) -> str | None:
        # Soft-deleted rows still hold their number; include them.
        stmt = (
            select(Invoice.invoice_number)
            .where(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(desc(Invoice.invoice_number))
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def archive_paid_before(self, cutoff: date, *, now: datetime) -> int:
        stmt = (
            update(Invoice)
            .where(Invoice.status == InvoiceStatus.paid)
            .where(Invoice.paid_date < cutoff)
            .where(Invoice.archived_at.is_(None))
            .values(archived_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return int(result.rowcount or 0)

    async def delete_permanently(self, invoice: Invoice) -> None:
        await self._session.delete(invoice)
        await self._session.flush()


# --- Module Notes -----------------------------------------------------------
# Soft delete is a `deleted_at` stamp; only `delete_permanently` removes rows.

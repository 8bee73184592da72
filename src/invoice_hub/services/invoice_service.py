"""
invoice_hub.services.invoice_service

Invoice lifecycle service (transaction + business-rule owner).

Responsibilities:
- Create invoices with sequential `INV-<year>-<nnnnnn>` numbers.
- Enforce status rules the policy leaves to the caller (no edits/deletes of paid invoices,
  no cancelling settled ones).
- Soft delete, restore, permanent delete (with its payments), mark paid, cancel, archive.
- Record notifications, webhook events and audit entries for each change.

Authorization is NOT checked here; routers evaluate the invoice policy first and pass the
deciding clause along for the audit trail.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import Invoice
from invoice_hub.db.repositories.audit import AuditRepo
from invoice_hub.db.repositories.invoices import InvoiceRepo
from invoice_hub.db.repositories.notifications import NotificationRepo
from invoice_hub.db.repositories.payments import PaymentRepo
from invoice_hub.integrations.webhooks import (
    INVOICE_CANCELLED,
    INVOICE_PAID,
    WebhookDispatcher,
)
from invoice_hub.observability.logging import get_logger
from invoice_hub.policies.context import InvoiceStatus
from invoice_hub.services.errors import InvoiceStateError

log = get_logger(__name__)

# Status moves only through pay, mark-paid and cancel; the issue date is fixed at creation.
_EDITABLE_FIELDS = frozenset({"title", "description", "amount", "tax_amount", "due_date"})
_REQUIRED_FIELDS = frozenset({"title", "amount", "tax_amount", "due_date"})


def _utcnow() -> datetime:
    return datetime.utcnow()


def next_invoice_number(last: str | None, *, year: int) -> str:
    prefix = f"INV-{year}-"
    seq = 1
    if last and last.startswith(prefix):
        seq = int(last[len(prefix) :]) + 1
    return f"{prefix}{seq:06d}"


class InvoiceService:
    def __init__(
        self,
        *,
        session: AsyncSession,
        webhooks: WebhookDispatcher | None = None,
        archive_after_months: int = 6,
    ) -> None:
        self._session = session
        self._webhooks = webhooks
        self._archive_after_months = archive_after_months

        self._invoices = InvoiceRepo(session)
        self._notifications = NotificationRepo(session)
        self._audit = AuditRepo(session)

    async def create(
        self,
        *,
        actor: str,
        user_id: int,
        service_provider_id: int,
        title: str,
        amount: Decimal,
        due_date: date,
        tax_amount: Decimal = Decimal("0"),
        issue_date: date | None = None,
        description: str | None = None,
        status: InvoiceStatus = InvoiceStatus.pending,
        policy_clause: str | None = None,
    ) -> Invoice:
        if status == InvoiceStatus.cancelled:
            raise InvoiceStateError("Invoices cannot be created as cancelled.")

        issue_date = issue_date or _utcnow().date()
        number = next_invoice_number(
            await self._invoices.last_number_with_prefix(f"INV-{issue_date.year}-"),
            year=issue_date.year,
        )
        invoice = await self._invoices.create(
            invoice_number=number,
            user_id=user_id,
            service_provider_id=service_provider_id,
            title=title,
            description=description,
            amount=amount,
            tax_amount=tax_amount,
            due_date=due_date,
            issue_date=issue_date,
            status=status,
        )
        await self._notifications.add(
            user_id=user_id,
            type="invoice_created",
            data={"invoice_id": invoice.id, "invoice_number": number, "amount": str(invoice.total_amount)},
        )
        await self._record(invoice, actor, "INVOICE_CREATED", policy_clause)
        await self._session.commit()
        log.info("invoice_created", invoice_number=number, actor=actor)
        return invoice

    async def update(
        self,
        invoice: Invoice,
        *,
        actor: str,
        changes: dict[str, Any],
        policy_clause: str | None = None,
    ) -> Invoice:
        if invoice.status == InvoiceStatus.paid:
            raise InvoiceStateError("Cannot edit paid invoice.")

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not editable: {sorted(unknown)}")
        cleared = sorted(k for k in _REQUIRED_FIELDS if k in changes and changes[k] is None)
        if cleared:
            raise ValueError(f"fields cannot be cleared: {cleared}")

        for key, value in changes.items():
            setattr(invoice, key, value)
        invoice.total_amount = Decimal(invoice.amount) + Decimal(invoice.tax_amount)

        await self._record(
            invoice, actor, "INVOICE_UPDATED", policy_clause, fields=sorted(changes)
        )
        await self._session.commit()
        return invoice

    async def delete(self, invoice: Invoice, *, actor: str, policy_clause: str | None = None) -> None:
        if invoice.status == InvoiceStatus.paid:
            raise InvoiceStateError("Cannot delete paid invoice.")
        invoice.deleted_at = _utcnow()
        await self._record(invoice, actor, "INVOICE_DELETED", policy_clause)
        await self._session.commit()

    async def restore(self, invoice: Invoice, *, actor: str, policy_clause: str | None = None) -> Invoice:
        if invoice.deleted_at is None:
            return invoice
        invoice.deleted_at = None
        await self._record(invoice, actor, "INVOICE_RESTORED", policy_clause)
        await self._session.commit()
        return invoice

    async def force_delete(
        self, invoice: Invoice, *, actor: str, policy_clause: str | None = None
    ) -> None:
        # Audit rows keep the id; they are not foreign-keyed to the invoice.
        await self._record(invoice, actor, "INVOICE_FORCE_DELETED", policy_clause)
        await PaymentRepo(self._session).delete_for_invoice(invoice.id)
        await self._invoices.delete_permanently(invoice)
        await self._session.commit()

    async def mark_paid(
        self, invoice: Invoice, *, actor: str, policy_clause: str | None = None
    ) -> Invoice:
        if invoice.status == InvoiceStatus.paid:
            raise InvoiceStateError("Invoice is already paid.")
        if invoice.status == InvoiceStatus.cancelled:
            raise InvoiceStateError("Cannot pay a cancelled invoice.")

        await self.settle(invoice, actor=actor, policy_clause=policy_clause)
        await self._session.commit()
        await self._dispatch(INVOICE_PAID, invoice)
        return invoice

    async def settle(
        self,
        invoice: Invoice,
        *,
        actor: str,
        policy_clause: str | None = None,
        paid_on: date | None = None,
    ) -> None:
        """Flip the invoice to paid inside the caller's transaction (no commit, no webhook)."""
        invoice.status = InvoiceStatus.paid
        invoice.paid_date = paid_on or _utcnow().date()
        await self._notifications.add(
            user_id=invoice.user_id,
            type="invoice_paid",
            data={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
        )
        await self._record(invoice, actor, "INVOICE_PAID", policy_clause)

    async def cancel(
        self,
        invoice: Invoice,
        *,
        actor: str,
        reason: str | None = None,
        policy_clause: str | None = None,
    ) -> Invoice:
        if invoice.status == InvoiceStatus.paid:
            raise InvoiceStateError("Cannot cancel paid invoice.")
        if invoice.status == InvoiceStatus.cancelled:
            raise InvoiceStateError("Invoice is already cancelled.")

        meta = dict(invoice.meta or {})
        if reason:
            meta["cancellation_reason"] = reason
            meta["cancelled_at"] = _utcnow().isoformat()
        invoice.meta = meta
        invoice.status = InvoiceStatus.cancelled

        await self._record(invoice, actor, "INVOICE_CANCELLED", policy_clause, reason=reason)
        await self._session.commit()
        await self._dispatch(INVOICE_CANCELLED, invoice)
        return invoice

    async def archive(self, *, actor: str, now: datetime | None = None) -> int:
        now = now or _utcnow()
        cutoff = now.date() - relativedelta(months=self._archive_after_months)
        count = await self._invoices.archive_paid_before(cutoff, now=now)
        await self._audit.add(
            invoice_id=None,
            actor=actor,
            event_type="INVOICES_ARCHIVED",
            details={"count": count, "paid_before": cutoff.isoformat()},
        )
        await self._session.commit()
        log.info("invoices_archived", count=count, paid_before=cutoff.isoformat())
        return count

    async def _record(
        self,
        invoice: Invoice,
        actor: str,
        event_type: str,
        policy_clause: str | None,
        **details: Any,
    ) -> None:
        if policy_clause is not None:
            details["policy_clause"] = policy_clause
        await self._audit.add(
            invoice_id=invoice.id,
            actor=actor,
            event_type=event_type,
            details={k: v for k, v in details.items() if v is not None},
        )

    async def _dispatch(self, event: str, invoice: Invoice) -> None:
        if self._webhooks is None:
            return
        await self._webhooks.dispatch_invoice_event(event, invoice)


# --- Module Notes -----------------------------------------------------------
# Webhooks are sent after the commit so providers never see an event that was rolled back.

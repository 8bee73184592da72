"""
invoice_hub.services.payment_service

Payment recording against invoices.

Responsibilities:
- Accept full or partial payments up to the invoice's remaining balance.
- Number payments `PAY-<yyyymmdd>-<nnnnnn>` and keep the gateway transaction id.
- Settle the invoice (status paid) once completed payments cover its total.
- Notify the payer, audit the payment and tell the provider's webhooks.

No gateway is called: a payment is recorded as completed at the moment it is submitted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import Invoice, Payment, PaymentStatus, PaymentType
from invoice_hub.db.repositories.audit import AuditRepo
from invoice_hub.db.repositories.notifications import NotificationRepo
from invoice_hub.db.repositories.payments import PaymentRepo
from invoice_hub.integrations.webhooks import INVOICE_PAID, PAYMENT_COMPLETED, WebhookDispatcher
from invoice_hub.observability.logging import get_logger
from invoice_hub.policies.context import InvoiceStatus
from invoice_hub.services.errors import InvoiceStateError
from invoice_hub.services.invoice_service import InvoiceService

log = get_logger(__name__)

PAYMENT_COMPLETED_NOTIFICATION = "payment_completed"


def next_payment_reference(last: str | None, *, day: datetime) -> str:
    prefix = f"PAY-{day:%Y%m%d}-"
    seq = 1
    if last and last.startswith(prefix):
        seq = int(last[len(prefix) :]) + 1
    return f"{prefix}{seq:06d}"


class PaymentService:
    def __init__(self, *, session: AsyncSession, webhooks: WebhookDispatcher | None = None) -> None:
        self._session = session
        self._webhooks = webhooks

        self._payments = PaymentRepo(session)
        self._notifications = NotificationRepo(session)
        self._audit = AuditRepo(session)
        self._invoices = InvoiceService(session=session)

    async def remaining_balance(self, invoice: Invoice) -> Decimal:
        paid = await self._payments.total_completed(invoice.id)
        return Decimal(invoice.total_amount) - paid

    async def pay(
        self,
        invoice: Invoice,
        *,
        actor: str,
        payer_id: int,
        method: str,
        payment_type: PaymentType = PaymentType.full,
        amount: Decimal | None = None,
        gateway: str = "manual",
        transaction_id: str | None = None,
        notes: str | None = None,
        policy_clause: str | None = None,
        now: datetime | None = None,
    ) -> Payment:
        if invoice.status == InvoiceStatus.cancelled:
            raise InvoiceStateError("Cannot pay a cancelled invoice.")
        if invoice.status == InvoiceStatus.paid:
            raise InvoiceStateError("This invoice is already fully paid.")

        remaining = await self.remaining_balance(invoice)
        if remaining <= 0:
            raise InvoiceStateError("This invoice is already fully paid.")

        if payment_type == PaymentType.full:
            amount = remaining
        elif amount is None or amount <= 0:
            raise InvoiceStateError("Partial payments need a positive amount.", field="amount")
        elif amount > remaining:
            raise InvoiceStateError("Payment amount cannot exceed remaining amount.", field="amount")

        now = now or datetime.utcnow()
        reference = next_payment_reference(
            await self._payments.last_reference_with_prefix(f"PAY-{now:%Y%m%d}-"), day=now
        )
        payment = await self._payments.create(
            payment_reference=reference,
            invoice_id=invoice.id,
            user_id=payer_id,
            amount=amount,
            method=method,
            payment_type=payment_type,
            status=PaymentStatus.completed,
            gateway=gateway,
            gateway_transaction_id=transaction_id or f"TXN-{uuid.uuid4().hex[:16].upper()}",
            processed_at=now,
            notes=notes,
        )

        await self._notifications.add(
            user_id=payer_id,
            type=PAYMENT_COMPLETED_NOTIFICATION,
            data={
                "payment_id": payment.id,
                "payment_reference": reference,
                "invoice_number": invoice.invoice_number,
                "amount": str(amount),
            },
        )
        details = {"payment_reference": reference, "amount": str(amount), "method": method}
        if policy_clause is not None:
            details["policy_clause"] = policy_clause
        await self._audit.add(
            invoice_id=invoice.id, actor=actor, event_type="PAYMENT_RECORDED", details=details
        )

        settled = amount >= remaining
        if settled:
            await self._invoices.settle(
                invoice, actor=actor, policy_clause=policy_clause, paid_on=now.date()
            )

        await self._session.commit()
        log.info(
            "payment_recorded",
            payment_reference=reference,
            invoice_number=invoice.invoice_number,
            amount=str(amount),
            settled=settled,
        )

        if self._webhooks is not None:
            await self._webhooks.dispatch_payment_event(PAYMENT_COMPLETED, payment)
            if settled:
                await self._webhooks.dispatch_invoice_event(INVOICE_PAID, invoice)
        return payment


# --- Module Notes -----------------------------------------------------------
# The remaining balance is derived from completed payments, never stored on the invoice.

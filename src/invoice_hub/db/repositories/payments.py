"""
invoice_hub.db.repositories.payments

Repository for `Payment` entities.

Responsibilities:
- Record payments and fetch them by id.
- List payments scoped to a payer or to the provider that issued the invoice.
- Sum completed payments per invoice (partial payment bookkeeping).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import Invoice, Payment, PaymentStatus, PaymentType


class PaymentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        payment_reference: str,
        invoice_id: int,
        user_id: int,
        amount: Decimal,
        method: str,
        payment_type: PaymentType = PaymentType.full,
        status: PaymentStatus = PaymentStatus.pending,
        gateway: str = "manual",
        gateway_transaction_id: str | None = None,
        processed_at: datetime | None = None,
        notes: str | None = None,
    ) -> Payment:
        payment = Payment(
            payment_reference=payment_reference,
            invoice_id=invoice_id,
            user_id=user_id,
            amount=amount,
            method=method,
            payment_type=payment_type,
            status=status,
            gateway=gateway,
            gateway_transaction_id=gateway_transaction_id,
            processed_at=processed_at,
            notes=notes,
        )
        self._session.add(payment)
        await self._session.flush()
        await self._session.refresh(payment, attribute_names=["invoice", "user"])
        return payment

    async def get(self, payment_id: int) -> Payment | None:
        return await self._session.get(Payment, payment_id)

    async def search(
        self,
        *,
        status: PaymentStatus | None = None,
        user_id: int | None = None,
        service_provider_id: int | None = None,
        invoice_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Payment]:
        stmt = select(Payment)
        if service_provider_id is not None:
            stmt = stmt.join(Invoice, Invoice.id == Payment.invoice_id).where(
                Invoice.service_provider_id == service_provider_id
            )
        if status is not None:
            stmt = stmt.where(Payment.status == status)
        if user_id is not None:
            stmt = stmt.where(Payment.user_id == user_id)
        if invoice_id is not None:
            stmt = stmt.where(Payment.invoice_id == invoice_id)
        stmt = stmt.order_by(desc(Payment.created_at), desc(Payment.id)).limit(limit).offset(offset)
        return list((await self._session.execute(stmt)).scalars().all())

    async def total_completed(self, invoice_id: int) -> Decimal:
        stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.invoice_id == invoice_id, Payment.status == PaymentStatus.completed
        )
        return Decimal(str((await self._session.execute(stmt)).scalar_one()))

    async def last_reference_with_prefix(self, prefix: str) -> str | None:
        stmt = (
            select(Payment.payment_reference)
            .where(Payment.payment_reference.like(f"{prefix}%"))
            .order_by(desc(Payment.payment_reference))
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def delete_for_invoice(self, invoice_id: int) -> int:
        result = await self._session.execute(delete(Payment).where(Payment.invoice_id == invoice_id))
        return int(result.rowcount or 0)


# --- Module Notes -----------------------------------------------------------
# Payments are only removed together with their invoice (force delete); refunds are out of scope.

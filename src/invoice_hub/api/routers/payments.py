"""
invoice_hub.api.routers.payments

Payment history and receipts.

Payments are created through `POST /v1/invoices/{id}/pay`. Access follows the invoice view
rule, applied to the payer and the provider that issued the invoice.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_404_NOT_FOUND

from invoice_hub.api.deps import authorize, db_session, get_access_context, unprocessable
from invoice_hub.db.models import Payment, PaymentStatus, PaymentType
from invoice_hub.db.repositories.payments import PaymentRepo
from invoice_hub.policies.context import AccessContext, InvoiceFacts, Role
from invoice_hub.policies.invoice import InvoiceAction
from invoice_hub.services.errors import InvoiceStateError

router = APIRouter(prefix="/v1/payments", tags=["payments"])


class PaymentRequest(BaseModel):
    payment_type: Literal["full", "partial"] = "full"
    # Required for partial payments; ignored for full ones.
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    method: str = Field(default="card", min_length=1, max_length=64)
    gateway: str = Field(default="manual", min_length=1, max_length=64)
    transaction_id: str | None = Field(default=None, max_length=128)
    notes: str | None = Field(default=None, max_length=1000)


class PaymentResponse(BaseModel):
    id: int
    payment_reference: str
    invoice_id: int
    invoice_number: str
    invoice_status: str
    user_id: int
    amount: Decimal
    payment_type: PaymentType
    status: PaymentStatus
    method: str
    gateway: str
    transaction_id: str | None
    processed_at: datetime | None
    notes: str | None

    @classmethod
    def from_payment(cls, payment: Payment) -> PaymentResponse:
        return cls(
            id=payment.id,
            payment_reference=payment.payment_reference,
            invoice_id=payment.invoice_id,
            invoice_number=payment.invoice.invoice_number,
            invoice_status=str(payment.invoice.status),
            user_id=payment.user_id,
            amount=payment.amount,
            payment_type=payment.payment_type,
            status=payment.status,
            method=payment.method,
            gateway=payment.gateway,
            transaction_id=payment.gateway_transaction_id,
            processed_at=payment.processed_at,
            notes=payment.notes,
        )


def _facts(payment: Payment) -> InvoiceFacts:
    return InvoiceFacts(
        status=payment.invoice.status,
        user_id=payment.user_id,
        service_provider_id=payment.invoice.service_provider_id,
    )


async def _load(session: AsyncSession, payment_id: int) -> Payment:
    payment = await PaymentRepo(session).get(payment_id)
    if payment is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Payment not found")
    return payment


@router.get("", response_model=list[PaymentResponse])
async def list_payments(
    status: PaymentStatus | None = None,
    invoice_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> list[PaymentResponse]:
    authorize(ctx, InvoiceAction.view_any)

    filters: dict[str, Any] = {}
    if not ctx.has_any_role((Role.admin, Role.support_agent)):
        if ctx.has_role(Role.service_provider) and ctx.service_provider_id is not None:
            filters["service_provider_id"] = ctx.service_provider_id
        else:
            filters["user_id"] = ctx.user_id
    payments = await PaymentRepo(session).search(
        status=status, invoice_id=invoice_id, limit=limit, offset=offset, **filters
    )
    return [PaymentResponse.from_payment(p) for p in payments]


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> PaymentResponse:
    payment = await _load(session, payment_id)
    authorize(ctx, InvoiceAction.view, _facts(payment))
    return PaymentResponse.from_payment(payment)


@router.get("/{payment_id}/receipt")
async def payment_receipt(
    payment_id: int,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    payment = await _load(session, payment_id)
    authorize(ctx, InvoiceAction.download, _facts(payment))
    if payment.status != PaymentStatus.completed:
        raise unprocessable(
            InvoiceStateError("Receipt is only available for completed payments.", field="payment")
        )

    invoice = payment.invoice
    receipt = PaymentResponse.from_payment(payment).model_dump(mode="json")
    receipt["service_provider"] = invoice.service_provider.company_name
    receipt["payer"] = {"name": payment.user.name, "email": payment.user.email}
    receipt["invoice_total"] = str(invoice.total_amount)
    filename = f"receipt-{payment.payment_reference}.json"
    return JSONResponse(
        content=receipt,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

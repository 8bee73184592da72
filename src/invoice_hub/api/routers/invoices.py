"""
invoice_hub.api.routers.invoices

Invoice endpoints.

Responsibilities:
- Validate requests and resolve the target invoice.
- Ask the invoice policy before every action (403 on deny).
- Delegate the change to `InvoiceService` (or `PaymentService` for /pay) and map its errors
  to HTTP status codes.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_204_NO_CONTENT,
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
)

from invoice_hub.api.deps import (
    authorize,
    db_session,
    get_access_context,
    settings_dep,
    unprocessable,
    webhooks_dep,
)
from invoice_hub.api.routers.payments import PaymentRequest, PaymentResponse
from invoice_hub.auth.deps import get_principal
from invoice_hub.auth.models import Principal
from invoice_hub.db.models import Invoice, PaymentType
from invoice_hub.db.repositories.invoices import InvoiceRepo
from invoice_hub.integrations.webhooks import WebhookDispatcher
from invoice_hub.policies.context import AccessContext, InvoiceStatus, Role
from invoice_hub.policies.invoice import InvoiceAction, is_allowed
from invoice_hub.services.errors import InvoiceStateError
from invoice_hub.services.invoice_service import InvoiceService
from invoice_hub.services.payment_service import PaymentService
from invoice_hub.settings import Settings

router = APIRouter(prefix="/v1/invoices", tags=["invoices"])


class InvoiceCreateRequest(BaseModel):
    user_id: int = Field(ge=1)
    service_provider_id: int | None = Field(default=None, ge=1)
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    due_date: date
    issue_date: date | None = None
    status: Literal["pending", "paid", "overdue"] = "pending"


class InvoiceUpdateRequest(BaseModel):
    # Status changes go through /pay, /mark-paid and /cancel; unknown fields are a 422.
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    tax_amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    due_date: date | None = None

    @model_validator(mode="after")
    def required_fields_not_cleared(self) -> InvoiceUpdateRequest:
        cleared = [
            name
            for name in ("title", "amount", "tax_amount", "due_date")
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    user_id: int
    service_provider_id: int
    title: str
    description: str | None
    amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    status: InvoiceStatus
    due_date: date
    issue_date: date
    paid_date: date | None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="meta")
    deleted_at: datetime | None = None
    archived_at: datetime | None = None


def _service(
    session: AsyncSession,
    webhooks: WebhookDispatcher | None,
    settings: Settings,
) -> InvoiceService:
    return InvoiceService(
        session=session,
        webhooks=webhooks,
        archive_after_months=settings.archive_after_months,
    )


async def _load(session: AsyncSession, invoice_id: int, *, with_trashed: bool = False) -> Invoice:
    invoice = await InvoiceRepo(session).get(invoice_id, with_trashed=with_trashed)
    if invoice is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Invoice not found")
    return invoice


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(
    status: InvoiceStatus | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> list[Invoice]:
    authorize(ctx, InvoiceAction.view_any)

    # Narrow the query to the caller's own rows where the role allows only those.
    filters: dict[str, Any] = {}
    if not ctx.has_any_role((Role.admin, Role.support_agent)):
        if ctx.has_role(Role.service_provider) and ctx.service_provider_id is not None:
            filters["service_provider_id"] = ctx.service_provider_id
        elif ctx.has_role(Role.customer):
            filters["user_id"] = ctx.user_id
    invoices = await InvoiceRepo(session).search(status=status, limit=limit, offset=offset, **filters)
    return [inv for inv in invoices if is_allowed(ctx, InvoiceAction.view, inv)]


@router.post("", response_model=InvoiceResponse, status_code=HTTP_201_CREATED)
async def create_invoice(
    body: InvoiceCreateRequest,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    webhooks: WebhookDispatcher | None = Depends(webhooks_dep),
    settings: Settings = Depends(settings_dep),
) -> Invoice:
    decision = authorize(ctx, InvoiceAction.create)

    # Providers always bill under their own provider record.
    provider_id = body.service_provider_id
    if ctx.has_role(Role.service_provider) and ctx.service_provider_id is not None:
        provider_id = ctx.service_provider_id
    if provider_id is None:
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE_ENTITY, detail="service_provider_id is required"
        )

    try:
        return await _service(session, webhooks, settings).create(
            actor=principal.subject,
            user_id=body.user_id,
            service_provider_id=provider_id,
            title=body.title,
            description=body.description,
            amount=body.amount,
            tax_amount=body.tax_amount,
            due_date=body.due_date,
            issue_date=body.issue_date,
            status=InvoiceStatus(body.status),
            policy_clause=decision.clause,
        )
    except InvoiceStateError as e:
        raise unprocessable(e) from e


@router.post("/archive")
async def archive_invoices(
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> dict[str, Any]:
    authorize(ctx, InvoiceAction.archive)
    count = await _service(session, None, settings).archive(actor=principal.subject)
    return {"message": f"Archived {count} invoices.", "archived_count": count}


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> Invoice:
    invoice = await _load(session, invoice_id)
    authorize(ctx, InvoiceAction.view, invoice)
    return invoice


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    body: InvoiceUpdateRequest,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> Invoice:
    invoice = await _load(session, invoice_id)
    decision = authorize(ctx, InvoiceAction.update, invoice)
    try:
        return await _service(session, None, settings).update(
            invoice,
            actor=principal.subject,
            changes=body.model_dump(exclude_unset=True),
            policy_clause=decision.clause,
        )
    except InvoiceStateError as e:
        raise unprocessable(e) from e


@router.delete("/{invoice_id}", status_code=HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: int,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> Response:
    invoice = await _load(session, invoice_id)
    decision = authorize(ctx, InvoiceAction.delete, invoice)
    try:
        await _service(session, None, settings).delete(
            invoice, actor=principal.subject, policy_clause=decision.clause
        )
    except InvoiceStateError as e:
        raise unprocessable(e) from e
    return Response(status_code=HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/restore", response_model=InvoiceResponse)
async def restore_invoice(
    invoice_id: int,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> Invoice:
    invoice = await _load(session, invoice_id, with_trashed=True)
    decision = authorize(ctx, InvoiceAction.restore, invoice)
    return await _service(session, None, settings).restore(
        invoice, actor=principal.subject, policy_clause=decision.clause
    )


@router.delete("/{invoice_id}/force", status_code=HTTP_204_NO_CONTENT)
async def force_delete_invoice(
    invoice_id: int,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> Response:
    invoice = await _load(session, invoice_id, with_trashed=True)
    decision = authorize(ctx, InvoiceAction.force_delete, invoice)
    await _service(session, None, settings).force_delete(
        invoice, actor=principal.subject, policy_clause=decision.clause
    )
    return Response(status_code=HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/pay", response_model=PaymentResponse, status_code=HTTP_201_CREATED)
async def pay_invoice(
    invoice_id: int,
    body: PaymentRequest | None = None,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    webhooks: WebhookDispatcher | None = Depends(webhooks_dep),
) -> PaymentResponse:
    invoice = await _load(session, invoice_id)
    decision = authorize(ctx, InvoiceAction.pay, invoice)
    body = body or PaymentRequest()
    try:
        payment = await PaymentService(session=session, webhooks=webhooks).pay(
            invoice,
            actor=principal.subject,
            payer_id=ctx.user_id,  # type: ignore[arg-type]
            method=body.method,
            payment_type=PaymentType(body.payment_type),
            amount=body.amount,
            gateway=body.gateway,
            transaction_id=body.transaction_id,
            notes=body.notes,
            policy_clause=decision.clause,
        )
    except InvoiceStateError as e:
        raise unprocessable(e) from e
    return PaymentResponse.from_payment(payment)


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_id: int,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    webhooks: WebhookDispatcher | None = Depends(webhooks_dep),
    settings: Settings = Depends(settings_dep),
) -> Invoice:
    # Provider/admin bookkeeping; governed by the update rule.
    invoice = await _load(session, invoice_id)
    decision = authorize(ctx, InvoiceAction.update, invoice)
    try:
        return await _service(session, webhooks, settings).mark_paid(
            invoice, actor=principal.subject, policy_clause=decision.clause
        )
    except InvoiceStateError as e:
        raise unprocessable(e) from e


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: int,
    body: CancelRequest | None = None,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
    webhooks: WebhookDispatcher | None = Depends(webhooks_dep),
    settings: Settings = Depends(settings_dep),
) -> Invoice:
    invoice = await _load(session, invoice_id)
    decision = authorize(ctx, InvoiceAction.cancel, invoice)
    try:
        return await _service(session, webhooks, settings).cancel(
            invoice,
            actor=principal.subject,
            reason=body.reason if body is not None else None,
            policy_clause=decision.clause,
        )
    except InvoiceStateError as e:
        raise unprocessable(e) from e


@router.get("/{invoice_id}/download")
async def download_invoice(
    invoice_id: int,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    invoice = await _load(session, invoice_id)
    authorize(ctx, InvoiceAction.download, invoice)
    document = InvoiceResponse.model_validate(invoice).model_dump(mode="json")
    document["service_provider"] = invoice.service_provider.company_name
    document["customer"] = {"name": invoice.user.name, "email": invoice.user.email}
    filename = f"invoice-{invoice.invoice_number}.json"
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Module Notes -----------------------------------------------------------
# `/archive` is declared before `/{invoice_id}` routes so it is never parsed as an id.

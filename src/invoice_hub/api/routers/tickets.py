"""
invoice_hub.api.routers.tickets

Support ticket endpoints.

Responsibilities:
- List tickets (customers see their own; staff filter by assignee and status).
- Open, update, reply to, resolve, close, rate and delete tickets.
- Hide internal staff notes from non-staff readers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_204_NO_CONTENT,
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE_ENTITY,
)

from invoice_hub.api.deps import authorize_ticket, db_session, get_access_context, unprocessable
from invoice_hub.auth.deps import get_principal
from invoice_hub.auth.models import Principal
from invoice_hub.db.models import (
    SupportTicket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from invoice_hub.db.repositories.tickets import UNASSIGNED, TicketRepo
from invoice_hub.policies.context import AccessContext, Role
from invoice_hub.policies.ticket import TicketAction
from invoice_hub.services.errors import TicketStateError
from invoice_hub.services.ticket_service import TicketService

router = APIRouter(prefix="/v1/tickets", tags=["tickets"])

_STAFF = (Role.admin, Role.support_agent)


class TicketCreateRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    category: TicketCategory
    priority: TicketPriority = TicketPriority.medium


class TicketUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    priority: TicketPriority | None = None
    status: TicketStatus | None = None
    category: TicketCategory | None = None
    # Explicit null unassigns the ticket.
    assigned_to: int | None = Field(default=None, ge=1)


class ReplyRequest(BaseModel):
    message: str = Field(min_length=1, max_length=10_000)
    is_internal: bool = False


class RateRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)


class ReplyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    message: str
    is_internal: bool
    created_at: datetime


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_number: str
    user_id: int
    assigned_to: int | None
    subject: str
    description: str
    priority: TicketPriority
    status: TicketStatus
    category: TicketCategory
    rating: int | None
    rating_comment: str | None
    resolved_at: datetime | None
    closed_at: datetime | None
    created_at: datetime
    replies: list[ReplyResponse] = Field(default_factory=list)


def _render(ticket: SupportTicket, ctx: AccessContext) -> TicketResponse:
    out = TicketResponse.model_validate(ticket)
    if not ctx.has_any_role(_STAFF):
        out.replies = [r for r in out.replies if not r.is_internal]
    return out


async def _load(session: AsyncSession, ticket_id: int) -> SupportTicket:
    ticket = await TicketRepo(session).get(ticket_id)
    if ticket is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Ticket not found")
    return ticket


def _assignee_filter(value: str | None, ctx: AccessContext) -> int | object | None:
    if value is None:
        return None
    if value == "me":
        return ctx.user_id
    if value == "unassigned":
        return UNASSIGNED
    try:
        return int(value)
    except ValueError as e:
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE_ENTITY,
            detail="assigned_to must be 'me', 'unassigned' or an id",
        ) from e


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    status: TicketStatus | None = None,
    priority: TicketPriority | None = None,
    category: TicketCategory | None = None,
    assigned_to: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> list[TicketResponse]:
    filters: dict[str, Any] = {}
    if ctx.has_any_role(_STAFF):
        filters["assigned_to"] = _assignee_filter(assigned_to, ctx)
    else:
        filters["user_id"] = ctx.user_id
    tickets = await TicketRepo(session).search(
        status=status, priority=priority, category=category, limit=limit, offset=offset, **filters
    )
    return [_render(t, ctx) for t in tickets]


@router.post("", response_model=TicketResponse, status_code=HTTP_201_CREATED)
async def open_ticket(
    body: TicketCreateRequest,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> TicketResponse:
    authorize_ticket(ctx, TicketAction.create)
    ticket = await TicketService(session=session).open(
        user_id=ctx.user_id,  # type: ignore[arg-type]
        subject=body.subject,
        description=body.description,
        category=body.category,
        priority=body.priority,
    )
    return _render(ticket, ctx)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: int,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> TicketResponse:
    ticket = await _load(session, ticket_id)
    authorize_ticket(ctx, TicketAction.view, ticket)
    return _render(ticket, ctx)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: int,
    body: TicketUpdateRequest,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> TicketResponse:
    ticket = await _load(session, ticket_id)
    authorize_ticket(ctx, TicketAction.update, ticket)
    changes = body.model_dump(exclude_unset=True)
    # Only the assignee may be cleared.
    changes = {k: v for k, v in changes.items() if v is not None or k == "assigned_to"}
    ticket = await TicketService(session=session).update(
        ticket, actor=principal.subject, changes=changes
    )
    return _render(ticket, ctx)


@router.post("/{ticket_id}/replies", response_model=ReplyResponse, status_code=HTTP_201_CREATED)
async def reply_to_ticket(
    ticket_id: int,
    body: ReplyRequest,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> ReplyResponse:
    ticket = await _load(session, ticket_id)
    authorize_ticket(ctx, TicketAction.reply, ticket)
    try:
        reply = await TicketService(session=session).reply(
            ticket,
            user_id=ctx.user_id,  # type: ignore[arg-type]
            message=body.message,
            by_staff=ctx.has_any_role(_STAFF),
            is_internal=body.is_internal,
        )
    except TicketStateError as e:
        raise unprocessable(e) from e
    return ReplyResponse.model_validate(reply)


@router.post("/{ticket_id}/resolve", response_model=TicketResponse)
async def resolve_ticket(
    ticket_id: int,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> TicketResponse:
    ticket = await _load(session, ticket_id)
    authorize_ticket(ctx, TicketAction.resolve, ticket)
    try:
        ticket = await TicketService(session=session).resolve(ticket, actor=principal.subject)
    except TicketStateError as e:
        raise unprocessable(e) from e
    return _render(ticket, ctx)


@router.post("/{ticket_id}/close", response_model=TicketResponse)
async def close_ticket(
    ticket_id: int,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> TicketResponse:
    ticket = await _load(session, ticket_id)
    authorize_ticket(ctx, TicketAction.close, ticket)
    try:
        ticket = await TicketService(session=session).close(ticket, actor=principal.subject)
    except TicketStateError as e:
        raise unprocessable(e) from e
    return _render(ticket, ctx)


@router.post("/{ticket_id}/rate", response_model=TicketResponse)
async def rate_ticket(
    ticket_id: int,
    body: RateRequest,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> TicketResponse:
    ticket = await _load(session, ticket_id)
    authorize_ticket(ctx, TicketAction.rate, ticket)
    try:
        ticket = await TicketService(session=session).rate(
            ticket, actor=principal.subject, rating=body.rating, comment=body.comment
        )
    except TicketStateError as e:
        raise unprocessable(e) from e
    return _render(ticket, ctx)


@router.delete("/{ticket_id}", status_code=HTTP_204_NO_CONTENT)
async def delete_ticket(
    ticket_id: int,
    principal: Principal = Depends(get_principal),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(db_session),
) -> Response:
    ticket = await _load(session, ticket_id)
    authorize_ticket(ctx, TicketAction.delete, ticket)
    await TicketService(session=session).delete(ticket, actor=principal.subject)
    return Response(status_code=HTTP_204_NO_CONTENT)

"""
invoice_hub.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings, DB sessions and the webhook dispatcher.
- Resolve the caller's `AccessContext` from the user store.
- Turn a policy deny into a 403 (and log it), and a service state error into a 422.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.status import (
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_422_UNPROCESSABLE_ENTITY,
)

from invoice_hub.auth.deps import get_principal
from invoice_hub.auth.models import Principal
from invoice_hub.db.models import SupportTicket, User
from invoice_hub.db.repositories.users import UserRepo
from invoice_hub.integrations.webhooks import WebhookDispatcher
from invoice_hub.observability.logging import get_logger
from invoice_hub.policies.context import AccessContext, InvoiceTarget, effective_permissions
from invoice_hub.policies.invoice import Decision, InvoiceAction, evaluate
from invoice_hub.policies.ticket import TicketAction, evaluate_ticket
from invoice_hub.services.errors import StateError
from invoice_hub.settings import Settings, get_settings

log = get_logger(__name__)


def settings_dep(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


def webhooks_dep(request: Request) -> WebhookDispatcher | None:
    return getattr(request.app.state, "webhooks", None)


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Commit/rollback is managed by the service layer.
    async with session_factory() as session:
        yield session


def access_context_for(user: User) -> AccessContext:
    provider = user.service_provider
    return AccessContext(
        user_id=user.id,
        roles=frozenset(user.roles or []),
        permissions=effective_permissions(user.roles or [], user.permissions or []),
        service_provider_id=provider.id if provider is not None else None,
    )


async def get_access_context(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> AccessContext:
    user_id = principal.user_id
    user = await UserRepo(session).get(user_id) if user_id is not None else None
    if user is None or not user.is_active:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Unknown or inactive user")
    return access_context_for(user)


def _enforce(ctx: AccessContext, decision: Decision, **target: int | None) -> Decision:
    if not decision.allowed:
        log.info(
            "policy_denied",
            action=str(decision.action),
            clause=decision.clause,
            user_id=ctx.user_id,
            **target,
        )
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="This action is unauthorized.")
    return decision


def authorize(
    ctx: AccessContext,
    action: InvoiceAction,
    invoice: InvoiceTarget | None = None,
) -> Decision:
    return _enforce(ctx, evaluate(ctx, action, invoice), invoice_id=getattr(invoice, "id", None))


def authorize_ticket(
    ctx: AccessContext,
    action: TicketAction,
    ticket: SupportTicket | None = None,
) -> Decision:
    return _enforce(
        ctx, evaluate_ticket(ctx, action, ticket), ticket_id=ticket.id if ticket is not None else None
    )


def unprocessable(e: StateError) -> HTTPException:
    return HTTPException(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": str(e), "errors": {e.field: [str(e)]}},
    )


# --- Module Notes -----------------------------------------------------------
# Roles and permissions come from the user row, not the token, so revocations apply
# without waiting for tokens to expire.

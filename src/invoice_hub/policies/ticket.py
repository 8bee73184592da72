"""
invoice_hub.policies.ticket

Authorization decision table for support tickets.

Same evaluation model as the invoice table: ordered clauses, first match wins, otherwise
`default-deny`. Staff means admin or support agent.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from typing import Protocol

from invoice_hub.policies.context import AccessContext, Role
from invoice_hub.policies.invoice import DEFAULT_DENY, Clause, Decision, Effect, UnknownActionError


class TicketTarget(Protocol):
    @property
    def user_id(self) -> int: ...


class TicketAction(enum.StrEnum):
    view = "view"
    create = "create"
    update = "update"
    reply = "reply"
    resolve = "resolve"
    close = "close"
    rate = "rate"
    delete = "delete"


def _is_staff(ctx: AccessContext, _: TicketTarget | None) -> bool:
    return ctx.has_any_role((Role.admin, Role.support_agent))


def _is_admin(ctx: AccessContext, _: TicketTarget | None) -> bool:
    return ctx.has_role(Role.admin)


def _is_authenticated(ctx: AccessContext, _: TicketTarget | None) -> bool:
    return ctx.user_id is not None


def _owns_ticket(ctx: AccessContext, ticket: TicketTarget | None) -> bool:
    return ticket is not None and ctx.user_id is not None and ticket.user_id == ctx.user_id


_STAFF = Clause("staff", _is_staff, Effect.allow)
_OWNER = Clause("owns-ticket", _owns_ticket, Effect.allow)

TICKET_RULES: Mapping[TicketAction, Sequence[Clause]] = {
    TicketAction.view: (_STAFF, _OWNER),
    TicketAction.create: (Clause("authenticated", _is_authenticated, Effect.allow),),
    TicketAction.update: (_STAFF,),
    TicketAction.reply: (_STAFF, _OWNER),
    TicketAction.resolve: (_STAFF,),
    TicketAction.close: (_STAFF, _OWNER),
    TicketAction.rate: (_OWNER,),
    TicketAction.delete: (Clause("admin", _is_admin, Effect.allow),),
}


def evaluate_ticket(
    ctx: AccessContext,
    action: TicketAction | str,
    ticket: TicketTarget | None = None,
) -> Decision:
    try:
        act = TicketAction(action)
    except ValueError as e:
        raise UnknownActionError(f"unknown ticket action: {action!r}") from e

    for clause in TICKET_RULES[act]:
        if clause.applies(ctx, ticket):  # type: ignore[arg-type]
            return Decision(action=act, allowed=clause.effect is Effect.allow, clause=clause.name)
    return Decision(action=act, allowed=False, clause=DEFAULT_DENY)


# --- Module Notes -----------------------------------------------------------
# `rate` has no staff clause: only the ticket owner can rate, even for an admin-owned ticket.

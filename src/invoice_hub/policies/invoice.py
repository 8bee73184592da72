"""
invoice_hub.policies.invoice

Authorization decision table for invoices.

Responsibilities:
- Declare, per action, an ordered list of clauses (predicate + allow/deny effect).
- Evaluate a clause list top-to-bottom; the first matching clause decides, otherwise deny.
- Expose one boolean check per action for callers that don't need the audit detail.

The evaluator is pure: no I/O, no mutation, no exceptions for missing relations. An actor
without a linked provider record, an anonymous context, or a missing invoice simply fails
the clauses that need them.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from invoice_hub.policies.context import (
    ARCHIVE_INVOICES,
    CREATE_INVOICES,
    VIEW_INVOICES,
    AccessContext,
    InvoiceStatus,
    InvoiceTarget,
    Role,
)

DEFAULT_DENY = "default-deny"

Predicate = Callable[[AccessContext, InvoiceTarget | None], bool]


class InvoiceAction(enum.StrEnum):
    view_any = "view-any"
    view = "view"
    create = "create"
    update = "update"
    delete = "delete"
    restore = "restore"
    force_delete = "force-delete"
    pay = "pay"
    download = "download"
    archive = "archive"
    cancel = "cancel"


class Effect(enum.StrEnum):
    allow = "allow"
    deny = "deny"


class UnknownActionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Clause:
    name: str
    applies: Predicate
    effect: Effect


@dataclass(frozen=True, slots=True)
class Decision:
    # InvoiceAction or TicketAction; both are str enums.
    action: str
    allowed: bool
    clause: str

    def __bool__(self) -> bool:
        return self.allowed


# --- Predicates ---------------------------------------------------------------


def _is_admin(ctx: AccessContext, _: InvoiceTarget | None) -> bool:
    return ctx.has_role(Role.admin)


def _is_admin_or_support(ctx: AccessContext, _: InvoiceTarget | None) -> bool:
    return ctx.has_any_role((Role.admin, Role.support_agent))


def _is_admin_or_provider(ctx: AccessContext, _: InvoiceTarget | None) -> bool:
    return ctx.has_any_role((Role.admin, Role.service_provider))


def _provider_owns(ctx: AccessContext, invoice: InvoiceTarget | None) -> bool:
    if invoice is None or not ctx.has_role(Role.service_provider):
        return False
    if ctx.service_provider_id is None:
        return False
    return invoice.service_provider_id == ctx.service_provider_id


def _customer_owns(ctx: AccessContext, invoice: InvoiceTarget | None) -> bool:
    if invoice is None or not ctx.has_role(Role.customer):
        return False
    if ctx.user_id is None:
        return False
    return invoice.user_id == ctx.user_id


def _customer_owns_payable(ctx: AccessContext, invoice: InvoiceTarget | None) -> bool:
    if not _customer_owns(ctx, invoice):
        return False
    return invoice.status in (InvoiceStatus.pending, InvoiceStatus.overdue)  # type: ignore[union-attr]


def _is_paid(_: AccessContext, invoice: InvoiceTarget | None) -> bool:
    return invoice is not None and invoice.status == InvoiceStatus.paid


def _is_settled(_: AccessContext, invoice: InvoiceTarget | None) -> bool:
    return invoice is not None and invoice.status in (InvoiceStatus.paid, InvoiceStatus.cancelled)


def _has_permission(permission: str) -> Predicate:
    def predicate(ctx: AccessContext, _: InvoiceTarget | None) -> bool:
        return ctx.can(permission)

    return predicate


# --- Decision table -------------------------------------------------------------

_VIEW: tuple[Clause, ...] = (
    Clause("admin-or-support", _is_admin_or_support, Effect.allow),
    Clause("provider-owns-invoice", _provider_owns, Effect.allow),
    Clause("customer-owns-invoice", _customer_owns, Effect.allow),
)

_ADMIN_ONLY: tuple[Clause, ...] = (Clause("admin", _is_admin, Effect.allow),)

INVOICE_RULES: Mapping[InvoiceAction, Sequence[Clause]] = {
    InvoiceAction.view_any: (
        Clause("permission:view invoices", _has_permission(VIEW_INVOICES), Effect.allow),
    ),
    InvoiceAction.view: _VIEW,
    InvoiceAction.create: (
        Clause("admin-or-provider", _is_admin_or_provider, Effect.allow),
        # Legacy permission grant, kept alongside the role check.
        Clause("permission:create invoices", _has_permission(CREATE_INVOICES), Effect.allow),
    ),
    # Paid-invoice edit protection belongs to the invoice service, not here.
    InvoiceAction.update: (
        Clause("admin", _is_admin, Effect.allow),
        Clause("provider-owns-invoice", _provider_owns, Effect.allow),
    ),
    InvoiceAction.delete: (
        Clause("invoice-paid", _is_paid, Effect.deny),
        Clause("admin", _is_admin, Effect.allow),
        Clause("provider-owns-invoice", _provider_owns, Effect.allow),
    ),
    InvoiceAction.restore: _ADMIN_ONLY,
    InvoiceAction.force_delete: _ADMIN_ONLY,
    InvoiceAction.pay: (
        Clause("customer-owns-payable-invoice", _customer_owns_payable, Effect.allow),
    ),
    InvoiceAction.download: _VIEW,
    InvoiceAction.archive: (
        Clause("permission:archive invoices", _has_permission(ARCHIVE_INVOICES), Effect.allow),
    ),
    InvoiceAction.cancel: (
        Clause("invoice-settled", _is_settled, Effect.deny),
        Clause("admin", _is_admin, Effect.allow),
        Clause("provider-owns-invoice", _provider_owns, Effect.allow),
        Clause("customer-owns-invoice", _customer_owns, Effect.allow),
    ),
}


def _coerce_action(action: InvoiceAction | str) -> InvoiceAction:
    try:
        return InvoiceAction(action)
    except ValueError as e:
        raise UnknownActionError(f"unknown invoice action: {action!r}") from e


def evaluate(
    ctx: AccessContext,
    action: InvoiceAction | str,
    invoice: InvoiceTarget | None = None,
) -> Decision:
    """
    Walk the clauses for `action` in order and return the first match.

    Raises `UnknownActionError` only for an action name that is not in the table; that is a
    programming error, not a deny.
    """

    act = _coerce_action(action)
    for clause in INVOICE_RULES[act]:
        if clause.applies(ctx, invoice):
            return Decision(action=act, allowed=clause.effect is Effect.allow, clause=clause.name)
    return Decision(action=act, allowed=False, clause=DEFAULT_DENY)


def is_allowed(
    ctx: AccessContext,
    action: InvoiceAction | str,
    invoice: InvoiceTarget | None = None,
) -> bool:
    return evaluate(ctx, action, invoice).allowed


def can_view_any(ctx: AccessContext) -> bool:
    return is_allowed(ctx, InvoiceAction.view_any)


def can_view(ctx: AccessContext, invoice: InvoiceTarget) -> bool:
    return is_allowed(ctx, InvoiceAction.view, invoice)


def can_create(ctx: AccessContext) -> bool:
    return is_allowed(ctx, InvoiceAction.create)


def can_update(ctx: AccessContext, invoice: InvoiceTarget) -> bool:
    return is_allowed(ctx, InvoiceAction.update, invoice)


def can_delete(ctx: AccessContext, invoice: InvoiceTarget) -> bool:
    return is_allowed(ctx, InvoiceAction.delete, invoice)


def can_restore(ctx: AccessContext, invoice: InvoiceTarget | None = None) -> bool:
    return is_allowed(ctx, InvoiceAction.restore, invoice)


def can_force_delete(ctx: AccessContext, invoice: InvoiceTarget | None = None) -> bool:
    return is_allowed(ctx, InvoiceAction.force_delete, invoice)


def can_pay(ctx: AccessContext, invoice: InvoiceTarget) -> bool:
    return is_allowed(ctx, InvoiceAction.pay, invoice)


def can_download(ctx: AccessContext, invoice: InvoiceTarget) -> bool:
    return is_allowed(ctx, InvoiceAction.download, invoice)


def can_archive(ctx: AccessContext) -> bool:
    return is_allowed(ctx, InvoiceAction.archive)


def can_cancel(ctx: AccessContext, invoice: InvoiceTarget) -> bool:
    return is_allowed(ctx, InvoiceAction.cancel, invoice)


# --- Module Notes -----------------------------------------------------------
# Role clauses are independent: a failed ownership test is a non-match, so an actor holding
# several roles still reaches the clauses for its other roles. Deny clauses sit first in the
# actions whose status guard overrides every role.

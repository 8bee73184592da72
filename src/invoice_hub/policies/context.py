"""
invoice_hub.policies.context

Value types consumed by the policy evaluators.

Responsibilities:
- `AccessContext`: who is acting (user id, role tags, permission tags, provider link).
- `InvoiceTarget`: the read-only invoice fields a decision may look at.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol


class Role(enum.StrEnum):
    admin = "admin"
    service_provider = "service_provider"
    customer = "customer"
    support_agent = "support_agent"


class InvoiceStatus(enum.StrEnum):
    pending = "pending"
    overdue = "overdue"
    paid = "paid"
    cancelled = "cancelled"


# Permission tags checked by the invoice policy.
VIEW_INVOICES = "view invoices"
CREATE_INVOICES = "create invoices"
ARCHIVE_INVOICES = "archive invoices"

INVOICE_PERMISSIONS: frozenset[str] = frozenset(
    {
        VIEW_INVOICES,
        CREATE_INVOICES,
        "edit invoices",
        "delete invoices",
        "pay invoices",
        "download invoices",
        ARCHIVE_INVOICES,
    }
)

# Invoice permissions each role grants on top of a user's direct grants.
ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    Role.admin: INVOICE_PERMISSIONS,
    Role.service_provider: frozenset(
        {VIEW_INVOICES, CREATE_INVOICES, "edit invoices", "delete invoices"}
    ),
    Role.customer: frozenset({VIEW_INVOICES, "pay invoices", "download invoices"}),
    Role.support_agent: frozenset({VIEW_INVOICES}),
}


def effective_permissions(roles: Iterable[str], direct: Iterable[str] = ()) -> frozenset[str]:
    granted = set(direct)
    for role in roles:
        granted |= ROLE_PERMISSIONS.get(role, frozenset())
    return frozenset(granted)


@dataclass(frozen=True, slots=True)
class AccessContext:
    """
    Snapshot of an actor's identity for authorization.

    `service_provider_id` is the id of the provider record linked to the actor, or None
    when the actor has no such record (even if it holds the `service_provider` role).
    """

    user_id: int | None = None
    roles: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)
    service_provider_id: int | None = None

    def __post_init__(self) -> None:
        # Accept any iterable of tags from callers; store immutable sets.
        object.__setattr__(self, "roles", frozenset(str(r) for r in self.roles))
        object.__setattr__(self, "permissions", frozenset(str(p) for p in self.permissions))

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return any(r in self.roles for r in roles)

    def can(self, permission: str) -> bool:
        return permission in self.permissions


class InvoiceTarget(Protocol):
    @property
    def status(self) -> str: ...

    @property
    def user_id(self) -> int | None: ...

    @property
    def service_provider_id(self) -> int | None: ...


@dataclass(frozen=True, slots=True)
class InvoiceFacts:
    """Plain `InvoiceTarget` for callers that don't hold an ORM row."""

    status: str
    user_id: int | None = None
    service_provider_id: int | None = None


# --- Module Notes -----------------------------------------------------------
# Both the ORM `Invoice` and `InvoiceFacts` satisfy `InvoiceTarget` structurally.

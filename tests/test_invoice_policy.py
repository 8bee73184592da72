"""
tests.test_invoice_policy

Decision-table tests for the invoice policy (pure, no database).
"""

from __future__ import annotations

import itertools

import pytest

from invoice_hub.policies.context import (
    ARCHIVE_INVOICES,
    CREATE_INVOICES,
    VIEW_INVOICES,
    AccessContext,
    InvoiceFacts,
    InvoiceStatus,
    Role,
    effective_permissions,
)
from invoice_hub.policies.invoice import (
    DEFAULT_DENY,
    INVOICE_RULES,
    InvoiceAction,
    UnknownActionError,
    can_archive,
    can_cancel,
    can_create,
    can_delete,
    can_download,
    can_force_delete,
    can_pay,
    can_restore,
    can_update,
    can_view,
    can_view_any,
    evaluate,
)

ADMIN = AccessContext(user_id=1, roles={Role.admin})
SUPPORT = AccessContext(user_id=2, roles={Role.support_agent})
PROVIDER = AccessContext(user_id=9, roles={Role.service_provider}, service_provider_id=42)
PROVIDER_WITHOUT_RECORD = AccessContext(user_id=10, roles={Role.service_provider})
CUSTOMER = AccessContext(user_id=5, roles={Role.customer})
NOBODY = AccessContext()

ALL_ACTORS = [ADMIN, SUPPORT, PROVIDER, PROVIDER_WITHOUT_RECORD, CUSTOMER, NOBODY]


def _invoice(status: InvoiceStatus = InvoiceStatus.pending, *, user_id: int = 5, provider_id: int = 42):
    return InvoiceFacts(status=status, user_id=user_id, service_provider_id=provider_id)


def test_customer_owning_overdue_invoice() -> None:
    inv = _invoice(InvoiceStatus.overdue, user_id=5)
    assert can_pay(CUSTOMER, inv) is True
    assert can_cancel(CUSTOMER, inv) is True
    assert can_delete(CUSTOMER, inv) is False


def test_provider_owning_pending_invoice() -> None:
    inv = _invoice(InvoiceStatus.pending, provider_id=42)
    assert can_update(PROVIDER, inv) is True
    assert can_view(PROVIDER, inv) is True


def test_admin_and_paid_invoice() -> None:
    inv = _invoice(InvoiceStatus.paid)
    assert can_delete(ADMIN, inv) is False
    assert can_restore(ADMIN, inv) is True


@pytest.mark.parametrize("actor", ALL_ACTORS)
@pytest.mark.parametrize("status", [InvoiceStatus.paid, InvoiceStatus.cancelled])
def test_settled_invoices_cannot_be_cancelled(actor: AccessContext, status: InvoiceStatus) -> None:
    assert can_cancel(actor, _invoice(status)) is False


@pytest.mark.parametrize("actor", ALL_ACTORS)
def test_paid_invoices_cannot_be_deleted(actor: AccessContext) -> None:
    decision = evaluate(actor, InvoiceAction.delete, _invoice(InvoiceStatus.paid))
    assert not decision
    assert decision.clause in ("invoice-paid", DEFAULT_DENY)


def test_pay_requires_customer_ownership_and_open_status() -> None:
    for status in InvoiceStatus:
        expected = status in (InvoiceStatus.pending, InvoiceStatus.overdue)
        assert can_pay(CUSTOMER, _invoice(status, user_id=5)) is expected
        assert can_pay(CUSTOMER, _invoice(status, user_id=6)) is False
        assert can_pay(ADMIN, _invoice(status, user_id=1)) is False


@pytest.mark.parametrize("actor", [ADMIN, SUPPORT])
def test_admin_and_support_view_everything(actor: AccessContext) -> None:
    inv = _invoice(user_id=777, provider_id=888)
    assert can_view(actor, inv) is True
    assert can_download(actor, inv) is True


def test_customer_cannot_view_someone_elses_invoice() -> None:
    assert can_view(CUSTOMER, _invoice(user_id=6)) is False


def test_update_never_depends_on_status() -> None:
    for actor, status in itertools.product(ALL_ACTORS, InvoiceStatus):
        baseline = can_update(actor, _invoice(InvoiceStatus.pending))
        assert can_update(actor, _invoice(status)) is baseline


def test_provider_without_record_fails_closed() -> None:
    inv = _invoice(provider_id=42)
    for action in (InvoiceAction.view, InvoiceAction.update, InvoiceAction.delete, InvoiceAction.cancel):
        decision = evaluate(PROVIDER_WITHOUT_RECORD, action, inv)
        assert decision.allowed is False
        assert decision.clause == DEFAULT_DENY


def test_provider_cannot_touch_other_providers_invoices() -> None:
    inv = _invoice(provider_id=43)
    assert can_view(PROVIDER, inv) is False
    assert can_update(PROVIDER, inv) is False
    assert can_delete(PROVIDER, inv) is False
    assert can_cancel(PROVIDER, inv) is False


def test_missing_invoice_fails_ownership_clauses() -> None:
    for action in (InvoiceAction.view, InvoiceAction.update, InvoiceAction.delete):
        assert evaluate(PROVIDER, action, None).allowed is False
    for action in (InvoiceAction.view, InvoiceAction.pay, InvoiceAction.cancel):
        assert evaluate(CUSTOMER, action, None).allowed is False


def test_role_clauses_are_independent() -> None:
    # A provider that is also a customer can view its own purchases from another provider.
    both = AccessContext(
        user_id=9, roles={Role.service_provider, Role.customer}, service_provider_id=42
    )
    bought = _invoice(user_id=9, provider_id=99)
    decision = evaluate(both, InvoiceAction.view, bought)
    assert decision.allowed is True
    assert decision.clause == "customer-owns-invoice"
    assert can_cancel(both, bought) is True
    assert can_update(both, bought) is False


def test_create_role_path_and_legacy_permission_path() -> None:
    assert can_create(ADMIN) is True
    assert can_create(PROVIDER_WITHOUT_RECORD) is True
    assert can_create(CUSTOMER) is False

    legacy = AccessContext(user_id=3, roles={Role.customer}, permissions={CREATE_INVOICES})
    decision = evaluate(legacy, InvoiceAction.create)
    assert decision.allowed is True
    assert decision.clause == "permission:create invoices"


def test_permission_based_actions() -> None:
    assert can_view_any(AccessContext(permissions={VIEW_INVOICES})) is True
    assert can_view_any(ADMIN) is False  # raw context: no permissions granted
    assert can_archive(AccessContext(permissions={ARCHIVE_INVOICES})) is True
    assert can_archive(PROVIDER) is False


def test_role_grants_feed_permission_checks() -> None:
    admin = AccessContext(user_id=1, roles={Role.admin}, permissions=effective_permissions([Role.admin]))
    assert can_view_any(admin) is True
    assert can_archive(admin) is True

    provider_perms = effective_permissions([Role.service_provider])
    assert VIEW_INVOICES in provider_perms
    assert ARCHIVE_INVOICES not in provider_perms


def test_restore_and_force_delete_are_admin_only() -> None:
    inv = _invoice()
    for actor in ALL_ACTORS:
        assert can_restore(actor, inv) is (actor is ADMIN)
        assert can_force_delete(actor, inv) is (actor is ADMIN)


def test_cancel_clause_order() -> None:
    assert evaluate(ADMIN, InvoiceAction.cancel, _invoice(InvoiceStatus.paid)).clause == "invoice-settled"
    assert evaluate(ADMIN, InvoiceAction.cancel, _invoice()).clause == "admin"
    assert evaluate(PROVIDER, InvoiceAction.cancel, _invoice()).clause == "provider-owns-invoice"
    assert evaluate(CUSTOMER, InvoiceAction.cancel, _invoice()).clause == "customer-owns-invoice"
    assert evaluate(SUPPORT, InvoiceAction.cancel, _invoice()).clause == DEFAULT_DENY


def test_download_mirrors_view() -> None:
    for actor, inv in itertools.product(ALL_ACTORS, [_invoice(), _invoice(user_id=6, provider_id=7)]):
        assert can_download(actor, inv) is can_view(actor, inv)


def test_every_action_has_rules() -> None:
    assert set(INVOICE_RULES) == set(InvoiceAction)


def test_action_names_accept_strings() -> None:
    assert evaluate(ADMIN, "force-delete").allowed is True
    with pytest.raises(UnknownActionError):
        evaluate(ADMIN, "approve")


def test_context_coerces_tag_collections() -> None:
    ctx = AccessContext(user_id=1, roles=["admin", "admin"], permissions=("view invoices",))
    assert ctx.roles == frozenset({"admin"})
    assert ctx.can("view invoices")
    assert ctx.has_any_role(["customer", "admin"])

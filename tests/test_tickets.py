"""
tests.test_tickets

Support tickets: the ticket decision table, the reply-driven status flow, and the endpoints.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from invoice_hub.db.models import TicketStatus
from invoice_hub.policies.context import AccessContext
from invoice_hub.policies.invoice import UnknownActionError
from invoice_hub.policies.ticket import TicketAction, evaluate_ticket
from invoice_hub.services.ticket_service import next_ticket_number, status_after_reply

ADMIN = AccessContext(user_id=1, roles={"admin"})
SUPPORT = AccessContext(user_id=2, roles={"support_agent"})
OWNER = AccessContext(user_id=3, roles={"customer"})
STRANGER = AccessContext(user_id=4, roles={"customer"})
PROVIDER = AccessContext(user_id=5, roles={"service_provider"}, service_provider_id=9)

TICKET = SimpleNamespace(user_id=3)


@pytest.mark.parametrize(
    ("ctx", "action", "allowed", "clause"),
    [
        (SUPPORT, TicketAction.view, True, "staff"),
        (OWNER, TicketAction.view, True, "owns-ticket"),
        (STRANGER, TicketAction.view, False, "default-deny"),
        (PROVIDER, TicketAction.view, False, "default-deny"),
        (OWNER, TicketAction.update, False, "default-deny"),
        (SUPPORT, TicketAction.update, True, "staff"),
        (OWNER, TicketAction.reply, True, "owns-ticket"),
        (STRANGER, TicketAction.reply, False, "default-deny"),
        (OWNER, TicketAction.resolve, False, "default-deny"),
        (OWNER, TicketAction.close, True, "owns-ticket"),
        (SUPPORT, TicketAction.close, True, "staff"),
        (OWNER, TicketAction.rate, True, "owns-ticket"),
        (ADMIN, TicketAction.rate, False, "default-deny"),
        (SUPPORT, TicketAction.delete, False, "default-deny"),
        (ADMIN, TicketAction.delete, True, "admin"),
    ],
)
def test_ticket_decision_table(ctx, action, allowed, clause) -> None:
    decision = evaluate_ticket(ctx, action, TICKET)
    assert decision.allowed is allowed
    assert decision.clause == clause


def test_anonymous_context_cannot_open_tickets() -> None:
    assert evaluate_ticket(OWNER, TicketAction.create).clause == "authenticated"
    assert not evaluate_ticket(AccessContext(), TicketAction.create)
    # No ticket: ownership clauses fail closed.
    assert not evaluate_ticket(OWNER, TicketAction.view)


def test_unknown_ticket_action() -> None:
    with pytest.raises(UnknownActionError):
        evaluate_ticket(ADMIN, "escalate")


@pytest.mark.parametrize(
    ("status", "by_staff", "expected"),
    [
        (TicketStatus.open, True, TicketStatus.in_progress),
        (TicketStatus.open, False, TicketStatus.open),
        (TicketStatus.in_progress, False, TicketStatus.waiting_response),
        (TicketStatus.in_progress, True, TicketStatus.in_progress),
        (TicketStatus.waiting_response, True, TicketStatus.in_progress),
        (TicketStatus.waiting_response, False, TicketStatus.open),
        (TicketStatus.resolved, False, TicketStatus.open),
    ],
)
def test_status_after_reply(status, by_staff, expected) -> None:
    assert status_after_reply(status, by_staff=by_staff) == expected


def test_ticket_numbers_are_sequential_per_year() -> None:
    assert next_ticket_number(None, year=2026) == "TKT-2026-000001"
    assert next_ticket_number("TKT-2026-000007", year=2026) == "TKT-2026-000008"


async def _open(client, headers, **overrides) -> dict:
    body = {"subject": "Charged twice", "description": "Card billed two times.", "category": "billing"}
    r = await client.post("/v1/tickets", json={**body, **overrides}, headers=headers)
    assert r.status_code == 201
    return r.json()


@pytest.mark.asyncio
async def test_conversation_moves_ticket_status(client, world, auth_headers) -> None:
    customer = auth_headers(world.customer)
    support = auth_headers(world.support)

    ticket = await _open(client, customer)
    assert ticket["status"] == "open"
    assert ticket["priority"] == "medium"
    assert ticket["ticket_number"].startswith("TKT-")
    url = f"/v1/tickets/{ticket['id']}"

    r = await client.post(f"{url}/replies", json={"message": "Looking into it."}, headers=support)
    assert r.status_code == 201
    r = await client.post(
        f"{url}/replies", json={"message": "Refund pending.", "is_internal": True}, headers=support
    )
    assert r.json()["is_internal"] is True

    r = await client.get(url, headers=support)
    assert r.json()["status"] == "in_progress"
    assert r.json()["assigned_to"] == world.support.id
    assert len(r.json()["replies"]) == 2

    r = await client.get(url, headers=customer)
    assert [reply["message"] for reply in r.json()["replies"]] == ["Looking into it."]

    # Customers cannot post internal notes.
    r = await client.post(
        f"{url}/replies", json={"message": "Any news?", "is_internal": True}, headers=customer
    )
    assert r.json()["is_internal"] is False
    r = await client.get(url, headers=customer)
    assert r.json()["status"] == "waiting_response"


@pytest.mark.asyncio
async def test_resolve_close_and_rate(client, world, auth_headers) -> None:
    customer = auth_headers(world.customer)
    support = auth_headers(world.support)
    ticket = await _open(client, customer)
    url = f"/v1/tickets/{ticket['id']}"

    r = await client.post(f"{url}/rate", json={"rating": 5}, headers=customer)
    assert r.status_code == 422
    assert r.json()["detail"]["message"] == "Only resolved or closed tickets can be rated."

    r = await client.post(f"{url}/resolve", headers=customer)
    assert r.status_code == 403
    r = await client.post(f"{url}/resolve", headers=support)
    assert r.json()["status"] == "resolved"
    assert r.json()["resolved_at"] is not None

    r = await client.post(f"{url}/close", headers=customer)
    assert r.status_code == 200
    assert r.json()["closed_at"] is not None
    r = await client.post(f"{url}/close", headers=customer)
    assert r.status_code == 422
    assert r.json()["detail"]["errors"] == {"ticket": ["Ticket is already closed."]}

    r = await client.post(f"{url}/replies", json={"message": "One more thing"}, headers=customer)
    assert r.status_code == 422
    r = await client.post(f"{url}/resolve", headers=support)
    assert r.status_code == 422

    r = await client.post(f"{url}/rate", json={"rating": 6}, headers=customer)
    assert r.status_code == 422
    r = await client.post(f"{url}/rate", json={"rating": 4, "comment": "Quick fix"}, headers=customer)
    assert r.status_code == 200
    assert (r.json()["rating"], r.json()["rating_comment"]) == (4, "Quick fix")


@pytest.mark.asyncio
async def test_listing_and_staff_updates(client, world, auth_headers) -> None:
    mine = await _open(client, auth_headers(world.customer))
    theirs = await _open(client, auth_headers(world.other_customer), category="technical")

    r = await client.get("/v1/tickets", headers=auth_headers(world.customer))
    assert [t["id"] for t in r.json()] == [mine["id"]]

    r = await client.get(f"/v1/tickets/{theirs['id']}", headers=auth_headers(world.customer))
    assert r.status_code == 403

    r = await client.patch(
        f"/v1/tickets/{mine['id']}", json={"priority": "urgent"}, headers=auth_headers(world.customer)
    )
    assert r.status_code == 403

    r = await client.patch(
        f"/v1/tickets/{mine['id']}",
        json={"assigned_to": world.support.id, "priority": "urgent"},
        headers=auth_headers(world.admin),
    )
    assert r.status_code == 200
    assert (r.json()["status"], r.json()["priority"]) == ("in_progress", "urgent")

    support = auth_headers(world.support)
    r = await client.get("/v1/tickets?assigned_to=me", headers=support)
    assert [t["id"] for t in r.json()] == [mine["id"]]
    r = await client.get("/v1/tickets?assigned_to=unassigned", headers=support)
    assert [t["id"] for t in r.json()] == [theirs["id"]]
    r = await client.get("/v1/tickets?category=technical", headers=support)
    assert [t["id"] for t in r.json()] == [theirs["id"]]


@pytest.mark.asyncio
async def test_only_admin_deletes(client, world, auth_headers) -> None:
    ticket = await _open(client, auth_headers(world.customer))
    url = f"/v1/tickets/{ticket['id']}"

    r = await client.delete(url, headers=auth_headers(world.customer))
    assert r.status_code == 403
    r = await client.delete(url, headers=auth_headers(world.admin))
    assert r.status_code == 204
    r = await client.get(url, headers=auth_headers(world.admin))
    assert r.status_code == 404

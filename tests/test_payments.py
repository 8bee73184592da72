"""
tests.test_payments

Payment recording (`PaymentService`) and the payment history endpoints.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal

import httpx
import pytest

from invoice_hub.db.models import PaymentStatus, PaymentType
from invoice_hub.db.repositories.notifications import NotificationRepo
from invoice_hub.integrations.webhooks import INVOICE_PAID, PAYMENT_COMPLETED, WebhookDispatcher
from invoice_hub.policies.context import InvoiceStatus
from invoice_hub.services.errors import InvoiceStateError
from invoice_hub.services.payment_service import PaymentService, next_payment_reference

NOW = datetime(2026, 4, 2, 15, 30)


def test_payment_references_restart_each_day() -> None:
    assert next_payment_reference(None, day=NOW) == "PAY-20260402-000001"
    assert next_payment_reference("PAY-20260402-000009", day=NOW) == "PAY-20260402-000010"
    assert next_payment_reference("PAY-20260401-000300", day=NOW) == "PAY-20260402-000001"


async def _invoice(factory, status: InvoiceStatus = InvoiceStatus.pending):
    customer = await factory.user(roles=["customer"])
    _, provider = await factory.provider()
    return await factory.invoice(
        customer=customer, provider=provider, due_date=date(2026, 4, 30), status=status
    )


@pytest.mark.asyncio
async def test_partial_payments_settle_when_total_is_covered(session, factory) -> None:
    invoice = await _invoice(factory)
    svc = PaymentService(session=session)

    first = await svc.pay(
        invoice,
        actor="user:1",
        payer_id=invoice.user_id,
        method="card",
        payment_type=PaymentType.partial,
        amount=Decimal("40.00"),
        now=NOW,
    )
    assert first.status == PaymentStatus.completed
    assert first.payment_reference == "PAY-20260402-000001"
    assert invoice.status == InvoiceStatus.pending
    assert await svc.remaining_balance(invoice) == Decimal("60.00")

    with pytest.raises(InvoiceStateError, match="cannot exceed remaining amount") as exc:
        await svc.pay(
            invoice,
            actor="user:1",
            payer_id=invoice.user_id,
            method="card",
            payment_type=PaymentType.partial,
            amount=Decimal("60.01"),
            now=NOW,
        )
    assert exc.value.field == "amount"

    # A full payment covers only what is left.
    second = await svc.pay(invoice, actor="user:1", payer_id=invoice.user_id, method="card", now=NOW)
    assert second.amount == Decimal("60.00")
    assert second.payment_reference == "PAY-20260402-000002"
    assert invoice.status == InvoiceStatus.paid
    assert invoice.paid_date == NOW.date()

    notes = await NotificationRepo(session).list_for_user(invoice.user_id)
    assert {n.type for n in notes} == {"payment_completed", "invoice_paid"}


@pytest.mark.asyncio
async def test_cancelled_and_settled_invoices_are_not_payable(session, factory) -> None:
    svc = PaymentService(session=session)

    cancelled = await _invoice(factory, InvoiceStatus.cancelled)
    with pytest.raises(InvoiceStateError, match="Cannot pay a cancelled invoice."):
        await svc.pay(cancelled, actor="user:1", payer_id=cancelled.user_id, method="card")

    paid = await _invoice(factory, InvoiceStatus.paid)
    with pytest.raises(InvoiceStateError, match="already fully paid"):
        await svc.pay(paid, actor="user:1", payer_id=paid.user_id, method="card")

    pending = await _invoice(factory)
    with pytest.raises(InvoiceStateError):
        await svc.pay(
            pending,
            actor="user:1",
            payer_id=pending.user_id,
            method="card",
            payment_type=PaymentType.partial,
        )


@pytest.mark.asyncio
async def test_payment_webhooks(session, factory) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    customer = await factory.user(roles=["customer"])
    _, provider = await factory.provider(
        settings={
            "webhooks": [
                {
                    "url": "https://hooks.test/pay",
                    "events": [PAYMENT_COMPLETED, INVOICE_PAID],
                    "active": True,
                }
            ]
        }
    )
    invoice = await factory.invoice(customer=customer, provider=provider, due_date=date(2026, 4, 30))
    await session.commit()

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        await PaymentService(session=session, webhooks=WebhookDispatcher(http=http)).pay(
            invoice, actor="user:1", payer_id=customer.id, method="card", transaction_id="ch_123"
        )

    assert [r.headers["X-Webhook-Event"] for r in seen] == [PAYMENT_COMPLETED, INVOICE_PAID]
    body = json.loads(seen[0].content)
    assert body["payment"]["transaction_id"] == "ch_123"
    assert body["invoice"]["status"] == "paid"


@pytest.mark.asyncio
async def test_partial_payment_over_the_api(client, world, auth_headers) -> None:
    headers = auth_headers(world.customer)
    url = f"/v1/invoices/{world.pending.id}/pay"

    r = await client.post(url, json={"payment_type": "partial", "amount": "150.00"}, headers=headers)
    assert r.status_code == 422
    assert r.json()["detail"]["errors"] == {"amount": ["Payment amount cannot exceed remaining amount."]}

    r = await client.post(url, json={"payment_type": "partial", "amount": "25.00"}, headers=headers)
    assert r.status_code == 201
    assert r.json()["invoice_status"] == "pending"

    r = await client.post(url, json={"payment_type": "partial", "amount": "75.00"}, headers=headers)
    assert r.status_code == 201
    assert r.json()["invoice_status"] == "paid"


@pytest.mark.asyncio
async def test_payment_history_is_scoped(client, world, auth_headers) -> None:
    r = await client.post(f"/v1/invoices/{world.pending.id}/pay", headers=auth_headers(world.customer))
    payment_id = r.json()["id"]
    r = await client.post(
        f"/v1/invoices/{world.foreign.id}/pay", headers=auth_headers(world.other_customer)
    )
    foreign_id = r.json()["id"]

    r = await client.get("/v1/payments", headers=auth_headers(world.customer))
    assert [p["id"] for p in r.json()] == [payment_id]

    r = await client.get("/v1/payments", headers=auth_headers(world.provider_owner))
    assert [p["id"] for p in r.json()] == [payment_id]

    r = await client.get("/v1/payments", headers=auth_headers(world.support))
    assert {p["id"] for p in r.json()} == {payment_id, foreign_id}

    r = await client.get(f"/v1/payments/{foreign_id}", headers=auth_headers(world.customer))
    assert r.status_code == 403

    r = await client.get("/v1/payments/999999", headers=auth_headers(world.admin))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_receipt_download(client, world, auth_headers) -> None:
    r = await client.post(f"/v1/invoices/{world.pending.id}/pay", headers=auth_headers(world.customer))
    payment = r.json()

    r = await client.get(f"/v1/payments/{payment['id']}/receipt", headers=auth_headers(world.customer))
    assert r.status_code == 200
    assert r.headers["content-disposition"] == (
        f'attachment; filename="receipt-{payment["payment_reference"]}.json"'
    )
    receipt = r.json()
    assert receipt["payer"]["email"] == world.customer.email
    assert receipt["service_provider"] == world.provider.company_name

    r = await client.get(
        f"/v1/payments/{payment['id']}/receipt", headers=auth_headers(world.other_customer)
    )
    assert r.status_code == 403

"""
invoice_hub.integrations.webhooks

Outbound invoice and payment event webhooks to service providers.

Responsibilities:
- Select the provider's active webhooks subscribed to an event.
- POST a JSON payload, signed with HMAC-SHA256 when the webhook has a secret.
- Log delivery failures; never propagate them to the caller.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import UTC, datetime
from typing import Any

import httpx

from invoice_hub.db.models import Invoice, Payment, ServiceProvider
from invoice_hub.observability.logging import get_logger

log = get_logger(__name__)

INVOICE_PAID = "invoice.paid"
INVOICE_OVERDUE = "invoice.overdue"
INVOICE_CANCELLED = "invoice.cancelled"
PAYMENT_COMPLETED = "payment.completed"


def sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def invoice_payload(event: str, invoice: Invoice, *, now: datetime | None = None) -> dict[str, Any]:
    customer = invoice.user
    return {
        "event": event,
        "invoice": {
            "id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "title": invoice.title,
            "amount": str(invoice.amount),
            "tax_amount": str(invoice.tax_amount),
            "total_amount": str(invoice.total_amount),
            "status": str(invoice.status),
            "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
            "issue_date": invoice.issue_date.isoformat() if invoice.issue_date else None,
            "customer": {
                "id": customer.id,
                "name": customer.name,
                "email": customer.email,
            }
            if customer is not None
            else None,
        },
        "timestamp": (now or datetime.now(tz=UTC)).isoformat(),
    }


def payment_payload(event: str, payment: Payment, *, now: datetime | None = None) -> dict[str, Any]:
    invoice = payment.invoice
    return {
        "event": event,
        "payment": {
            "id": payment.id,
            "payment_reference": payment.payment_reference,
            "amount": str(payment.amount),
            "payment_type": str(payment.payment_type),
            "method": payment.method,
            "status": str(payment.status),
            "transaction_id": payment.gateway_transaction_id,
            "processed_at": payment.processed_at.isoformat() if payment.processed_at else None,
        },
        "invoice": {
            "id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "total_amount": str(invoice.total_amount),
            "status": str(invoice.status),
        },
        "timestamp": (now or datetime.now(tz=UTC)).isoformat(),
    }


class WebhookDispatcher:
    def __init__(self, *, http: httpx.AsyncClient, timeout_s: float = 10.0) -> None:
        self._http = http
        self._timeout_s = timeout_s

    async def dispatch_invoice_event(self, event: str, invoice: Invoice) -> int:
        """Returns the number of webhooks that accepted the delivery."""
        return await self._deliver(invoice.service_provider, event, invoice_payload(event, invoice))

    async def dispatch_payment_event(self, event: str, payment: Payment) -> int:
        return await self._deliver(
            payment.invoice.service_provider, event, payment_payload(event, payment)
        )

    async def _deliver(
        self, provider: ServiceProvider | None, event: str, payload: dict[str, Any]
    ) -> int:
        if provider is None:
            return 0

        hooks = (provider.settings or {}).get("webhooks", [])
        delivered = 0
        for hook in hooks:
            if not isinstance(hook, dict) or not hook.get("active", False):
                continue
            if event not in hook.get("events", []):
                continue
            if await self._send(hook, event, payload):
                delivered += 1
        return delivered

    async def _send(self, hook: dict[str, Any], event: str, payload: dict[str, Any]) -> bool:
        url = hook.get("url")
        body = json.dumps(payload, separators=(",", ":")).encode()
        headers = {"Content-Type": "application/json", "X-Webhook-Event": event}
        secret = hook.get("secret")
        if secret:
            headers["X-Webhook-Signature"] = sign(body, str(secret))

        try:
            r = await self._http.post(str(url), content=body, headers=headers, timeout=self._timeout_s)
        except httpx.HTTPError as e:
            log.error("webhook_error", url=url, webhook_event=event, error=str(e))
            return False

        if not r.is_success:
            log.warning(
                "webhook_failed",
                url=url,
                webhook_event=event,
                status_code=r.status_code,
                response=r.text[:500],
            )
            return False
        return True


# --- Module Notes -----------------------------------------------------------
# The signature covers the exact bytes sent, so receivers must verify before re-encoding.

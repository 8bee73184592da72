"""
invoice_hub.services.reminders

The commands behind the scheduled reminder jobs.

Responsibilities:
- `send_payment_reminders`: notify customers of pending invoices due in N days, once per
  invoice and offset, honoring their reminder preferences.
- `send_overdue_reminders`: flip pending invoices past their due date to overdue, notify
  customers who opted in, and tell the provider's webhooks.

Each command commits its own transaction; it is safe to re-run within a day.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.models import Invoice
from invoice_hub.db.repositories.audit import AuditRepo
from invoice_hub.db.repositories.invoices import InvoiceRepo
from invoice_hub.db.repositories.notifications import NotificationRepo
from invoice_hub.integrations.webhooks import INVOICE_OVERDUE, WebhookDispatcher
from invoice_hub.observability.logging import get_logger
from invoice_hub.policies.context import InvoiceStatus

log = get_logger(__name__)

SCHEDULER_ACTOR = "scheduler"

PAYMENT_REMINDER = "invoice_payment_reminder"
OVERDUE_REMINDER = "invoice_overdue"

# Preference key suffix per offset; offsets without their own key share the 1-day one.
_REMINDER_TYPES: dict[int, str] = {7: "7_days", 3: "3_days", 1: "1_day"}


def reminder_type_for(days: int) -> str:
    return _REMINDER_TYPES.get(days, "1_day")


def reminder_sent_key(days: int) -> str:
    return f"reminder_sent_{days}_days"


@dataclass(slots=True)
class ReminderRun:
    command: str
    sent: list[str] = field(default_factory=list)
    skipped: int = 0

    @property
    def sent_count(self) -> int:
        return len(self.sent)

    def as_dict(self) -> dict[str, Any]:
        return {"command": self.command, "sent": self.sent_count, "skipped": self.skipped}


def _utcnow() -> datetime:
    return datetime.utcnow()


def _due_text(days: int) -> str:
    return "tomorrow" if days == 1 else f"in {days} days"


async def send_payment_reminders(
    session: AsyncSession,
    *,
    days: int,
    now: datetime | None = None,
) -> ReminderRun:
    if days < 0:
        raise ValueError("days must be >= 0")

    now = now or _utcnow()
    target = now.date() + timedelta(days=days)
    reminder_type = reminder_type_for(days)
    sent_key = reminder_sent_key(days)

    invoices = InvoiceRepo(session)
    notifications = NotificationRepo(session)
    audit = AuditRepo(session)
    run = ReminderRun(command="send-payment-reminders")

    due = await invoices.pending_due_on(target)
    log.info("payment_reminders_started", days=days, due_on=target.isoformat(), candidates=len(due))

    for invoice in due:
        if not invoice.user.reminder_enabled(reminder_type):
            log.info(
                "payment_reminder_skipped",
                invoice_number=invoice.invoice_number,
                reason="preference_disabled",
                reminder_type=reminder_type,
            )
            run.skipped += 1
            continue

        meta = dict(invoice.meta or {})
        if meta.get(sent_key):
            log.info(
                "payment_reminder_skipped",
                invoice_number=invoice.invoice_number,
                reason="already_sent",
            )
            run.skipped += 1
            continue

        await notifications.add(
            user_id=invoice.user_id,
            type=PAYMENT_REMINDER,
            data={
                **_invoice_summary(invoice),
                "days_until_due": days,
                "message": f"Invoice {invoice.invoice_number} is due {_due_text(days)}.",
            },
        )
        meta[sent_key] = now.isoformat()
        invoice.meta = meta
        await audit.add(
            invoice_id=invoice.id,
            actor=SCHEDULER_ACTOR,
            event_type="PAYMENT_REMINDER_SENT",
            details={"days": days},
        )
        run.sent.append(invoice.invoice_number)
        log.info(
            "payment_reminder_sent",
            invoice_number=invoice.invoice_number,
            days=days,
            user_id=invoice.user_id,
        )

    await session.commit()
    log.info("payment_reminders_finished", days=days, **run.as_dict())
    return run


async def send_overdue_reminders(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    webhooks: WebhookDispatcher | None = None,
) -> ReminderRun:
    now = now or _utcnow()
    today = now.date()

    invoices = InvoiceRepo(session)
    notifications = NotificationRepo(session)
    audit = AuditRepo(session)
    run = ReminderRun(command="send-overdue-reminders")

    overdue = await invoices.pending_due_before(today)
    log.info("overdue_reminders_started", candidates=len(overdue))

    for invoice in overdue:
        # The status moves to overdue even when the customer opted out of the reminder.
        invoice.status = InvoiceStatus.overdue
        await audit.add(
            invoice_id=invoice.id,
            actor=SCHEDULER_ACTOR,
            event_type="INVOICE_MARKED_OVERDUE",
            details={"due_date": invoice.due_date.isoformat()},
        )

        if invoice.user.reminder_enabled("overdue"):
            days_overdue = (today - invoice.due_date).days
            await notifications.add(
                user_id=invoice.user_id,
                type=OVERDUE_REMINDER,
                data={
                    **_invoice_summary(invoice),
                    "days_overdue": days_overdue,
                    "message": f"URGENT: Invoice {invoice.invoice_number} is {days_overdue} days overdue",
                },
            )
            run.sent.append(invoice.invoice_number)
            log.info("overdue_reminder_sent", invoice_number=invoice.invoice_number)
        else:
            run.skipped += 1
            log.info(
                "overdue_reminder_skipped",
                invoice_number=invoice.invoice_number,
                reason="preference_disabled",
            )

        if webhooks is not None and invoice.service_provider is not None:
            await webhooks.dispatch_invoice_event(INVOICE_OVERDUE, invoice)

    await session.commit()
    log.info("overdue_reminders_finished", **run.as_dict())
    return run


def _invoice_summary(invoice: Invoice) -> dict[str, Any]:
    return {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "title": invoice.title,
        "amount": str(invoice.total_amount),
        "due_date": invoice.due_date.isoformat(),
    }


# --- Module Notes -----------------------------------------------------------
# Webhooks go out before the commit; a crash between the two re-sends them on the next run,
# since the invoices are still pending.

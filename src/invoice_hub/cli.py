"""
invoice_hub.cli

Operator commands (click).

Responsibilities:
- Run the reminder commands by hand, with the same code the scheduled jobs use.
- Archive old paid invoices and bootstrap tables for local development.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click
import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_hub.db.init_db import init_db
from invoice_hub.db.session import create_engine, create_sessionmaker
from invoice_hub.integrations.webhooks import WebhookDispatcher
from invoice_hub.observability.logging import configure_logging
from invoice_hub.services.invoice_service import InvoiceService
from invoice_hub.services.reminders import send_overdue_reminders, send_payment_reminders
from invoice_hub.settings import get_settings

T = TypeVar("T")

CLI_ACTOR = "cli"


def _run(fn: Callable[[AsyncSession, httpx.AsyncClient], Awaitable[T]]) -> T:
    settings = get_settings()

    async def runner() -> T:
        engine = create_engine(settings)
        try:
            async with httpx.AsyncClient() as http, create_sessionmaker(engine)() as session:
                return await fn(session, http)
        finally:
            await engine.dispose()

    return asyncio.run(runner())


@click.group()
def main() -> None:
    """Invoice Hub operator commands."""
    settings = get_settings()
    configure_logging(service_name=settings.service_name, level=settings.log_level, json_logs=False)


@main.command("init-db")
@click.option("--reset", is_flag=True, help="Drop all tables before creating them.")
def init_db_command(reset: bool) -> None:
    """Create tables (dev/test only; production uses Alembic)."""
    settings = get_settings()
    if settings.env == "prod":
        raise click.ClickException("init-db is disabled in prod; run Alembic migrations")

    async def runner() -> list[str]:
        engine = create_engine(settings)
        try:
            return await init_db(engine, reset=reset)
        finally:
            await engine.dispose()

    tables = asyncio.run(runner())
    click.echo(f"Tables created: {', '.join(tables)}")


@main.group()
def invoices() -> None:
    """Invoice maintenance commands."""


@invoices.command("send-payment-reminders")
@click.option(
    "--days",
    default=3,
    show_default=True,
    type=click.IntRange(min=0),
    help="Number of days before due date to send reminder",
)
def send_payment_reminders_command(days: int) -> None:
    """Send payment reminders before invoice due dates."""
    click.echo(f"Checking for invoices due in {days} days...")
    run = _run(lambda session, _http: send_payment_reminders(session, days=days))
    if run.sent_count == 0 and run.skipped == 0:
        click.echo(f"No invoices found due in {days} days.")
        return
    for number in run.sent:
        click.echo(f"Sent {days}-day reminder for invoice #{number}")
    click.echo(f"Successfully sent {run.sent_count} payment reminders ({run.skipped} skipped).")


@invoices.command("send-overdue-reminders")
def send_overdue_reminders_command() -> None:
    """Send reminders for overdue invoices."""
    settings = get_settings()
    click.echo("Checking for overdue invoices...")
    run = _run(
        lambda session, http: send_overdue_reminders(
            session,
            webhooks=WebhookDispatcher(http=http, timeout_s=settings.webhook_timeout_s),
        )
    )
    if run.sent_count == 0 and run.skipped == 0:
        click.echo("No overdue invoices found.")
        return
    for number in run.sent:
        click.echo(f"Sent overdue reminder for invoice #{number}")
    click.echo(f"Successfully sent {run.sent_count} overdue invoice reminders.")


@invoices.command("archive")
def archive_command() -> None:
    """Stamp old paid invoices as archived."""
    settings = get_settings()
    count = _run(
        lambda session, _http: InvoiceService(
            session=session, archive_after_months=settings.archive_after_months
        ).archive(actor=CLI_ACTOR)
    )
    click.echo(f"Archived {count} invoices.")


if __name__ == "__main__":
    main()

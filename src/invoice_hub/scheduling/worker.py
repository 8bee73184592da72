"""
invoice_hub.scheduling.worker

ARQ worker settings for the reminder jobs.

Responsibilities:
- Open shared resources (DB engine, HTTP client for webhooks) once per worker process.
- Map command identifiers from the job table to coroutines.
- Expose `WorkerSettings` with the cron table built from `scheduling.jobs`.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from arq.connections import RedisSettings

from invoice_hub.db.session import create_engine, create_sessionmaker
from invoice_hub.integrations.webhooks import WebhookDispatcher
from invoice_hub.observability.logging import configure_logging, get_logger
from invoice_hub.scheduling.jobs import (
    OVERDUE_REMINDER_COMMAND,
    PAYMENT_REMINDER_COMMAND,
    build_cron_jobs,
    reminder_jobs,
)
from invoice_hub.services.reminders import send_overdue_reminders, send_payment_reminders
from invoice_hub.settings import get_settings

log = get_logger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    settings = get_settings()
    configure_logging(service_name=f"{settings.service_name}-worker", level=settings.log_level)

    engine = create_engine(settings)
    http = httpx.AsyncClient()
    ctx["settings"] = settings
    ctx["engine"] = engine
    ctx["sessionmaker"] = create_sessionmaker(engine)
    ctx["http"] = http
    ctx["webhooks"] = WebhookDispatcher(http=http, timeout_s=settings.webhook_timeout_s)
    log.info("worker_startup", jobs=[j.name for j in reminder_jobs()])


async def shutdown(ctx: dict[str, Any]) -> None:
    http = ctx.get("http")
    if http is not None:
        await http.aclose()
    engine = ctx.get("engine")
    if engine is not None:
        await engine.dispose()
    log.info("worker_shutdown")


async def send_payment_reminders_job(
    ctx: dict[str, Any], *, days: int, job_name: str | None = None
) -> dict[str, Any]:
    structlog.contextvars.bind_contextvars(job=job_name, command=PAYMENT_REMINDER_COMMAND)
    try:
        async with ctx["sessionmaker"]() as session:
            run = await send_payment_reminders(session, days=days)
        return run.as_dict()
    finally:
        structlog.contextvars.clear_contextvars()


async def send_overdue_reminders_job(
    ctx: dict[str, Any], *, job_name: str | None = None
) -> dict[str, Any]:
    structlog.contextvars.bind_contextvars(job=job_name, command=OVERDUE_REMINDER_COMMAND)
    try:
        async with ctx["sessionmaker"]() as session:
            run = await send_overdue_reminders(session, webhooks=ctx.get("webhooks"))
        return run.as_dict()
    finally:
        structlog.contextvars.clear_contextvars()


COMMANDS = {
    PAYMENT_REMINDER_COMMAND: send_payment_reminders_job,
    OVERDUE_REMINDER_COMMAND: send_overdue_reminders_job,
}


class WorkerSettings:
    """ARQ worker settings; the cron table is evaluated once, at import."""

    functions = [send_payment_reminders_job, send_overdue_reminders_job]
    cron_jobs = build_cron_jobs(
        reminder_jobs(),
        commands=COMMANDS,
        timeout_s=get_settings().reminder_job_timeout_s,
    )
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    on_startup = startup
    on_shutdown = shutdown


# --- Module Notes -----------------------------------------------------------
# The CLI (`invoice_hub.cli`) runs the same service functions by hand, outside ARQ.

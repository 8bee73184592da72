"""
invoice_hub.scheduling.jobs

Reminder job table and its registration with the ARQ cron executor.

Responsibilities:
- Declare the daily reminder jobs as data (name, command, params, time of day).
- Validate that job names are unique; ARQ derives each cron run's job id from the name.
- Translate the table into `arq.cron.CronJob` entries; timing and per-tick deduplication
  are ARQ's job.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import time
from typing import Any

from arq.cron import CronJob, cron

PAYMENT_REMINDER_COMMAND = "invoices:send-payment-reminders"
OVERDUE_REMINDER_COMMAND = "invoices:send-overdue-reminders"

JobCommand = Callable[..., Awaitable[Any]]

# Every job runs daily; a run must time out before the next tick.
_DAY_S = 24 * 60 * 60


class DuplicateJobNameError(ValueError):
    pass


class UnknownCommandError(LookupError):
    pass


@dataclass(frozen=True, slots=True)
class ScheduledJob:
    name: str
    command: str
    params: Mapping[str, Any] = field(default_factory=dict)
    at: time = time(0, 0)
    without_overlapping: bool = True

    @property
    def command_line(self) -> str:
        args = " ".join(f"--{k}={v}" for k, v in self.params.items())
        return f"{self.command} {args}".strip()


REMINDER_SCHEDULE: tuple[ScheduledJob, ...] = (
    ScheduledJob("send-7-day-payment-reminders", PAYMENT_REMINDER_COMMAND, {"days": 7}, time(9, 0)),
    ScheduledJob("send-3-day-payment-reminders", PAYMENT_REMINDER_COMMAND, {"days": 3}, time(9, 0)),
    ScheduledJob("send-1-day-payment-reminders", PAYMENT_REMINDER_COMMAND, {"days": 1}, time(9, 0)),
    ScheduledJob("send-overdue-reminders", OVERDUE_REMINDER_COMMAND, {}, time(10, 0)),
)


def validate_jobs(jobs: Iterable[ScheduledJob]) -> tuple[ScheduledJob, ...]:
    seen: set[str] = set()
    out: list[ScheduledJob] = []
    for job in jobs:
        if job.name in seen:
            raise DuplicateJobNameError(f"duplicate scheduled job name: {job.name}")
        seen.add(job.name)
        out.append(job)
    return tuple(out)


def reminder_jobs() -> tuple[ScheduledJob, ...]:
    return validate_jobs(REMINDER_SCHEDULE)


def build_cron_jobs(
    jobs: Sequence[ScheduledJob],
    *,
    commands: Mapping[str, JobCommand],
    timeout_s: int | None = None,
) -> list[CronJob]:
    """
    One daily ARQ cron entry per job.

    With `unique=True` ARQ keys each run by job name and scheduled time, so when several
    workers share a Redis only one of them enqueues a given tick. It does not look at a
    previous tick that is still running. Runs of one job never overlap because `timeout_s`
    (the worker passes `reminder_job_timeout_s`, 600s by default; None means ARQ's
    `job_timeout`) cancels a run long before the next daily tick, so it must stay under a
    day. Different jobs may run at the same time.
    """

    if timeout_s is not None and timeout_s >= _DAY_S:
        raise ValueError(f"timeout_s must be shorter than a day, got {timeout_s}")

    cron_jobs: list[CronJob] = []
    for job in validate_jobs(jobs):
        try:
            command = commands[job.command]
        except KeyError as e:
            raise UnknownCommandError(f"no command registered for {job.command!r}") from e

        cron_jobs.append(
            cron(
                _bind_params(command, job),
                name=job.name,
                hour=job.at.hour,
                minute=job.at.minute,
                second=0,
                unique=job.without_overlapping,
                timeout=timeout_s,
            )
        )
    return cron_jobs


def _bind_params(command: JobCommand, job: ScheduledJob) -> Callable[[dict[str, Any]], Awaitable[Any]]:
    params = dict(job.params)

    async def _run(ctx: dict[str, Any]) -> Any:
        return await command(ctx, job_name=job.name, **params)

    _run.__qualname__ = job.name
    return _run


# --- Module Notes -----------------------------------------------------------
# Adding a reminder offset is one new row in REMINDER_SCHEDULE; the command registry in
# `scheduling.worker` maps command identifiers to coroutines.

"""
invoice_hub.scheduling

Recurring job registration.

Responsibilities:
- The static reminder job table (`jobs`).
- The ARQ worker that runs it (`worker`); start with
  `arq invoice_hub.scheduling.worker.WorkerSettings`.
"""

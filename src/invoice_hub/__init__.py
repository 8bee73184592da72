"""
invoice_hub

Invoice Hub: provider invoices, customer payments and support tickets behind one
policy-checked API, plus the daily reminder worker and the `invoice-hub` operator CLI.

Subpackages:
- `policies`: pure allow/deny decision tables for invoices and tickets.
- `services`: invoice lifecycle, payments, tickets and the reminder commands.
- `scheduling`: the reminder job table and its ARQ cron worker.
- `api`: FastAPI routers; `db`: models and repositories.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"

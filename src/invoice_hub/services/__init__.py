"""
invoice_hub.services

Service-layer package.

Responsibilities:
- Own transaction boundaries and business rules for invoices and reminders.
- Coordinate repositories, notifications, webhooks and the audit trail.
"""

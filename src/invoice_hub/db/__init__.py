"""
invoice_hub.db

Billing data store (SQLAlchemy async).

Users and their provider records, invoices (soft-deleted and archived, never edited once
paid), payments, support tickets with replies, in-app notifications, and the append-only
audit trail. Repositories own the queries; services own the transactions.
"""

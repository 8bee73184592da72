"""
invoice_hub.policies

Authorization policies.

Responsibilities:
- Pure allow/deny evaluators over an explicit `AccessContext`.
"""

from invoice_hub.policies.context import AccessContext, InvoiceFacts, InvoiceStatus, Role
from invoice_hub.policies.invoice import Decision, InvoiceAction, UnknownActionError, evaluate

__all__ = [
    "AccessContext",
    "Decision",
    "InvoiceAction",
    "InvoiceFacts",
    "InvoiceStatus",
    "Role",
    "UnknownActionError",
    "evaluate",
]

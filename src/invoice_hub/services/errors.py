"""
invoice_hub.services.errors

Domain exceptions raised by the service layer.
"""

from __future__ import annotations


class StateError(Exception):
    """The record's current state forbids the requested change."""

    def __init__(self, message: str, *, field: str = "status") -> None:
        super().__init__(message)
        self.field = field


class InvoiceStateError(StateError):
    """Invoice or payment rule violation (e.g. editing a paid invoice, overpaying)."""


class TicketStateError(StateError):
    """Support ticket rule violation (e.g. replying to a closed ticket)."""


# --- Module Notes -----------------------------------------------------------
# Routers map StateError to 422 with the message under `errors.<field>`.

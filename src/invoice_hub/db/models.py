"""
invoice_hub.db.models

Persistence schema for the billing service.

Responsibilities:
- Define ORM models:
  - User: identity, role/permission tags, reminder preferences
  - ServiceProvider: provider record linked to a user, webhook settings
  - Invoice: amounts, dates, status, free-form metadata, soft delete + archive stamps
  - Payment: money received against an invoice (full or partial)
  - SupportTicket, TicketReply: customer support conversations
  - Notification: in-app (database channel) notifications
  - AuditEvent: append-only audit trail
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_hub.db.base import Base
from invoice_hub.policies.context import InvoiceStatus


def _utcnow() -> datetime:
    return datetime.utcnow()


class ProviderStatus(enum.StrEnum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


class PaymentStatus(enum.StrEnum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class PaymentType(enum.StrEnum):
    full = "full"
    partial = "partial"


class TicketStatus(enum.StrEnum):
    open = "open"
    in_progress = "in_progress"
    waiting_response = "waiting_response"
    resolved = "resolved"
    closed = "closed"


class TicketPriority(enum.StrEnum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class TicketCategory(enum.StrEnum):
    billing = "billing"
    technical = "technical"
    general = "general"
    complaint = "complaint"
    suggestion = "suggestion"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    preferences: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    service_provider: Mapped[ServiceProvider | None] = relationship(
        back_populates="user", uselist=False, lazy="selectin"
    )

    def email_reminders_enabled(self) -> bool:
        return bool((self.preferences or {}).get("email_reminders_enabled", True))

    def reminder_enabled(self, reminder_type: str) -> bool:
        """`reminder_type` is one of `7_days`, `3_days`, `1_day`, `overdue`; unset means enabled."""
        if not self.email_reminders_enabled():
            return False
        return bool((self.preferences or {}).get(f"reminder_{reminder_type}", True))


class ServiceProvider(Base):
    __tablename__ = "service_providers"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ProviderStatus] = mapped_column(
        Enum(ProviderStatus), nullable=False, default=ProviderStatus.active
    )
    # {"webhooks": [{"url": ..., "secret": ..., "events": [...], "active": true}]}
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    user: Mapped[User] = relationship(back_populates="service_provider")


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    service_provider_id: Mapped[int] = mapped_column(
        ForeignKey("service_providers.id"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.pending
    )
    due_date: Mapped[date] = mapped_column(nullable=False, index=True)
    issue_date: Mapped[date] = mapped_column(nullable=False)
    paid_date: Mapped[date | None] = mapped_column(nullable=True)

    # Column is named `metadata`; that attribute name is reserved on declarative classes.
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    user: Mapped[User] = relationship(lazy="selectin")
    service_provider: Mapped[ServiceProvider] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_invoices_user_status", "user_id", "status"),
        Index("ix_invoices_provider_status", "service_provider_id", "status"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    payment_reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    # The payer; usually, but not necessarily, the invoice's customer.
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), nullable=False, default=PaymentStatus.pending
    )
    payment_type: Mapped[PaymentType] = mapped_column(
        Enum(PaymentType), nullable=False, default=PaymentType.full
    )
    method: Mapped[str] = mapped_column(String(64), nullable=False)
    gateway: Mapped[str] = mapped_column(String(64), nullable=False, default="manual")
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    invoice: Mapped[Invoice] = relationship(lazy="selectin")
    user: Mapped[User] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_payments_user_status", "user_id", "status"),
        Index("ix_payments_invoice_status", "invoice_id", "status"),
    )


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    assigned_to: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[TicketPriority] = mapped_column(
        Enum(TicketPriority), nullable=False, default=TicketPriority.medium
    )
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus), nullable=False, default=TicketStatus.open
    )
    category: Mapped[TicketCategory] = mapped_column(Enum(TicketCategory), nullable=False)

    rating: Mapped[int | None] = mapped_column(nullable=True)
    rating_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)

    replies: Mapped[list[TicketReply]] = relationship(
        back_populates="ticket", lazy="selectin", order_by="TicketReply.id"
    )

    __table_args__ = (
        Index("ix_support_tickets_user_status", "user_id", "status"),
        Index("ix_support_tickets_assignee_status", "assigned_to", "status"),
    )


class TicketReply(Base):
    __tablename__ = "ticket_replies"

    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("support_tickets.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # Staff-only notes; never shown to the ticket's customer.
    is_internal: Mapped[bool] = mapped_column(nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    ticket: Mapped[SupportTicket] = relationship(back_populates="replies")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_id: Mapped[int | None] = mapped_column(nullable=True, index=True)

    actor: Mapped[str] = mapped_column(String(256), nullable=False)  # user id / scheduler / system
    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, index=True)


# --- Module Notes -----------------------------------------------------------
# JSON columns must be reassigned, not mutated in place, for changes to be flushed.

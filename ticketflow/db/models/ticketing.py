"""Ticket and ticket tracking models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.db.base import Base
from ticketflow.db.enums import TicketStatus
from ticketflow.db.models.companies import _now_utc
from ticketflow.db.types import enum_type

if TYPE_CHECKING:
    from ticketflow.db.models import Channel, Contact, Queue, User


class Ticket(Base):
    """
    A conversation thread between a contact and the company on a channel.

    At most one ticket per (company, contact, channel) is pending or open at
    a time; find-or-create enforces this, not a constraint. Tickets are never
    deleted: closed tickets remain as history.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("idx_tickets_contact_channel_status", "company_id", "contact_id", "channel_id", "status"),
        Index("idx_tickets_company_status", "company_id", "status"),
        Index("idx_tickets_company_updated", "company_id", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    channel_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    queue_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("queues.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[TicketStatus] = mapped_column(
        enum_type(TicketStatus, name="ticket_status"),
        default=TicketStatus.PENDING,
        nullable=False,
    )
    unread_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_group: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Chatbot / integration state, cleared when the ticket closes
    chatbot: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    use_integration: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    integration_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    integration_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount_used_bot_queues: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    imported_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )

    # Relationships
    contact: Mapped["Contact"] = relationship()
    channel: Mapped["Channel"] = relationship()
    queue: Mapped[Optional["Queue"]] = relationship()
    user: Mapped[Optional["User"]] = relationship()
    trackings: Mapped[list["TicketTracking"]] = relationship(
        back_populates="ticket",
        order_by="TicketTracking.created_at",
    )


class TicketTracking(Base):
    """
    One occupancy interval of a ticket (queue wait, agent handling, rating).

    Exactly one row per ticket has ``finished_at IS NULL`` while the ticket
    is being worked; it is closed when the ticket closes.
    """

    __tablename__ = "ticket_trackings"
    __table_args__ = (
        Index("idx_ticket_trackings_ticket_open", "ticket_id", "finished_at"),
        Index("idx_ticket_trackings_company", "company_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    channel_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("channels.id", ondelete="SET NULL"), nullable=True
    )
    queue_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("queues.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    queued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rating_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )

    # Relationships
    ticket: Mapped["Ticket"] = relationship(back_populates="trackings")

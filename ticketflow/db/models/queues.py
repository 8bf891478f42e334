"""Queue routing models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.db.base import Base
from ticketflow.db.models.companies import _now_utc

if TYPE_CHECKING:
    from ticketflow.db.models import User


class Queue(Base):
    """
    Department queue tickets are routed to.

    ``new_ticket_on_transfer``: a transfer into this queue closes the
    transferred ticket and opens a fresh pending one for the contact.
    """

    __tablename__ = "queues"
    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_queue_name"),
        Index("idx_queues_company", "company_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_ticket_on_transfer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    integration_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    # Relationships
    members: Mapped[list["QueueMember"]] = relationship(
        back_populates="queue",
        cascade="all, delete-orphan",
    )


class QueueMember(Base):
    """Queue membership: which agents may work a queue's tickets."""

    __tablename__ = "queue_members"
    __table_args__ = (
        UniqueConstraint("queue_id", "user_id", name="uq_queue_member"),
        Index("idx_queue_members_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    queue_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("queues.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    # Relationships
    queue: Mapped["Queue"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="queue_memberships")

"""Contact and messaging channel models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.db.base import Base
from ticketflow.db.models.companies import _now_utc


class Contact(Base):
    """A person (or group) the company talks to."""

    __tablename__ = "contacts"
    __table_args__ = (Index("idx_contacts_company_number", "company_id", "number"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    number: Mapped[str] = mapped_column(String(100), nullable=False)
    is_group: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    disable_bot: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    @property
    def address(self) -> str:
        """Transport address used by the messaging gateway."""
        suffix = "g.us" if self.is_group else "s.whatsapp.net"
        return f"{self.number}@{suffix}"


class Channel(Base):
    """A connected messaging channel (one phone number / account)."""

    __tablename__ = "channels"
    __table_args__ = (Index("idx_channels_company", "company_id"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="CONNECTED", nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completion_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

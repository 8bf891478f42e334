"""Tenant, user and per-company setting models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.db.base import Base
from ticketflow.db.enums import Profile
from ticketflow.db.types import enum_type

if TYPE_CHECKING:
    from ticketflow.db.models import Channel, QueueMember


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Company(Base):
    """A tenant. Every other row is scoped to exactly one company."""

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)


class User(Base):
    """
    An agent or administrator.

    ``channel_id`` binds the agent to a single channel: such an agent may
    only receive tickets on that channel.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_users_company_email"),
        Index("idx_users_company_profile", "company_id", "profile"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    profile: Mapped[Profile] = mapped_column(
        enum_type(Profile, name="user_profile"), default=Profile.USER, nullable=False
    )
    channel_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("channels.id", ondelete="SET NULL"), nullable=True
    )
    number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notify_new_ticket: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    # Relationships
    channel: Mapped[Optional["Channel"]] = relationship(foreign_keys=[channel_id])
    queue_memberships: Mapped[list["QueueMember"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.profile == Profile.ADMIN


class Setting(Base):
    """Per-company key/value setting (feature flags, kanban config)."""

    __tablename__ = "settings"
    __table_args__ = (UniqueConstraint("company_id", "key", name="uq_settings_company_key"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )

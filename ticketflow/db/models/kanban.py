"""Kanban board, lane, card, checklist and metric models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.db.base import Base
from ticketflow.db.enums import BoardView, MetricType
from ticketflow.db.models.companies import _now_utc
from ticketflow.db.types import JSONType, enum_type

if TYPE_CHECKING:
    from ticketflow.db.models import Contact, Ticket, User


class KanbanBoard(Base):
    """
    A company's board. Exactly one active board per company is default;
    promotion always demotes the others first.
    """

    __tablename__ = "kanban_boards"
    __table_args__ = (Index("idx_kanban_boards_company", "company_id", "active"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    default_view: Mapped[BoardView] = mapped_column(
        enum_type(BoardView, name="kanban_board_view"), default=BoardView.KANBAN, nullable=False
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )

    # Relationships
    lanes: Mapped[list["KanbanLane"]] = relationship(
        back_populates="board",
        cascade="all, delete-orphan",
        order_by="KanbanLane.position",
    )


class KanbanLane(Base):
    """
    An ordered column. Positions within a board are always 0..N-1; there is
    no unique constraint because shifts update rows one at a time.
    """

    __tablename__ = "kanban_lanes"
    __table_args__ = (Index("idx_kanban_lanes_board_position", "board_id", "position"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    board_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_boards.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    card_limit: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0 = unlimited
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    queue_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("queues.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )

    # Relationships
    board: Mapped["KanbanBoard"] = relationship(back_populates="lanes")
    cards: Mapped[list["KanbanCard"]] = relationship(back_populates="lane", cascade="all")


class KanbanCard(Base):
    """
    A unit of work, optionally mirroring a ticket.

    ``started_at`` is when the card entered its current lane. ``time_in_lane``
    is the dwell (seconds) in the lane it last left, captured at move time.
    """

    __tablename__ = "kanban_cards"
    __table_args__ = (
        Index("idx_kanban_cards_lane", "lane_id", "is_archived"),
        Index("idx_kanban_cards_ticket", "ticket_id", "is_archived"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    lane_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_lanes.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    card_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, default=dict, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    time_in_lane: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )

    # Relationships
    lane: Mapped["KanbanLane"] = relationship(back_populates="cards")
    ticket: Mapped[Optional["Ticket"]] = relationship()
    contact: Mapped[Optional["Contact"]] = relationship()
    assigned_user: Mapped[Optional["User"]] = relationship()
    checklist_items: Mapped[list["KanbanChecklistItem"]] = relationship(
        back_populates="card",
        cascade="all, delete-orphan",
        order_by="KanbanChecklistItem.position",
    )


class KanbanChecklistTemplate(Base):
    """Reusable checklist; ``items_template`` is a list of {description, required}."""

    __tablename__ = "kanban_checklist_templates"
    __table_args__ = (Index("idx_kanban_checklist_templates_company", "company_id", "active"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    items_template: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_now_utc, onupdate=_now_utc, nullable=False
    )


class KanbanChecklistItem(Base):
    """A checklist entry on a card; positions are dense within the card."""

    __tablename__ = "kanban_checklist_items"
    __table_args__ = (Index("idx_kanban_checklist_items_card_position", "card_id", "position"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("kanban_cards.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("kanban_checklist_templates.id", ondelete="SET NULL"), nullable=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    assigned_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    checked_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    checked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

    # Relationships
    card: Mapped["KanbanCard"] = relationship(back_populates="checklist_items")


class KanbanMetric(Base):
    """Append-only metric fact row. Never updated in place."""

    __tablename__ = "kanban_metrics"
    __table_args__ = (
        Index("idx_kanban_metrics_board_type", "board_id", "metric_type", "created_at"),
        Index("idx_kanban_metrics_company", "company_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    board_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("kanban_boards.id", ondelete="CASCADE"), nullable=True
    )
    lane_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("kanban_lanes.id", ondelete="SET NULL"), nullable=True
    )
    card_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("kanban_cards.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    metric_type: Mapped[MetricType] = mapped_column(
        enum_type(MetricType, name="kanban_metric_type"), nullable=False
    )
    value: Mapped[float] = mapped_column(Float, nullable=False)
    metric_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_now_utc, nullable=False)

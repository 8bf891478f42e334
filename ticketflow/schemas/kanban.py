"""Pydantic schemas for kanban boards, lanes, cards and checklists."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ticketflow.db.enums import BoardView


# =============================================================================
# Boards & Lanes
# =============================================================================


class BoardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(None, max_length=20)
    is_default: bool = False
    default_view: BoardView = BoardView.KANBAN


class BoardUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(None, max_length=20)
    is_default: bool | None = None
    default_view: BoardView | None = None
    active: bool | None = None


class LaneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(None, max_length=20)
    icon: str | None = Field(None, max_length=50)
    position: int | None = Field(None, ge=0)
    card_limit: int = Field(0, ge=0)
    queue_id: UUID | None = None


class LaneUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    color: str | None = Field(None, max_length=20)
    icon: str | None = Field(None, max_length=50)
    card_limit: int | None = Field(None, ge=0)
    active: bool | None = None
    queue_id: UUID | None = None


class PositionUpdate(BaseModel):
    id: UUID
    position: int = Field(..., ge=0)


class MoveRequest(BaseModel):
    position: int


class LaneRead(BaseModel):
    id: UUID
    board_id: UUID
    name: str
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    position: int
    card_limit: int
    active: bool
    queue_id: UUID | None = None

    model_config = {"from_attributes": True}


class BoardRead(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    description: str | None = None
    color: str | None = None
    is_default: bool
    default_view: BoardView
    active: bool
    lanes: list[LaneRead] = []

    model_config = {"from_attributes": True}


# =============================================================================
# Cards
# =============================================================================


class CardCreate(BaseModel):
    title: str | None = Field(None, max_length=255)
    description: str | None = None
    priority: int = Field(0, ge=0)
    due_date: datetime | None = None
    value: Decimal | None = None
    sku: str | None = Field(None, max_length=100)
    assigned_user_id: UUID | None = None
    contact_id: UUID | None = None
    ticket_id: UUID | None = None
    tags: list[str] = Field(default_factory=list)


class CardUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    priority: int | None = Field(None, ge=0)
    due_date: datetime | None = None
    value: Decimal | None = None
    sku: str | None = Field(None, max_length=100)
    assigned_user_id: UUID | None = None
    tags: list[str] | None = None
    is_blocked: bool | None = None
    block_reason: str | None = None


class CardMoveRequest(BaseModel):
    lane_id: UUID


class CardRead(BaseModel):
    id: UUID
    lane_id: UUID
    title: str
    description: str | None = None
    priority: int
    due_date: datetime | None = None
    is_archived: bool
    value: Decimal | None = None
    sku: str | None = None
    assigned_user_id: UUID | None = None
    contact_id: UUID | None = None
    ticket_id: UUID | None = None
    tags: list[str] = []
    card_metadata: dict[str, Any] = Field(default_factory=dict, serialization_alias="metadata")
    started_at: datetime | None = None
    completed_at: datetime | None = None
    time_in_lane: int
    is_blocked: bool
    block_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CardListResponse(BaseModel):
    """Filtered card page."""

    items: list[CardRead]
    total: int


# =============================================================================
# Checklists
# =============================================================================


class ChecklistTemplateItem(BaseModel):
    description: str = Field(..., min_length=1)
    required: bool = False


class ChecklistTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    items_template: list[ChecklistTemplateItem] = Field(default_factory=list)


class ChecklistTemplateUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    items_template: list[ChecklistTemplateItem] | None = None
    active: bool | None = None


class ChecklistTemplateRead(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    description: str | None = None
    active: bool
    items_template: list[dict[str, Any]] = []

    model_config = {"from_attributes": True}


class ChecklistItemCreate(BaseModel):
    description: str = Field(..., min_length=1)
    required: bool = False
    position: int | None = Field(None, ge=0)
    assigned_user_id: UUID | None = None


class ChecklistItemUpdate(BaseModel):
    description: str | None = Field(None, min_length=1)
    required: bool | None = None
    checked: bool | None = None
    assigned_user_id: UUID | None = None


class ChecklistItemRead(BaseModel):
    id: UUID
    card_id: UUID
    template_id: UUID | None = None
    description: str
    checked: bool
    position: int
    required: bool
    assigned_user_id: UUID | None = None
    checked_by_id: UUID | None = None
    checked_at: datetime | None = None

    model_config = {"from_attributes": True}


# =============================================================================
# Sync & Metrics
# =============================================================================


class ImportSweepRequest(BaseModel):
    hours: int | None = Field(None, ge=1, le=24 * 30)


class ImportSweepResponse(BaseModel):
    created: int
    skipped: int
    failed: int

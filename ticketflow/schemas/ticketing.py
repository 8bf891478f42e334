"""Pydantic schemas for the ticket lifecycle APIs."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from ticketflow.db.enums import TicketStatus


class TicketUpdateData(BaseModel):
    """
    Ticket update payload.

    Fields left out keep their current value; ``user_id``/``queue_id`` sent
    as null clear the assignment (see ``model_fields_set``).
    """

    status: TicketStatus | None = None
    user_id: UUID | None = None
    queue_id: UUID | None = None
    channel_id: UUID | None = None
    is_transfer: bool = False
    send_farewell_message: bool = True
    unread_messages: int | None = Field(None, ge=0)
    value: Decimal | None = None
    sku: str | None = Field(None, max_length=100)
    chatbot: bool | None = None
    use_integration: bool | None = None
    integration_id: UUID | None = None
    amount_used_bot_queues: int | None = Field(None, ge=0)

    def is_set(self, field: str) -> bool:
        return field in self.model_fields_set


class TicketCreate(BaseModel):
    """Find-or-create request for a contact on a channel."""

    contact_id: UUID
    channel_id: UUID
    unread_messages: int = Field(0, ge=0)
    group_contact_id: UUID | None = None
    value: Decimal | None = None


class TicketRatingRequest(BaseModel):
    rate: int = Field(..., ge=1, le=5)


class TicketRead(BaseModel):
    id: UUID
    company_id: UUID
    contact_id: UUID
    channel_id: UUID
    queue_id: UUID | None = None
    user_id: UUID | None = None
    status: TicketStatus
    unread_messages: int
    value: Decimal | None = None
    sku: str | None = None
    is_group: bool
    chatbot: bool
    use_integration: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TicketUpdateResponse(BaseModel):
    ticket: TicketRead
    old_status: TicketStatus
    old_user_id: UUID | None = None
    replaced_ticket_id: UUID | None = None


class TicketTrackingRead(BaseModel):
    id: UUID
    ticket_id: UUID
    queue_id: UUID | None = None
    channel_id: UUID | None = None
    user_id: UUID | None = None
    started_at: datetime | None = None
    queued_at: datetime | None = None
    finished_at: datetime | None = None
    rating_at: datetime | None = None
    rated: bool
    rating: int | None = None

    model_config = {"from_attributes": True}


# =============================================================================
# Ticket board (tickets grouped into status lanes)
# =============================================================================


class TicketBoardItem(BaseModel):
    id: UUID
    status: TicketStatus
    value: Decimal | None = None
    sku: str | None = None
    last_message: str | None = None
    unread_messages: int
    contact_id: UUID
    contact_name: str
    contact_number: str
    user_id: UUID | None = None
    user_name: str | None = None
    queue_id: UUID | None = None
    queue_name: str | None = None
    queue_color: str | None = None
    created_at: datetime
    updated_at: datetime


class TicketBoardLane(BaseModel):
    id: TicketStatus
    name: str
    color: str
    tickets: list[TicketBoardItem]


class TicketBoardResponse(BaseModel):
    view: str
    lanes: list[TicketBoardLane]
    total: int


class TicketLaneMoveRequest(BaseModel):
    """Target lane id is the ticket status it stands for."""

    lane_id: TicketStatus

"""
Tickets viewed as a board.

Active tickets sit in a pending lane and an open lane; closed tickets get a
single lane of their own. A move between lanes is a status change and goes
through ``ticket_service.update_ticket``, so tracking rows, transfer rules
and card mirroring apply exactly as for any other update.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from ticketflow.core.errors import DomainValidationError
from ticketflow.db.enums import EventOrigin, TicketStatus
from ticketflow.db.models import Contact, Ticket
from ticketflow.schemas.ticketing import TicketUpdateData
from ticketflow.services import ticket_service

logger = logging.getLogger(__name__)

ACTIVE_VIEW = "active"
CLOSED_VIEW = "closed"

# (status, name, color) per view, in display order.
TICKET_LANES: dict[str, tuple[tuple[TicketStatus, str, str], ...]] = {
    ACTIVE_VIEW: (
        (TicketStatus.PENDING, "Aguardando Atendimento", "#f39c12"),
        (TicketStatus.OPEN, "Em Atendimento", "#3498db"),
    ),
    CLOSED_VIEW: ((TicketStatus.CLOSED, "Tickets Fechados", "#2ecc71"),),
}


def _board_item(ticket: Ticket) -> dict[str, Any]:
    return {
        "id": ticket.id,
        "status": ticket.status,
        "value": ticket.value,
        "sku": ticket.sku,
        "last_message": ticket.last_message,
        "unread_messages": ticket.unread_messages,
        "contact_id": ticket.contact_id,
        "contact_name": ticket.contact.name,
        "contact_number": ticket.contact.number,
        "user_id": ticket.user_id,
        "user_name": ticket.user.name if ticket.user else None,
        "queue_id": ticket.queue_id,
        "queue_name": ticket.queue.name if ticket.queue else None,
        "queue_color": ticket.queue.color if ticket.queue else None,
        "created_at": ticket.created_at,
        "updated_at": ticket.updated_at,
    }


def list_ticket_board(
    db: Session,
    company_id: UUID,
    *,
    view: str = ACTIVE_VIEW,
    queue_id: UUID | None = None,
    user_ids: list[UUID] | None = None,
    search: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    limit: int = 500,
) -> dict[str, Any]:
    """
    Group the company's tickets into status lanes, most recently updated first.

    ``search`` matches contact name or number, last message and sku.
    """
    lane_specs = TICKET_LANES.get(view)
    if lane_specs is None:
        raise DomainValidationError(f"Unknown ticket board view {view!r}")
    statuses = [lane_status for lane_status, _, _ in lane_specs]

    query = (
        select(Ticket)
        .join(Contact, Contact.id == Ticket.contact_id)
        .where(Ticket.company_id == company_id, Ticket.status.in_(statuses))
        .options(selectinload(Ticket.contact), selectinload(Ticket.user), selectinload(Ticket.queue))
    )
    if queue_id:
        query = query.where(Ticket.queue_id == queue_id)
    if user_ids:
        query = query.where(Ticket.user_id.in_(user_ids))
    if created_from:
        query = query.where(Ticket.created_at >= created_from)
    if created_to:
        query = query.where(Ticket.created_at <= created_to)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                Contact.name.ilike(pattern),
                Contact.number.ilike(pattern),
                Ticket.last_message.ilike(pattern),
                Ticket.sku.ilike(pattern),
            )
        )
    tickets = db.execute(query.order_by(Ticket.updated_at.desc()).limit(limit)).scalars().all()

    grouped: dict[TicketStatus, list[dict[str, Any]]] = {lane_status: [] for lane_status in statuses}
    for ticket in tickets:
        grouped[ticket.status].append(_board_item(ticket))

    return {
        "view": view,
        "lanes": [
            {"id": lane_status, "name": name, "color": color, "tickets": grouped[lane_status]}
            for lane_status, name, color in lane_specs
        ],
        "total": len(tickets),
    }


def move_ticket_to_lane(
    db: Session,
    company_id: UUID,
    ticket_id: UUID,
    lane_id: TicketStatus,
    *,
    acting_user_id: UUID | None,
) -> Ticket:
    """
    Move a ticket to the lane of ``lane_id``'s status.

    Dropping an unassigned ticket on the open lane accepts it for the acting
    user. A drop on the ticket's current lane changes nothing.
    """
    ticket = ticket_service.require_ticket(db, company_id, ticket_id)
    if ticket.status == lane_id:
        return ticket

    fields: dict[str, Any] = {"status": lane_id}
    if lane_id == TicketStatus.OPEN and ticket.user_id is None and acting_user_id:
        fields["user_id"] = acting_user_id
    result = ticket_service.update_ticket(
        db,
        company_id,
        ticket_id,
        TicketUpdateData(**fields),
        acting_user_id=acting_user_id,
        origin=EventOrigin.USER,
    )
    logger.info(
        "ticket_board_move ticket_id=%s from=%s to=%s",
        ticket_id,
        result.old_status.value,
        lane_id.value,
    )
    return result.ticket

"""Ticket lifecycle APIs (find-or-create, update/transfer, rating, tracking)."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ticketflow.core.deps import get_current_session, get_db, require_csrf_header
from ticketflow.db.enums import EventOrigin, TicketStatus
from ticketflow.schemas.auth import UserSession
from ticketflow.schemas.ticketing import (
    TicketCreate,
    TicketRatingRequest,
    TicketRead,
    TicketTrackingRead,
    TicketUpdateData,
    TicketUpdateResponse,
)
from ticketflow.services import ticket_service, tracking_service

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.get("", response_model=list[TicketRead])
def list_tickets(
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    status_filter: Annotated[TicketStatus | None, Query(alias="status")] = None,
    queue_id: UUID | None = None,
    user_id: UUID | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """List the company's tickets, most recently updated first."""
    return ticket_service.list_tickets(
        db,
        session.company_id,
        status=status_filter,
        queue_id=queue_id,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )


@router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    ticket = ticket_service.get_ticket(db, session.company_id, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@router.post(
    "",
    response_model=TicketRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def find_or_create_ticket(
    data: TicketCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Return the contact's active ticket on the channel, reopening or creating one."""
    return ticket_service.find_or_create_ticket(
        db,
        session.company_id,
        data.contact_id,
        data.channel_id,
        data.unread_messages,
        group_contact_id=data.group_contact_id,
        value=data.value,
    )


@router.put(
    "/{ticket_id}",
    response_model=TicketUpdateResponse,
    dependencies=[Depends(require_csrf_header)],
)
def update_ticket(
    ticket_id: UUID,
    data: TicketUpdateData,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Change status, queue, agent or channel. Transfers are validated before any write."""
    result = ticket_service.update_ticket(
        db,
        session.company_id,
        ticket_id,
        data,
        acting_user_id=session.user_id,
        origin=EventOrigin.USER,
    )
    return TicketUpdateResponse(
        ticket=TicketRead.model_validate(result.ticket),
        old_status=result.old_status,
        old_user_id=result.old_user_id,
        replaced_ticket_id=result.replaced_ticket.id if result.replaced_ticket else None,
    )


@router.post(
    "/{ticket_id}/rating",
    response_model=TicketRead,
    dependencies=[Depends(require_csrf_header)],
)
def rate_ticket(
    ticket_id: UUID,
    data: TicketRatingRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Register the contact's answer to a pending rating request."""
    return ticket_service.register_rating(db, session.company_id, ticket_id, data.rate)


@router.get("/{ticket_id}/tracking", response_model=list[TicketTrackingRead])
def list_ticket_tracking(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    ticket_service.require_ticket(db, session.company_id, ticket_id)
    return tracking_service.list_ticket_trackings(db, session.company_id, ticket_id)

"""Ticket lifecycle events for side effects (realtime push, kanban mirroring)."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from ticketflow.core.side_effects import SideEffectQueue
from ticketflow.db.enums import EventOrigin, TicketEvent, TicketStatus
from ticketflow.db.models import Ticket

logger = logging.getLogger(__name__)


def ticket_payload(ticket: Ticket) -> dict:
    return {
        "id": str(ticket.id),
        "status": ticket.status.value,
        "contactId": str(ticket.contact_id),
        "channelId": str(ticket.channel_id),
        "queueId": str(ticket.queue_id) if ticket.queue_id else None,
        "userId": str(ticket.user_id) if ticket.user_id else None,
        "unreadMessages": ticket.unread_messages,
    }


def publish_ticket(company_id: UUID, ticket: Ticket, *, removed_from_list: bool) -> None:
    """Push the ticket change to the company's ticket topic."""
    from ticketflow.services import realtime_service

    topic = realtime_service.ticket_topic(company_id)
    if removed_from_list:
        realtime_service.publish(company_id, topic, {"action": "delete", "ticketId": str(ticket.id)})
    if ticket.status != TicketStatus.CLOSED:
        realtime_service.publish(company_id, topic, {"action": "update", "ticket": ticket_payload(ticket)})


def handle_ticket_event(
    *,
    db: Session,
    company_id: UUID,
    ticket_id: UUID,
    event: TicketEvent,
    origin: EventOrigin,
    source_card_id: UUID | None = None,
) -> None:
    """Route a committed ticket event to the kanban sync bridge."""
    from ticketflow.services import kanban_sync_service

    ticket = db.get(Ticket, ticket_id)
    if ticket is None or ticket.company_id != company_id:
        logger.warning("ticket_event_target_missing ticket_id=%s event=%s", ticket_id, event.value)
        return

    if event == TicketEvent.CREATED:
        kanban_sync_service.on_ticket_created(db, company_id, ticket, origin=origin)
    elif event == TicketEvent.REOPENED:
        kanban_sync_service.on_ticket_reopened(
            db, company_id, ticket, origin=origin, source_card_id=source_card_id
        )
    elif event == TicketEvent.CLOSED:
        kanban_sync_service.on_ticket_closed(db, company_id, ticket, origin=origin)
    else:
        kanban_sync_service.on_ticket_updated(db, company_id, ticket, origin=origin)


def queue_ticket_event(
    effects: SideEffectQueue,
    db: Session,
    company_id: UUID,
    ticket: Ticket,
    event: TicketEvent,
    origin: EventOrigin,
    *,
    removed_from_list: bool = False,
    source_card_id: UUID | None = None,
) -> None:
    """Queue the push and the sync bridge call for a ticket event."""
    effects.add(
        f"publish_ticket_{event.value}",
        publish_ticket,
        company_id,
        ticket,
        removed_from_list=removed_from_list,
    )
    effects.add(
        f"kanban_sync_{event.value}",
        handle_ticket_event,
        db=db,
        company_id=company_id,
        ticket_id=ticket.id,
        event=event,
        origin=origin,
        source_card_id=source_card_id,
    )

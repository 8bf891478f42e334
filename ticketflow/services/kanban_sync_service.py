"""Ticket <-> kanban card synchronization.

Ticket lifecycle events mirror the ticket onto a card; moving a
ticket-linked card maps the destination lane name to a ticket status and
re-enters the ticket state machine. Every entry point here is best effort:
failures are logged and never propagate to the operation that triggered
them. Events carry an origin so a change caused by one side is not
mirrored back onto it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.core.config import settings
from ticketflow.core.structured_logging import build_log_context, format_log_context
from ticketflow.db.enums import ACTIVE_TICKET_STATUSES, EventOrigin, SettingKey, TicketStatus
from ticketflow.db.models import KanbanCard, Ticket
from ticketflow.schemas.kanban import CardCreate
from ticketflow.schemas.ticketing import TicketUpdateData
from ticketflow.services import board_service, card_service, lane_service, settings_service

logger = logging.getLogger(__name__)

DEFAULT_LANE_STATUS_MAP: dict[str, TicketStatus] = {
    "pendente": TicketStatus.PENDING,
    "em atendimento": TicketStatus.OPEN,
    "em progresso": TicketStatus.OPEN,
    "aguardando cliente": TicketStatus.PENDING,
    "resolvido": TicketStatus.CLOSED,
    "finalizado": TicketStatus.CLOSED,
    "concluído": TicketStatus.CLOSED,
}

HIGH_UNREAD_THRESHOLD = 10


@dataclass
class SweepResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _normalize(name: str) -> str:
    return name.strip().lower()


# =============================================================================
# Helpers
# =============================================================================


def compute_priority(ticket: Ticket) -> int:
    """High when many unread messages, medium while waiting in queue, else normal."""
    if (ticket.unread_messages or 0) > HIGH_UNREAD_THRESHOLD:
        return 2
    if ticket.status == TicketStatus.PENDING:
        return 1
    return 0


def get_lane_status_map(db: Session, company_id: UUID) -> dict[str, TicketStatus]:
    """Default lane-name table with the company's ``kanbanLaneStatusMap`` merged over it."""
    mapping = dict(DEFAULT_LANE_STATUS_MAP)
    configured = settings_service.get_json_setting(db, company_id, SettingKey.KANBAN_LANE_STATUS_MAP)
    if not isinstance(configured, dict):
        return mapping
    for lane_name, status in configured.items():
        try:
            mapping[_normalize(str(lane_name))] = TicketStatus(str(status).strip().lower())
        except ValueError:
            logger.warning(
                "kanban_lane_status_map_invalid company_id=%s lane=%s status=%s",
                company_id,
                lane_name,
                status,
            )
    return mapping


def status_for_lane(db: Session, company_id: UUID, lane_name: str) -> TicketStatus | None:
    return get_lane_status_map(db, company_id).get(_normalize(lane_name))


def _auto_create_enabled(db: Session, company_id: UUID) -> bool:
    return settings_service.is_enabled(db, company_id, SettingKey.KANBAN_AUTO_CREATE_CARDS)


def _create_card_for_ticket(db: Session, company_id: UUID, ticket: Ticket) -> KanbanCard | None:
    """Create the ticket's card unless a non-archived one already exists."""
    existing = card_service.get_active_card_for_ticket(db, ticket.id)
    if existing:
        return None

    board = board_service.get_or_create_default_board(db, company_id)
    lane = lane_service.get_first_active_lane(db, board.id)
    if lane is None:
        logger.warning("kanban_sync_no_active_lane company_id=%s board_id=%s", company_id, board.id)
        return None

    return card_service.create_card(
        db,
        company_id,
        lane.id,
        CardCreate(
            title=ticket.contact.name if ticket.contact else None,
            priority=compute_priority(ticket),
            value=ticket.value,
            sku=ticket.sku,
            assigned_user_id=ticket.user_id,
            contact_id=ticket.contact_id,
            ticket_id=ticket.id,
        ),
    )


def _log_ctx(company_id: UUID, ticket_id: UUID | None = None, card_id: UUID | None = None, origin=None) -> str:
    return format_log_context(
        build_log_context(
            company_id=company_id,
            ticket_id=ticket_id,
            card_id=card_id,
            origin=origin.value if origin else None,
        )
    )


# =============================================================================
# Ticket -> card
# =============================================================================


def on_ticket_created(
    db: Session,
    company_id: UUID,
    ticket: Ticket,
    *,
    origin: EventOrigin = EventOrigin.SYSTEM,
) -> KanbanCard | None:
    """Mirror a new active ticket onto the default board when auto-sync is on."""
    if ticket.status.value not in ACTIVE_TICKET_STATUSES:
        return None
    try:
        if not _auto_create_enabled(db, company_id):
            return None
        card = _create_card_for_ticket(db, company_id, ticket)
        if card:
            logger.info("kanban_sync_card_created %s", _log_ctx(company_id, ticket.id, card.id, origin))
        return card
    except Exception:
        db.rollback()
        logger.exception("kanban_sync_create_failed %s", _log_ctx(company_id, ticket.id, origin=origin))
        return None


def on_ticket_reopened(
    db: Session,
    company_id: UUID,
    ticket: Ticket,
    *,
    origin: EventOrigin = EventOrigin.SYSTEM,
    source_card_id: UUID | None = None,
) -> KanbanCard | None:
    """
    Recreate the card for a reopened ticket.

    When the reopen came from moving the ticket's archived card, that card
    is restored in place instead.
    """
    try:
        if origin == EventOrigin.KANBAN and source_card_id:
            card = card_service.get_card(db, company_id, source_card_id)
            if card and card.ticket_id == ticket.id:
                card.is_archived = False
                card.completed_at = None
                card.priority = compute_priority(ticket)
                db.commit()
                logger.info("kanban_sync_card_restored %s", _log_ctx(company_id, ticket.id, card.id, origin))
                return card
        if not _auto_create_enabled(db, company_id):
            return None
        return _create_card_for_ticket(db, company_id, ticket)
    except Exception:
        db.rollback()
        logger.exception("kanban_sync_reopen_failed %s", _log_ctx(company_id, ticket.id, origin=origin))
        return None


def on_ticket_updated(
    db: Session,
    company_id: UUID,
    ticket: Ticket,
    *,
    origin: EventOrigin = EventOrigin.SYSTEM,
) -> KanbanCard | None:
    """Refresh the mirrored fields of the ticket's card; no card means no-op."""
    if origin == EventOrigin.KANBAN:
        return None
    try:
        card = card_service.get_active_card_for_ticket(db, ticket.id)
        if card is None:
            return None
        card.assigned_user_id = ticket.user_id
        card.value = ticket.value
        card.sku = ticket.sku
        card.priority = compute_priority(ticket)
        db.commit()
        return card
    except Exception:
        db.rollback()
        logger.exception("kanban_sync_update_failed %s", _log_ctx(company_id, ticket.id, origin=origin))
        return None


def on_ticket_closed(
    db: Session,
    company_id: UUID,
    ticket: Ticket,
    *,
    origin: EventOrigin = EventOrigin.SYSTEM,
) -> KanbanCard | None:
    """Archive the ticket's card and stamp completion."""
    try:
        card = card_service.get_active_card_for_ticket(db, ticket.id)
        if card is None:
            return None
        card.is_archived = True
        card.completed_at = _now_utc()
        db.commit()
        logger.info("kanban_sync_card_archived %s", _log_ctx(company_id, ticket.id, card.id, origin))
        return card
    except Exception:
        db.rollback()
        logger.exception("kanban_sync_close_failed %s", _log_ctx(company_id, ticket.id, origin=origin))
        return None


# =============================================================================
# Card -> ticket
# =============================================================================


def on_card_moved(
    db: Session,
    *,
    company_id: UUID,
    card: KanbanCard,
    acting_user_id: UUID | None = None,
    origin: EventOrigin = EventOrigin.USER,
) -> TicketStatus | None:
    """
    Apply the destination lane's mapped status to the linked ticket.

    Runs after the move committed, as its own transaction through the
    ticket state machine. Returns the status applied, if any.
    """
    from ticketflow.services import ticket_service

    if not card.ticket_id or origin == EventOrigin.KANBAN:
        return None
    ctx = _log_ctx(company_id, card.ticket_id, card.id, origin)
    try:
        lane = lane_service.get_lane(db, company_id, card.lane_id)
        if lane is None:
            return None
        target_status = status_for_lane(db, company_id, lane.name)
        if target_status is None:
            return None
        ticket = ticket_service.get_ticket(db, company_id, card.ticket_id)
        if ticket is None or ticket.status == target_status:
            return None

        ticket_service.update_ticket(
            db,
            company_id,
            ticket.id,
            TicketUpdateData(status=target_status),
            acting_user_id=acting_user_id,
            origin=EventOrigin.KANBAN,
            source_card_id=card.id,
        )
        logger.info("kanban_sync_ticket_status_applied %s status=%s", ctx, target_status.value)
        return target_status
    except Exception:
        db.rollback()
        logger.exception("kanban_sync_card_moved_failed %s", ctx)
        return None


# =============================================================================
# Backlog sweep
# =============================================================================


def process_imported_tickets(db: Session, company_id: UUID, hours: int | None = None) -> SweepResult:
    """
    Create cards for recent active tickets that have none.

    Used after bulk imports where the live event path was skipped. Safe to
    run repeatedly: tickets that already have a non-archived card are skipped.
    """
    window = hours or settings.KANBAN_IMPORT_WINDOW_HOURS
    since = _now_utc() - timedelta(hours=window)
    tickets = db.execute(
        select(Ticket)
        .where(
            Ticket.company_id == company_id,
            Ticket.status.in_(ACTIVE_TICKET_STATUSES),
            Ticket.created_at >= since,
        )
        .order_by(Ticket.created_at)
    ).scalars().all()

    result = SweepResult()
    for ticket in tickets:
        try:
            card = _create_card_for_ticket(db, company_id, ticket)
        except Exception:
            db.rollback()
            result.failed += 1
            logger.exception("kanban_sync_sweep_failed %s", _log_ctx(company_id, ticket.id))
            continue
        if card:
            result.created += 1
        else:
            result.skipped += 1

    logger.info(
        "kanban_sync_sweep_done company_id=%s hours=%s created=%s skipped=%s failed=%s",
        company_id,
        window,
        result.created,
        result.skipped,
        result.failed,
    )
    return result

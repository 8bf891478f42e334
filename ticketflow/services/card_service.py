"""Kanban card engine: CRUD, lane limits and moves with time-in-lane capture."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ticketflow.core.errors import (
    DomainValidationError,
    InternalError,
    LimitReachedError,
    NotFoundError,
)
from ticketflow.core.side_effects import SideEffectQueue
from ticketflow.db.enums import EventOrigin
from ticketflow.db.models import Contact, KanbanBoard, KanbanCard, KanbanLane, Ticket, User
from ticketflow.schemas.kanban import CardCreate, CardUpdate
from ticketflow.services import lane_service, realtime_service

logger = logging.getLogger(__name__)

PREVIOUS_LANE_KEY = "previousLaneId"
MOVED_AT_KEY = "movedAt"


class CardNotFoundError(NotFoundError):
    """Card not found."""


class CrossBoardMoveError(DomainValidationError):
    """Cards can only move between lanes of the same board."""


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _publish(company_id: UUID, action: str, card: KanbanCard, **extra) -> None:
    realtime_service.publish(
        company_id,
        realtime_service.kanban_topic(company_id),
        {"action": action, "cardId": str(card.id), "laneId": str(card.lane_id), **extra},
    )


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("kanban_card_commit_failed op=%s", what)
        raise InternalError(f"Could not {what}") from exc


def _ensure_capacity(db: Session, lane: KanbanLane) -> None:
    if lane.card_limit and lane_service.count_active_cards(db, lane.id) >= lane.card_limit:
        raise LimitReachedError(f"Lane '{lane.name}' reached its limit of {lane.card_limit} cards")


def _ensure_company_user(db: Session, company_id: UUID, user_id: UUID | None) -> None:
    if user_id is None:
        return
    found = db.execute(
        select(User.id).where(User.id == user_id, User.company_id == company_id)
    ).first()
    if not found:
        raise NotFoundError(f"User {user_id} not found")


# =============================================================================
# Queries
# =============================================================================


def get_card(db: Session, company_id: UUID, card_id: UUID, *, lock: bool = False) -> KanbanCard | None:
    """Card by id, scoped through lane -> board -> company."""
    query = (
        select(KanbanCard)
        .join(KanbanLane, KanbanLane.id == KanbanCard.lane_id)
        .join(KanbanBoard, KanbanBoard.id == KanbanLane.board_id)
        .where(KanbanCard.id == card_id, KanbanBoard.company_id == company_id)
    )
    if lock:
        query = query.with_for_update(of=KanbanCard)
    return db.execute(query).scalar_one_or_none()


def require_card(db: Session, company_id: UUID, card_id: UUID, *, lock: bool = False) -> KanbanCard:
    card = get_card(db, company_id, card_id, lock=lock)
    if not card:
        raise CardNotFoundError(f"Card {card_id} not found")
    return card


def get_active_card_for_ticket(db: Session, ticket_id: UUID) -> KanbanCard | None:
    """The single non-archived card mirroring a ticket, if any."""
    return db.execute(
        select(KanbanCard)
        .where(KanbanCard.ticket_id == ticket_id, KanbanCard.is_archived.is_(False))
        .order_by(KanbanCard.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def _card_has_tag(db: Session, tag: str):
    """EXISTS clause matching cards whose ``tags`` array holds ``tag``."""
    if db.get_bind().dialect.name == "postgresql":
        elements = func.jsonb_array_elements_text(KanbanCard.tags).table_valued("value")
    else:
        elements = func.json_each(KanbanCard.tags).table_valued("value")
    return select(elements.c.value).where(elements.c.value == tag).correlate(KanbanCard).exists()


def _filtered_cards(
    db: Session,
    company_id: UUID,
    *,
    board_id: UUID | None = None,
    lane_id: UUID | None = None,
    assigned_user_id: UUID | None = None,
    ticket_id: UUID | None = None,
    contact_id: UUID | None = None,
    include_archived: bool = False,
    is_blocked: bool | None = None,
    search: str | None = None,
    tags: list[str] | None = None,
    priorities: list[int] | None = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
):
    query = (
        select(KanbanCard)
        .join(KanbanLane, KanbanLane.id == KanbanCard.lane_id)
        .join(KanbanBoard, KanbanBoard.id == KanbanLane.board_id)
        .where(KanbanBoard.company_id == company_id)
    )
    if board_id:
        query = query.where(KanbanBoard.id == board_id)
    if lane_id:
        query = query.where(KanbanCard.lane_id == lane_id)
    if assigned_user_id:
        query = query.where(KanbanCard.assigned_user_id == assigned_user_id)
    if ticket_id:
        query = query.where(KanbanCard.ticket_id == ticket_id)
    if contact_id:
        query = query.where(KanbanCard.contact_id == contact_id)
    if not include_archived:
        query = query.where(KanbanCard.is_archived.is_(False))
    if is_blocked is not None:
        query = query.where(KanbanCard.is_blocked.is_(is_blocked))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                KanbanCard.title.ilike(pattern),
                KanbanCard.description.ilike(pattern),
                KanbanCard.sku.ilike(pattern),
            )
        )
    # Every requested tag must be present.
    for tag in tags or []:
        query = query.where(_card_has_tag(db, tag))
    if priorities:
        query = query.where(KanbanCard.priority.in_(priorities))
    if due_from:
        query = query.where(KanbanCard.due_date >= due_from)
    if due_to:
        query = query.where(KanbanCard.due_date <= due_to)
    return query


def list_cards(
    db: Session,
    company_id: UUID,
    *,
    limit: int = 500,
    offset: int = 0,
    **filters,
) -> list[KanbanCard]:
    query = _filtered_cards(db, company_id, **filters)
    query = query.order_by(KanbanCard.priority.desc(), KanbanCard.created_at).offset(offset).limit(limit)
    return list(db.execute(query).scalars().all())


def search_cards(
    db: Session,
    company_id: UUID,
    *,
    limit: int = 200,
    offset: int = 0,
    **filters,
) -> tuple[list[KanbanCard], int]:
    """
    Filtered card search for the board UI.

    Filters: board, lane, assignee, ticket, contact, archived/blocked flags,
    text search (title, description, sku), tags (all must match),
    priorities (any of) and a due-date window. Returns (cards, total) where
    total ignores ``limit``/``offset``.
    """
    query = _filtered_cards(db, company_id, **filters)
    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    cards = list_cards(db, company_id, limit=limit, offset=offset, **filters)
    return cards, total


# =============================================================================
# Mutations
# =============================================================================


def create_card(
    db: Session,
    company_id: UUID,
    lane_id: UUID,
    data: CardCreate,
    *,
    commit: bool = True,
) -> KanbanCard:
    """
    Create a card in a lane of the caller's company.

    Raises NotFoundError for a foreign lane/ticket/contact and
    LimitReachedError when the lane is full. A ticket-linked card without a
    title is named after the ticket's contact.
    """
    lane = lane_service.require_lane(db, company_id, lane_id)
    _ensure_capacity(db, lane)
    _ensure_company_user(db, company_id, data.assigned_user_id)

    title = data.title.strip() if data.title else None
    contact_id = data.contact_id
    if data.ticket_id:
        ticket = db.execute(
            select(Ticket).where(Ticket.id == data.ticket_id, Ticket.company_id == company_id)
        ).scalar_one_or_none()
        if not ticket:
            raise NotFoundError(f"Ticket {data.ticket_id} not found")
        contact_id = contact_id or ticket.contact_id
        if not title:
            title = ticket.contact.name if ticket.contact else None
    if contact_id:
        contact = db.execute(
            select(Contact).where(Contact.id == contact_id, Contact.company_id == company_id)
        ).scalar_one_or_none()
        if not contact:
            raise NotFoundError(f"Contact {contact_id} not found")
        title = title or contact.name
    if not title:
        raise DomainValidationError("Card title is required")

    card = KanbanCard(
        lane_id=lane.id,
        title=title,
        description=data.description,
        priority=data.priority,
        due_date=data.due_date,
        value=data.value,
        sku=data.sku,
        assigned_user_id=data.assigned_user_id,
        contact_id=contact_id,
        ticket_id=data.ticket_id,
        tags=list(data.tags),
        card_metadata={},
        started_at=_now_utc(),
    )
    db.add(card)
    db.flush()
    if commit:
        _commit(db, "create card")
        db.refresh(card)
        _publish(company_id, "card-created", card)
    return card


def update_card(db: Session, company_id: UUID, card_id: UUID, data: CardUpdate) -> KanbanCard:
    card = require_card(db, company_id, card_id)
    fields = data.model_dump(exclude_unset=True)
    if "assigned_user_id" in fields:
        _ensure_company_user(db, company_id, fields["assigned_user_id"])
    for field, value in fields.items():
        if value is None and field in {"title", "priority", "tags", "is_blocked"}:
            continue
        if field == "title":
            value = value.strip()
        setattr(card, field, value)
    if fields.get("is_blocked") is False:
        card.block_reason = None
    _commit(db, "update card")
    db.refresh(card)
    _publish(company_id, "card-updated", card)
    return card


def delete_card(db: Session, company_id: UUID, card_id: UUID) -> bool:
    """
    Delete a card. Ticket-linked cards are archived instead.

    Returns True when the card was physically deleted.
    """
    card = require_card(db, company_id, card_id)
    if card.ticket_id:
        card.is_archived = True
        _commit(db, "archive card")
        _publish(company_id, "card-archived", card)
        return False

    lane_id = card.lane_id
    db.delete(card)
    _commit(db, "delete card")
    realtime_service.publish(
        company_id,
        realtime_service.kanban_topic(company_id),
        {"action": "card-deleted", "cardId": str(card_id), "laneId": str(lane_id)},
    )
    return True


def move_card(
    db: Session,
    company_id: UUID,
    card_id: UUID,
    target_lane_id: UUID,
    *,
    acting_user_id: UUID | None = None,
    origin: EventOrigin = EventOrigin.USER,
) -> KanbanCard:
    """
    Move a card to another lane of the same board.

    Captures the dwell time of the lane being left in ``time_in_lane``,
    restarts ``started_at`` and stamps the previous lane in metadata, all
    in one transaction. Metric recording and the ticket sync run after the
    commit and cannot undo the move.
    """
    card = require_card(db, company_id, card_id, lock=True)
    if card.lane_id == target_lane_id:
        return card

    source_lane = card.lane
    target_lane = lane_service.require_lane(db, company_id, target_lane_id)
    if target_lane.board_id != source_lane.board_id:
        raise CrossBoardMoveError("Target lane belongs to a different board")
    _ensure_capacity(db, target_lane)

    now = _now_utc()
    entered_at = card.started_at or card.created_at
    seconds = max(0, int((now - entered_at).total_seconds()))

    card.time_in_lane = seconds
    card.started_at = now
    card.card_metadata = {
        **(card.card_metadata or {}),
        PREVIOUS_LANE_KEY: str(source_lane.id),
        MOVED_AT_KEY: now.isoformat(),
    }
    card.lane = target_lane
    _commit(db, "move card")
    db.refresh(card)

    logger.info(
        "kanban_card_moved card_id=%s from_lane=%s to_lane=%s seconds=%s",
        card.id,
        source_lane.id,
        target_lane.id,
        seconds,
    )

    from ticketflow.services import kanban_metrics_service, kanban_sync_service

    effects = SideEffectQueue()
    effects.add(
        "record_card_movement",
        kanban_metrics_service.record_card_movement,
        db,
        card=card,
        from_lane_id=source_lane.id,
        to_lane_id=target_lane.id,
        time_in_lane=seconds,
        user_id=acting_user_id,
    )
    effects.add("publish_card_moved", _publish, company_id, "card-moved", card, fromLaneId=str(source_lane.id))
    if card.ticket_id:
        effects.add(
            "sync_card_moved",
            kanban_sync_service.on_card_moved,
            db,
            company_id=company_id,
            card=card,
            acting_user_id=acting_user_id,
            origin=origin,
        )
    effects.run()
    return card

"""Kanban lane management on top of the dense position manager."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ticketflow.core.errors import DomainValidationError, NotFoundError
from ticketflow.db.models import KanbanBoard, KanbanCard, KanbanLane
from ticketflow.schemas.kanban import LaneCreate, LaneUpdate
from ticketflow.services import board_service, position_service, realtime_service
from ticketflow.services.position_service import PositionScope

logger = logging.getLogger(__name__)


class LaneNotFoundError(NotFoundError):
    """Lane not found."""


class LaneDeleteForbiddenError(DomainValidationError):
    """Lane cannot be deleted."""


def _scope(board_id: UUID) -> PositionScope:
    return PositionScope(model=KanbanLane, parent_attr="board_id", parent_id=board_id)


def _publish(company_id: UUID, action: str, board_id: UUID, **extra) -> None:
    realtime_service.publish(
        company_id,
        realtime_service.kanban_topic(company_id),
        {"action": action, "boardId": str(board_id), **extra},
    )


# =============================================================================
# Queries
# =============================================================================


def get_lane(db: Session, company_id: UUID, lane_id: UUID) -> KanbanLane | None:
    """Lane by id, only if its board belongs to the company."""
    return db.execute(
        select(KanbanLane)
        .join(KanbanBoard, KanbanBoard.id == KanbanLane.board_id)
        .where(KanbanLane.id == lane_id, KanbanBoard.company_id == company_id)
    ).scalar_one_or_none()


def require_lane(db: Session, company_id: UUID, lane_id: UUID) -> KanbanLane:
    lane = get_lane(db, company_id, lane_id)
    if not lane:
        raise LaneNotFoundError(f"Lane {lane_id} not found")
    return lane


def list_lanes(db: Session, company_id: UUID, board_id: UUID, active_only: bool = False) -> list[KanbanLane]:
    board_service.require_board(db, company_id, board_id)
    query = select(KanbanLane).where(KanbanLane.board_id == board_id)
    if active_only:
        query = query.where(KanbanLane.active.is_(True))
    return list(db.execute(query.order_by(KanbanLane.position)).scalars().all())


def get_first_active_lane(db: Session, board_id: UUID) -> KanbanLane | None:
    return db.execute(
        select(KanbanLane)
        .where(KanbanLane.board_id == board_id, KanbanLane.active.is_(True))
        .order_by(KanbanLane.position)
        .limit(1)
    ).scalar_one_or_none()


def count_active_cards(db: Session, lane_id: UUID) -> int:
    return db.execute(
        select(func.count(KanbanCard.id)).where(
            KanbanCard.lane_id == lane_id,
            KanbanCard.is_archived.is_(False),
        )
    ).scalar_one()


# =============================================================================
# Mutations
# =============================================================================


def create_lane(db: Session, company_id: UUID, board_id: UUID, data: LaneCreate) -> KanbanLane:
    """Insert a lane at ``data.position`` (shifting the rest) or append it."""
    board_service.require_board(db, company_id, board_id)
    lane = KanbanLane(
        name=data.name.strip(),
        description=data.description,
        color=data.color,
        icon=data.icon,
        card_limit=data.card_limit,
        queue_id=data.queue_id,
    )
    position_service.insert_at(db, _scope(board_id), lane, data.position)
    db.commit()
    db.refresh(lane)
    _publish(company_id, "lane-created", board_id, laneId=str(lane.id))
    return lane


def update_lane(db: Session, company_id: UUID, lane_id: UUID, data: LaneUpdate) -> KanbanLane:
    lane = require_lane(db, company_id, lane_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field in {"name", "card_limit", "active"}:
            continue
        if field == "name":
            value = value.strip()
        setattr(lane, field, value)
    db.commit()
    db.refresh(lane)
    _publish(company_id, "lane-updated", lane.board_id, laneId=str(lane.id))
    return lane


def delete_lane(db: Session, company_id: UUID, lane_id: UUID) -> None:
    """
    Remove a lane and close the position gap.

    Refused for the board's last lane and for lanes still holding active
    cards. Archived cards are kept as history on the lane now at position 0.
    """
    lane = require_lane(db, company_id, lane_id)
    board_id = lane.board_id

    siblings = position_service.lock_siblings(db, _scope(board_id))
    if len(siblings) <= 1:
        raise LaneDeleteForbiddenError("A board must keep at least one lane")
    if count_active_cards(db, lane.id) > 0:
        raise LaneDeleteForbiddenError("Move or archive the lane's cards before deleting it")

    heir = next(s for s in siblings if s.id != lane.id)
    archived = db.execute(select(KanbanCard).where(KanbanCard.lane_id == lane.id)).scalars().all()
    for card in archived:
        card.lane = heir
    db.flush()
    db.expire(lane, ["cards"])

    position_service.remove(db, _scope(board_id), lane)
    db.commit()
    _publish(company_id, "lane-deleted", board_id, laneId=str(lane_id))


def move_lane(db: Session, company_id: UUID, lane_id: UUID, to_position: int) -> KanbanLane:
    lane = require_lane(db, company_id, lane_id)
    position_service.move(db, _scope(lane.board_id), lane, to_position)
    db.commit()
    db.refresh(lane)
    _publish(company_id, "lanes-reordered", lane.board_id)
    return lane


def reorder_lanes(
    db: Session,
    company_id: UUID,
    board_id: UUID,
    updates: list[tuple[UUID, int]],
) -> list[KanbanLane]:
    """Bulk reorder; the supplied set must be exactly the board's lanes."""
    board_service.require_board(db, company_id, board_id)
    lanes = position_service.reorder(db, _scope(board_id), updates)
    db.commit()
    _publish(company_id, "lanes-reordered", board_id)
    return lanes

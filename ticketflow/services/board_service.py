"""Kanban board management with the single-default-board rule."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ticketflow.core.errors import DomainValidationError, NotFoundError
from ticketflow.db.enums import BoardView, SettingKey
from ticketflow.db.models import KanbanBoard, KanbanCard, KanbanLane
from ticketflow.schemas.kanban import BoardCreate, BoardUpdate
from ticketflow.services import settings_service

logger = logging.getLogger(__name__)


class BoardNotFoundError(NotFoundError):
    """Board not found."""


class BoardDeleteForbiddenError(DomainValidationError):
    """Default board or last active board cannot be deleted."""


DEFAULT_BOARD_NAME = "Atendimentos"

# (name, color) of the lanes every new board starts with.
SEED_LANES: tuple[tuple[str, str], ...] = (
    ("Pendente", "#f59e0b"),
    ("Em Atendimento", "#3b82f6"),
    ("Concluído", "#22c55e"),
)


# =============================================================================
# Queries
# =============================================================================


def list_boards(db: Session, company_id: UUID, include_inactive: bool = False) -> list[KanbanBoard]:
    query = select(KanbanBoard).where(KanbanBoard.company_id == company_id)
    if not include_inactive:
        query = query.where(KanbanBoard.active.is_(True))
    query = query.order_by(KanbanBoard.is_default.desc(), KanbanBoard.created_at)
    return list(db.execute(query).scalars().all())


def get_board(db: Session, company_id: UUID, board_id: UUID) -> KanbanBoard | None:
    return db.execute(
        select(KanbanBoard).where(
            KanbanBoard.id == board_id,
            KanbanBoard.company_id == company_id,
        )
    ).scalar_one_or_none()


def require_board(db: Session, company_id: UUID, board_id: UUID) -> KanbanBoard:
    board = get_board(db, company_id, board_id)
    if not board:
        raise BoardNotFoundError(f"Board {board_id} not found")
    return board


def get_default_board(db: Session, company_id: UUID) -> KanbanBoard | None:
    return db.execute(
        select(KanbanBoard)
        .where(
            KanbanBoard.company_id == company_id,
            KanbanBoard.is_default.is_(True),
            KanbanBoard.active.is_(True),
        )
        .order_by(KanbanBoard.created_at)
        .limit(1)
    ).scalar_one_or_none()


# =============================================================================
# Mutations
# =============================================================================


def _demote_other_defaults(db: Session, company_id: UUID, keep_board_id: UUID | None) -> None:
    """Clear is_default on every other board of the company before a promotion."""
    stmt = (
        update(KanbanBoard)
        .where(KanbanBoard.company_id == company_id, KanbanBoard.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )
    if keep_board_id is not None:
        stmt = stmt.where(KanbanBoard.id != keep_board_id)
    db.execute(stmt)


def create_board(
    db: Session,
    company_id: UUID,
    data: BoardCreate,
    created_by_id: UUID | None = None,
    *,
    commit: bool = True,
) -> KanbanBoard:
    """Create a board with its seed lanes at positions 0..2."""
    if data.is_default:
        _demote_other_defaults(db, company_id, keep_board_id=None)

    board = KanbanBoard(
        company_id=company_id,
        name=data.name.strip(),
        description=data.description,
        color=data.color,
        is_default=data.is_default,
        default_view=data.default_view,
        created_by_id=created_by_id,
    )
    db.add(board)
    db.flush()

    for position, (name, color) in enumerate(SEED_LANES):
        db.add(KanbanLane(board_id=board.id, name=name, color=color, position=position))
    db.flush()

    if commit:
        db.commit()
        db.refresh(board)
    logger.info("kanban_board_created company_id=%s board_id=%s", company_id, board.id)
    return board


def update_board(db: Session, company_id: UUID, board_id: UUID, data: BoardUpdate) -> KanbanBoard:
    board = require_board(db, company_id, board_id)
    fields = data.model_dump(exclude_unset=True)

    if fields.get("is_default"):
        _demote_other_defaults(db, company_id, keep_board_id=board.id)
    for field, value in fields.items():
        if field == "name" and value is not None:
            value = value.strip()
        if value is None and field in {"name", "is_default", "default_view", "active"}:
            continue
        setattr(board, field, value)

    db.commit()
    db.refresh(board)
    return board


def _rehome_ticket_cards(db: Session, company_id: UUID, board: KanbanBoard) -> None:
    """Archive the board's ticket-linked cards onto another board so the lane cascade keeps them."""
    cards = list(
        db.execute(
            select(KanbanCard)
            .join(KanbanLane, KanbanLane.id == KanbanCard.lane_id)
            .where(KanbanLane.board_id == board.id, KanbanCard.ticket_id.is_not(None))
        ).scalars().all()
    )
    if not cards:
        return

    heir_lane = db.execute(
        select(KanbanLane)
        .join(KanbanBoard, KanbanBoard.id == KanbanLane.board_id)
        .where(
            KanbanBoard.company_id == company_id,
            KanbanBoard.id != board.id,
            KanbanBoard.active.is_(True),
            KanbanLane.active.is_(True),
        )
        .order_by(KanbanBoard.is_default.desc(), KanbanBoard.created_at, KanbanLane.position)
        .limit(1)
    ).scalar_one_or_none()
    if heir_lane is None:
        raise BoardDeleteForbiddenError("Board holds ticket cards and no other board can receive them")

    for card in cards:
        card.lane = heir_lane
        card.is_archived = True
    db.flush()
    for lane in board.lanes:
        db.expire(lane, ["cards"])
    logger.info(
        "kanban_board_ticket_cards_rehomed board_id=%s lane_id=%s count=%s",
        board.id,
        heir_lane.id,
        len(cards),
    )


def delete_board(db: Session, company_id: UUID, board_id: UUID) -> None:
    """
    Delete a board (lanes cascade). Forbidden for the default or last active board.

    Ticket-linked cards are never deleted: they are archived onto the
    default (or oldest other active) board first.
    """
    board = require_board(db, company_id, board_id)
    if board.is_default:
        raise BoardDeleteForbiddenError("The default board cannot be deleted")

    active_count = db.execute(
        select(func.count(KanbanBoard.id)).where(
            KanbanBoard.company_id == company_id,
            KanbanBoard.active.is_(True),
        )
    ).scalar_one()
    if board.active and active_count <= 1:
        raise BoardDeleteForbiddenError("The last active board cannot be deleted")

    _rehome_ticket_cards(db, company_id, board)
    db.delete(board)
    db.commit()
    logger.info("kanban_board_deleted company_id=%s board_id=%s", company_id, board_id)


def get_or_create_default_board(db: Session, company_id: UUID) -> KanbanBoard:
    """
    Board the sync bridge places new cards on.

    Order: configured ``kanbanDefaultBoardId``, then the default board, then
    the oldest active board, else a fresh default board (committed).
    """
    configured = settings_service.get_setting(db, company_id, SettingKey.KANBAN_DEFAULT_BOARD_ID)
    if configured:
        try:
            board = get_board(db, company_id, UUID(configured))
        except ValueError:
            logger.warning("kanban_default_board_setting_invalid company_id=%s", company_id)
            board = None
        if board and board.active:
            return board

    board = get_default_board(db, company_id)
    if board:
        return board

    boards = list_boards(db, company_id)
    if boards:
        return boards[0]

    return create_board(
        db,
        company_id,
        BoardCreate(name=DEFAULT_BOARD_NAME, is_default=True, default_view=BoardView.KANBAN),
    )

"""Kanban APIs: boards, lanes, cards, checklists, metrics, the ticket board and the import sweep."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ticketflow.core.deps import get_current_session, get_db, require_admin, require_csrf_header
from ticketflow.db.enums import MetricType
from ticketflow.schemas.auth import UserSession
from ticketflow.schemas.kanban import (
    BoardCreate,
    BoardRead,
    BoardUpdate,
    CardCreate,
    CardListResponse,
    CardMoveRequest,
    CardRead,
    CardUpdate,
    ChecklistItemCreate,
    ChecklistItemRead,
    ChecklistItemUpdate,
    ChecklistTemplateCreate,
    ChecklistTemplateRead,
    ChecklistTemplateUpdate,
    ImportSweepRequest,
    ImportSweepResponse,
    LaneCreate,
    LaneRead,
    LaneUpdate,
    MoveRequest,
    PositionUpdate,
)
from ticketflow.schemas.ticketing import TicketBoardResponse, TicketLaneMoveRequest, TicketRead
from ticketflow.services import (
    board_service,
    card_service,
    checklist_service,
    kanban_metrics_service,
    kanban_sync_service,
    lane_service,
    ticket_board_service,
)

router = APIRouter(prefix="/kanban", tags=["Kanban"])

csrf = [Depends(require_csrf_header)]


# =============================================================================
# Boards
# =============================================================================


@router.get("/boards", response_model=list[BoardRead])
def list_boards(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return board_service.list_boards(db, session.company_id, include_inactive)


@router.post("/boards", response_model=BoardRead, status_code=status.HTTP_201_CREATED, dependencies=csrf)
def create_board(
    data: BoardCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Create a board with its three seed lanes."""
    return board_service.create_board(db, session.company_id, data, created_by_id=session.user_id)


@router.get("/boards/{board_id}", response_model=BoardRead)
def get_board(
    board_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return board_service.require_board(db, session.company_id, board_id)


@router.patch("/boards/{board_id}", response_model=BoardRead, dependencies=csrf)
def update_board(
    board_id: UUID,
    data: BoardUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return board_service.update_board(db, session.company_id, board_id, data)


@router.delete("/boards/{board_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=csrf)
def delete_board(
    board_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    board_service.delete_board(db, session.company_id, board_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/boards/{board_id}/metrics", response_model=dict)
def board_metrics(
    board_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Dwell time, throughput, lead time, productivity and distribution for a board."""
    start, end = kanban_metrics_service.as_utc(start), kanban_metrics_service.as_utc(end)
    if start and end and start > end:
        raise HTTPException(status_code=422, detail="start must be before end")
    return kanban_metrics_service.calculate_board_metrics(db, session.company_id, board_id, start, end)


@router.get("/boards/{board_id}/metrics/facts", response_model=list[dict])
def board_metric_facts(
    board_id: UUID,
    metric_type: MetricType | None = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 200,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    board_service.require_board(db, session.company_id, board_id)
    rows = kanban_metrics_service.list_metrics(
        db, session.company_id, board_id=board_id, metric_type=metric_type, limit=limit
    )
    return [
        {
            "id": str(row.id),
            "metric_type": row.metric_type.value,
            "lane_id": str(row.lane_id) if row.lane_id else None,
            "card_id": str(row.card_id) if row.card_id else None,
            "value": row.value,
            "metric_data": row.metric_data,
            "created_at": row.created_at.isoformat(),
        }
        for row in rows
    ]


# =============================================================================
# Lanes
# =============================================================================


@router.get("/boards/{board_id}/lanes", response_model=list[LaneRead])
def list_lanes(
    board_id: UUID,
    active_only: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return lane_service.list_lanes(db, session.company_id, board_id, active_only)


@router.post(
    "/boards/{board_id}/lanes",
    response_model=LaneRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=csrf,
)
def create_lane(
    board_id: UUID,
    data: LaneCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return lane_service.create_lane(db, session.company_id, board_id, data)


@router.put("/boards/{board_id}/lanes/order", response_model=list[LaneRead], dependencies=csrf)
def reorder_lanes(
    board_id: UUID,
    data: list[PositionUpdate],
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Bulk reorder; the body must list every lane of the board exactly once."""
    return lane_service.reorder_lanes(
        db, session.company_id, board_id, [(item.id, item.position) for item in data]
    )


@router.patch("/lanes/{lane_id}", response_model=LaneRead, dependencies=csrf)
def update_lane(
    lane_id: UUID,
    data: LaneUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return lane_service.update_lane(db, session.company_id, lane_id, data)


@router.delete("/lanes/{lane_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=csrf)
def delete_lane(
    lane_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    lane_service.delete_lane(db, session.company_id, lane_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/lanes/{lane_id}/move", response_model=LaneRead, dependencies=csrf)
def move_lane(
    lane_id: UUID,
    data: MoveRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return lane_service.move_lane(db, session.company_id, lane_id, data.position)


# =============================================================================
# Cards
# =============================================================================


@router.get("/lanes/{lane_id}/cards", response_model=list[CardRead])
def list_lane_cards(
    lane_id: UUID,
    include_archived: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    lane_service.require_lane(db, session.company_id, lane_id)
    return card_service.list_cards(
        db, session.company_id, lane_id=lane_id, include_archived=include_archived
    )


@router.get("/cards", response_model=CardListResponse)
def search_cards(
    board_id: UUID | None = None,
    lane_id: UUID | None = None,
    assigned_user_id: UUID | None = None,
    ticket_id: UUID | None = None,
    contact_id: UUID | None = None,
    include_archived: bool = False,
    is_blocked: bool | None = None,
    q: str | None = None,
    tags: Annotated[list[str] | None, Query(alias="tag")] = None,
    priorities: Annotated[list[int] | None, Query(alias="priority")] = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 200,
    offset: Annotated[int, Query(ge=0)] = 0,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Search cards; ``tag`` and ``priority`` may repeat. ``total`` ignores paging."""
    cards, total = card_service.search_cards(
        db,
        session.company_id,
        board_id=board_id,
        lane_id=lane_id,
        assigned_user_id=assigned_user_id,
        ticket_id=ticket_id,
        contact_id=contact_id,
        include_archived=include_archived,
        is_blocked=is_blocked,
        search=q,
        tags=tags,
        priorities=priorities,
        due_from=due_from,
        due_to=due_to,
        limit=limit,
        offset=offset,
    )
    return {"items": cards, "total": total}


@router.post(
    "/lanes/{lane_id}/cards",
    response_model=CardRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=csrf,
)
def create_card(
    lane_id: UUID,
    data: CardCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return card_service.create_card(db, session.company_id, lane_id, data)


@router.get("/cards/{card_id}", response_model=CardRead)
def get_card(
    card_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return card_service.require_card(db, session.company_id, card_id)


@router.patch("/cards/{card_id}", response_model=CardRead, dependencies=csrf)
def update_card(
    card_id: UUID,
    data: CardUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return card_service.update_card(db, session.company_id, card_id, data)


@router.delete("/cards/{card_id}", response_model=dict, dependencies=csrf)
def delete_card(
    card_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Ticket-linked cards are archived instead of deleted."""
    deleted = card_service.delete_card(db, session.company_id, card_id)
    return {"deleted": deleted, "archived": not deleted}


@router.post("/cards/{card_id}/move", response_model=CardRead, dependencies=csrf)
def move_card(
    card_id: UUID,
    data: CardMoveRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return card_service.move_card(
        db, session.company_id, card_id, data.lane_id, acting_user_id=session.user_id
    )


# =============================================================================
# Checklists
# =============================================================================


@router.get("/checklist-templates", response_model=list[ChecklistTemplateRead])
def list_checklist_templates(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.list_templates(db, session.company_id, include_inactive)


@router.post(
    "/checklist-templates",
    response_model=ChecklistTemplateRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=csrf,
)
def create_checklist_template(
    data: ChecklistTemplateCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.create_template(db, session.company_id, data, created_by_id=session.user_id)


@router.patch("/checklist-templates/{template_id}", response_model=ChecklistTemplateRead, dependencies=csrf)
def update_checklist_template(
    template_id: UUID,
    data: ChecklistTemplateUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.update_template(db, session.company_id, template_id, data)


@router.delete(
    "/checklist-templates/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=csrf,
)
def delete_checklist_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    checklist_service.delete_template(db, session.company_id, template_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/cards/{card_id}/checklist/apply/{template_id}",
    response_model=list[ChecklistItemRead],
    dependencies=csrf,
)
def apply_checklist_template(
    card_id: UUID,
    template_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.apply_template(db, session.company_id, card_id, template_id)


@router.get("/cards/{card_id}/checklist", response_model=list[ChecklistItemRead])
def list_checklist_items(
    card_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.list_items(db, session.company_id, card_id)


@router.post(
    "/cards/{card_id}/checklist",
    response_model=ChecklistItemRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=csrf,
)
def create_checklist_item(
    card_id: UUID,
    data: ChecklistItemCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.create_item(db, session.company_id, card_id, data)


@router.put("/cards/{card_id}/checklist/order", response_model=list[ChecklistItemRead], dependencies=csrf)
def reorder_checklist_items(
    card_id: UUID,
    data: list[PositionUpdate],
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.reorder_items(
        db, session.company_id, card_id, [(item.id, item.position) for item in data]
    )


@router.patch("/checklist-items/{item_id}", response_model=ChecklistItemRead, dependencies=csrf)
def update_checklist_item(
    item_id: UUID,
    data: ChecklistItemUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.update_item(db, session.company_id, item_id, data, user_id=session.user_id)


@router.post("/checklist-items/{item_id}/check", response_model=ChecklistItemRead, dependencies=csrf)
def check_checklist_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.set_checked(db, session.company_id, item_id, True, user_id=session.user_id)


@router.post("/checklist-items/{item_id}/uncheck", response_model=ChecklistItemRead, dependencies=csrf)
def uncheck_checklist_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.set_checked(db, session.company_id, item_id, False)


@router.post("/checklist-items/{item_id}/move", response_model=ChecklistItemRead, dependencies=csrf)
def move_checklist_item(
    item_id: UUID,
    data: MoveRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return checklist_service.move_item(db, session.company_id, item_id, data.position)


@router.delete("/checklist-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=csrf)
def delete_checklist_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    checklist_service.delete_item(db, session.company_id, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Ticket board
# =============================================================================


@router.get("/tickets", response_model=TicketBoardResponse)
def ticket_board(
    view: Literal["active", "closed"] = "active",
    queue_id: UUID | None = None,
    user_ids: Annotated[list[UUID] | None, Query(alias="user_id")] = None,
    q: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Tickets grouped into status lanes (pending/open, or closed)."""
    return ticket_board_service.list_ticket_board(
        db,
        session.company_id,
        view=view,
        queue_id=queue_id,
        user_ids=user_ids,
        search=q,
        created_from=created_from,
        created_to=created_to,
    )


@router.post("/tickets/{ticket_id}/move", response_model=TicketRead, dependencies=csrf)
def move_ticket(
    ticket_id: UUID,
    data: TicketLaneMoveRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Move a ticket to another status lane; the change runs as a ticket update."""
    return ticket_board_service.move_ticket_to_lane(
        db, session.company_id, ticket_id, data.lane_id, acting_user_id=session.user_id
    )


# =============================================================================
# Sync
# =============================================================================


@router.post("/sync/import", response_model=ImportSweepResponse, dependencies=csrf)
def sweep_imported_tickets(
    data: ImportSweepRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Create cards for recently imported tickets that have none (admin only)."""
    result = kanban_sync_service.process_imported_tickets(db, session.company_id, data.hours)
    return ImportSweepResponse(created=result.created, skipped=result.skipped, failed=result.failed)

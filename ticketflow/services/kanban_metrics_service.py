"""
Kanban metrics.

Read side: per-board dwell time, throughput, lead time, user productivity
and lane distribution, computed from cards and movement fact rows.
Write side: ``record_card_movement`` appends fact rows on every move and
is best effort, so a metrics failure never breaks the move itself.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from ticketflow.db.enums import MetricType
from ticketflow.db.models import KanbanBoard, KanbanCard, KanbanLane, KanbanMetric, User
from ticketflow.services import board_service
from ticketflow.services.card_service import PREVIOUS_LANE_KEY

logger = logging.getLogger(__name__)


def _hours(delta_seconds: float) -> float:
    return round(delta_seconds / 3600, 2)


def _seconds_between(db: Session, earlier, later):
    """``later - earlier`` in seconds as a SQL expression."""
    if db.get_bind().dialect.name == "postgresql":
        return func.extract("epoch", later - earlier)
    return (func.julianday(later) - func.julianday(earlier)) * 86400


def _within(column, start: datetime | None, end: datetime | None) -> list:
    clauses = [column.is_not(None)]
    if start:
        clauses.append(column >= start)
    if end:
        clauses.append(column <= end)
    return clauses


# =============================================================================
# Write path
# =============================================================================


def record_card_movement(
    db: Session,
    *,
    card: KanbanCard,
    from_lane_id: UUID,
    to_lane_id: UUID,
    time_in_lane: int,
    user_id: UUID | None = None,
) -> None:
    """
    Append a time_in_lane row for the lane left and a conversion_rate row
    for the from -> to transition.

    Conversion only counts cards whose metadata marks them as having left
    ``from_lane_id``. Best effort: errors are logged and swallowed.
    """
    try:
        from_lane = db.get(KanbanLane, from_lane_id)
        if from_lane is None:
            return
        board = db.get(KanbanBoard, from_lane.board_id)
        now = datetime.now(timezone.utc)

        db.add(
            KanbanMetric(
                company_id=board.company_id,
                board_id=board.id,
                lane_id=from_lane_id,
                card_id=card.id,
                user_id=user_id,
                metric_type=MetricType.TIME_IN_LANE,
                value=float(time_in_lane),
                metric_data={"toLaneId": str(to_lane_id)},
                period_end=now,
            )
        )

        left_by_lane = dict(
            db.execute(
                select(KanbanCard.lane_id, func.count(KanbanCard.id))
                .join(KanbanLane, KanbanLane.id == KanbanCard.lane_id)
                .where(
                    KanbanLane.board_id == board.id,
                    KanbanCard.card_metadata[PREVIOUS_LANE_KEY].as_string() == str(from_lane_id),
                )
                .group_by(KanbanCard.lane_id)
            ).all()
        )
        total = sum(left_by_lane.values())
        if total:
            converted = left_by_lane.get(to_lane_id, 0)
            db.add(
                KanbanMetric(
                    company_id=board.company_id,
                    board_id=board.id,
                    lane_id=from_lane_id,
                    card_id=card.id,
                    user_id=user_id,
                    metric_type=MetricType.CONVERSION_RATE,
                    value=round(converted / total * 100, 2),
                    metric_data={
                        "fromLaneId": str(from_lane_id),
                        "toLaneId": str(to_lane_id),
                        "converted": converted,
                        "total": total,
                    },
                    period_end=now,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("kanban_metric_record_failed card_id=%s", card.id)


# =============================================================================
# Read path
# =============================================================================


def as_utc(value: datetime | None) -> datetime | None:
    """Query bounds without an offset are taken as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def calculate_board_metrics(
    db: Session,
    company_id: UUID,
    board_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, Any]:
    """Aggregate a board's metrics over ``[start, end]`` (open-ended when omitted)."""
    start, end = as_utc(start), as_utc(end)
    board = board_service.require_board(db, company_id, board_id)
    lanes = list(
        db.execute(
            select(KanbanLane).where(KanbanLane.board_id == board.id).order_by(KanbanLane.position)
        ).scalars().all()
    )
    on_board = KanbanCard.lane_id.in_([lane.id for lane in lanes])

    # Dwell per lane from the time_in_lane samples recorded at move time.
    dwell_query = (
        select(KanbanMetric.lane_id, func.avg(KanbanMetric.value), func.count(KanbanMetric.id))
        .where(
            KanbanMetric.board_id == board.id,
            KanbanMetric.metric_type == MetricType.TIME_IN_LANE,
        )
        .group_by(KanbanMetric.lane_id)
    )
    if start:
        dwell_query = dwell_query.where(KanbanMetric.created_at >= start)
    if end:
        dwell_query = dwell_query.where(KanbanMetric.created_at <= end)
    dwell = {lane_id: (float(avg or 0), count) for lane_id, avg, count in db.execute(dwell_query).all()}

    distribution = dict(
        db.execute(
            select(KanbanCard.lane_id, func.count(KanbanCard.id))
            .where(on_board, KanbanCard.is_archived.is_(False))
            .group_by(KanbanCard.lane_id)
        ).all()
    )

    lane_metrics = [
        {
            "lane_id": str(lane.id),
            "name": lane.name,
            "position": lane.position,
            "card_count": distribution.get(lane.id, 0),
            "avg_time_in_lane_seconds": round(dwell.get(lane.id, (0.0, 0))[0], 2),
            "samples": dwell.get(lane.id, (0.0, 0))[1],
        }
        for lane in lanes
    ]

    completed_in_period = _within(KanbanCard.completed_at, start, end)
    lead_seconds = _seconds_between(db, KanbanCard.created_at, KanbanCard.completed_at)

    completed_count, avg_lead_seconds = db.execute(
        select(func.count(KanbanCard.id), func.avg(lead_seconds)).where(on_board, *completed_in_period)
    ).one()

    completed_day = func.date(KanbanCard.completed_at)
    throughput = db.execute(
        select(completed_day, func.count(KanbanCard.id))
        .where(on_board, *completed_in_period)
        .group_by(completed_day)
        .order_by(completed_day)
    ).all()

    # A card counts toward its assignee when it was created or completed in the period.
    assigned_query = select(KanbanCard.assigned_user_id, func.count(KanbanCard.id)).where(
        on_board, KanbanCard.assigned_user_id.is_not(None)
    )
    if start or end:
        assigned_query = assigned_query.where(
            or_(and_(*_within(KanbanCard.created_at, start, end)), and_(*completed_in_period))
        )
    assigned = dict(db.execute(assigned_query.group_by(KanbanCard.assigned_user_id)).all())

    completed_by_user = {
        user_id: (count, avg_seconds)
        for user_id, count, avg_seconds in db.execute(
            select(KanbanCard.assigned_user_id, func.count(KanbanCard.id), func.avg(lead_seconds))
            .where(on_board, KanbanCard.assigned_user_id.is_not(None), *completed_in_period)
            .group_by(KanbanCard.assigned_user_id)
        ).all()
    }

    names = {}
    if assigned:
        names = dict(db.execute(select(User.id, User.name).where(User.id.in_(list(assigned)))).all())
    user_productivity = []
    for user_id, assigned_count in assigned.items():
        done, avg_seconds = completed_by_user.get(user_id, (0, None))
        user_productivity.append(
            {
                "user_id": str(user_id),
                "name": names.get(user_id),
                "assigned": assigned_count,
                "completed": done,
                "avg_completion_hours": _hours(float(avg_seconds)) if avg_seconds is not None else None,
            }
        )

    return {
        "board_id": str(board.id),
        "period": {
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        },
        "lanes": lane_metrics,
        "throughput": [{"date": str(day), "count": count} for day, count in throughput],
        "completed_cards": completed_count,
        "lead_time_hours": _hours(float(avg_lead_seconds)) if avg_lead_seconds is not None else None,
        "user_productivity": user_productivity,
    }


def list_metrics(
    db: Session,
    company_id: UUID,
    *,
    board_id: UUID | None = None,
    metric_type: MetricType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 500,
) -> list[KanbanMetric]:
    start, end = as_utc(start), as_utc(end)
    query = select(KanbanMetric).where(KanbanMetric.company_id == company_id)
    if board_id:
        query = query.where(KanbanMetric.board_id == board_id)
    if metric_type:
        query = query.where(KanbanMetric.metric_type == metric_type)
    if start:
        query = query.where(KanbanMetric.created_at >= start)
    if end:
        query = query.where(KanbanMetric.created_at <= end)
    return list(db.execute(query.order_by(KanbanMetric.created_at.desc()).limit(limit)).scalars().all())

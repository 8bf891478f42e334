"""Ticket tracking intervals (queue wait, agent handling, rating).

A ticket has at most one open tracking row (``finished_at IS NULL``).
All writes here join the caller's transaction; nothing commits.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.db.models import TicketTracking


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_open_tracking(db: Session, ticket_id: UUID, *, lock: bool = False) -> TicketTracking | None:
    query = (
        select(TicketTracking)
        .where(
            TicketTracking.ticket_id == ticket_id,
            TicketTracking.finished_at.is_(None),
        )
        .order_by(TicketTracking.created_at.desc())
        .limit(1)
    )
    if lock:
        query = query.with_for_update()
    return db.execute(query).scalar_one_or_none()


def find_or_create_open_tracking(
    db: Session,
    *,
    ticket_id: UUID,
    company_id: UUID,
    channel_id: UUID | None,
    user_id: UUID | None = None,
    queue_id: UUID | None = None,
) -> TicketTracking:
    """
    Return the ticket's open tracking row, creating it when none exists.

    Must run in the same transaction as the ticket mutation; the row lock
    keeps concurrent callers for the same ticket from both inserting.
    """
    tracking = get_open_tracking(db, ticket_id, lock=True)
    if tracking:
        return tracking

    tracking = TicketTracking(
        ticket_id=ticket_id,
        company_id=company_id,
        channel_id=channel_id,
        user_id=user_id,
        queue_id=queue_id,
        started_at=_now_utc(),
    )
    db.add(tracking)
    db.flush()
    return tracking


def finish_tracking(
    tracking: TicketTracking,
    *,
    user_id: UUID | None,
    channel_id: UUID | None,
    finished_at: datetime | None = None,
) -> None:
    tracking.finished_at = finished_at or _now_utc()
    tracking.user_id = user_id
    tracking.channel_id = channel_id


def mark_queued(tracking: TicketTracking, *, queue_id: UUID | None, channel_id: UUID | None) -> None:
    """Ticket (re)entered a queue: waiting again, nobody handling it."""
    tracking.queued_at = _now_utc()
    tracking.started_at = None
    tracking.user_id = None
    tracking.queue_id = queue_id
    tracking.channel_id = channel_id


def mark_started(
    tracking: TicketTracking,
    *,
    user_id: UUID | None,
    queue_id: UUID | None,
    channel_id: UUID | None,
) -> None:
    """Agent accepted the ticket; any pending rating request is void."""
    tracking.started_at = _now_utc()
    tracking.rating_at = None
    tracking.rated = False
    tracking.user_id = user_id
    tracking.queue_id = queue_id
    tracking.channel_id = channel_id


def list_ticket_trackings(db: Session, company_id: UUID, ticket_id: UUID) -> list[TicketTracking]:
    return list(
        db.execute(
            select(TicketTracking)
            .where(
                TicketTracking.company_id == company_id,
                TicketTracking.ticket_id == ticket_id,
            )
            .order_by(TicketTracking.created_at)
        ).scalars().all()
    )

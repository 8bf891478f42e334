"""Access checks used by the ticket state machine."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.db.enums import Profile
from ticketflow.db.models import QueueMember, User


def get_company_user(db: Session, company_id: UUID, user_id: UUID | None) -> User | None:
    """Load a user only if it belongs to the company."""
    if not user_id:
        return None
    return db.execute(
        select(User).where(User.id == user_id, User.company_id == company_id)
    ).scalar_one_or_none()


def is_admin(db: Session, company_id: UUID, user_id: UUID | None) -> bool:
    user = get_company_user(db, company_id, user_id)
    return bool(user and user.profile == Profile.ADMIN)


def user_has_queue_access(db: Session, user_id: UUID, queue_id: UUID) -> bool:
    """True when the user is a member of the queue."""
    return (
        db.execute(
            select(QueueMember.id).where(
                QueueMember.user_id == user_id,
                QueueMember.queue_id == queue_id,
            )
        ).first()
        is not None
    )


def get_first_admin(db: Session, company_id: UUID) -> User | None:
    """Oldest active admin of the company (API-created tickets are assigned here)."""
    return db.execute(
        select(User)
        .where(
            User.company_id == company_id,
            User.profile == Profile.ADMIN,
            User.is_active.is_(True),
        )
        .order_by(User.created_at)
        .limit(1)
    ).scalar_one_or_none()


def list_queue_users_to_notify(db: Session, queue_id: UUID) -> list[User]:
    """Queue members who opted in to new-ticket notifications and have a number."""
    rows = db.execute(
        select(User)
        .join(QueueMember, QueueMember.user_id == User.id)
        .where(
            QueueMember.queue_id == queue_id,
            User.notify_new_ticket.is_(True),
            User.is_active.is_(True),
            User.number.is_not(None),
            User.number != "",
        )
    ).scalars().all()
    return list(rows)

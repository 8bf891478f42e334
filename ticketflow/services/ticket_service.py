"""Ticket state machine: status transitions, transfers, rating and find-or-create.

Every operation loads the ticket under a row lock, validates before any
write, mutates ticket and tracking in one transaction, and only then runs
side effects (outbound messages, realtime push, kanban mirroring) through a
SideEffectQueue. A failing side effect never undoes the committed change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ticketflow.core.config import settings
from ticketflow.core.errors import (
    AccessDeniedError,
    ConflictingTicketError,
    DomainValidationError,
    InternalError,
    NotFoundError,
    TicketflowError,
)
from ticketflow.core.side_effects import SideEffectQueue
from ticketflow.core.structured_logging import build_log_context, format_log_context
from ticketflow.db.enums import (
    ACTIVE_TICKET_STATUSES,
    EventOrigin,
    SettingKey,
    TicketEvent,
    TicketStatus,
)
from ticketflow.db.models import Channel, Contact, Queue, Ticket, TicketTracking, User
from ticketflow.schemas.ticketing import TicketUpdateData
from ticketflow.services import (
    messaging_service,
    permission_service,
    realtime_service,
    settings_service,
    ticket_events,
    tracking_service,
)

logger = logging.getLogger(__name__)

AUTOMATIC_PREFIX = "*Mensagem automática*:\n"
RATING_OPTIONS = (
    "Digite de 1 à 5 para qualificar nosso atendimento:\n"
    "*1* - _Muito Insatisfeito_\n"
    "*2* - _Insatisfeito_\n"
    "*3* - _Moderadamente Satisfeito_\n"
    "*4* - _Satisfeito_\n"
    "*5* - _Muito Satisfeito_\n"
)
STATUS_LABELS = {
    TicketStatus.PENDING: "pendente",
    TicketStatus.OPEN: "aberto",
    TicketStatus.CLOSED: "fechado",
}


class TicketNotFoundError(NotFoundError):
    """Ticket not found."""


@dataclass
class TicketUpdateResult:
    """Outcome of update_ticket. ``replaced_ticket`` is set when a transfer spawned a new ticket."""

    ticket: Ticket
    old_status: TicketStatus
    old_user_id: UUID | None
    replaced_ticket: Ticket | None = None


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Queries
# =============================================================================


def get_ticket(db: Session, company_id: UUID, ticket_id: UUID, *, lock: bool = False) -> Ticket | None:
    query = select(Ticket).where(Ticket.id == ticket_id, Ticket.company_id == company_id)
    if lock:
        query = query.with_for_update()
    return db.execute(query).scalar_one_or_none()


def require_ticket(db: Session, company_id: UUID, ticket_id: UUID, *, lock: bool = False) -> Ticket:
    ticket = get_ticket(db, company_id, ticket_id, lock=lock)
    if not ticket:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found")
    return ticket


def list_tickets(
    db: Session,
    company_id: UUID,
    *,
    status: TicketStatus | None = None,
    queue_id: UUID | None = None,
    user_id: UUID | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Ticket]:
    query = select(Ticket).where(Ticket.company_id == company_id)
    if status:
        query = query.where(Ticket.status == status)
    if queue_id:
        query = query.where(Ticket.queue_id == queue_id)
    if user_id:
        query = query.where(Ticket.user_id == user_id)
    query = query.order_by(Ticket.updated_at.desc()).offset(offset).limit(limit)
    return list(db.execute(query).scalars().all())


def find_active_ticket_for_contact_on_channel(
    db: Session,
    company_id: UUID,
    contact_id: UUID,
    channel_id: UUID,
    *,
    exclude_ticket_id: UUID | None = None,
) -> Ticket | None:
    """The open/pending ticket of a contact on a channel, newest first."""
    query = select(Ticket).where(
        Ticket.company_id == company_id,
        Ticket.contact_id == contact_id,
        Ticket.channel_id == channel_id,
        Ticket.status.in_(ACTIVE_TICKET_STATUSES),
    )
    if exclude_ticket_id:
        query = query.where(Ticket.id != exclude_ticket_id)
    return db.execute(query.order_by(Ticket.created_at.desc()).limit(1)).scalar_one_or_none()


def find_recent_ticket_for_contact(
    db: Session,
    company_id: UUID,
    contact_id: UUID,
    channel_id: UUID,
    *,
    since: datetime | None = None,
) -> Ticket | None:
    """Most recently updated ticket of the contact on the channel, any status."""
    query = select(Ticket).where(
        Ticket.company_id == company_id,
        Ticket.contact_id == contact_id,
        Ticket.channel_id == channel_id,
    )
    if since is not None:
        query = query.where(Ticket.updated_at >= since)
    return db.execute(query.order_by(Ticket.updated_at.desc()).limit(1)).scalar_one_or_none()


def _require_company_row(db: Session, model, company_id: UUID, row_id: UUID, label: str):
    row = db.execute(
        select(model).where(model.id == row_id, model.company_id == company_id)
    ).scalar_one_or_none()
    if not row:
        raise NotFoundError(f"{label} {row_id} not found")
    return row


# =============================================================================
# Message bodies
# =============================================================================


def _queue_transfer_message(queue_name: str) -> str:
    return (
        f"{AUTOMATIC_PREFIX}Você foi transferido para o departamento *{queue_name}*"
        "\naguarde, já vamos te atender!"
    )


def _agent_transfer_message(agent_name: str) -> str:
    return (
        f"{AUTOMATIC_PREFIX}Foi transferido para o atendente *{agent_name}*"
        "\n\nAguarde, já vamos te atender!"
    )


def _queue_and_agent_transfer_message(queue_name: str, agent_name: str, previous_name: str) -> str:
    return (
        f"{AUTOMATIC_PREFIX}Você foi transferido para o departamento *{queue_name}* e agora está "
        f"com o atendente *{agent_name}* (anteriormente atendido por *{previous_name}*)."
        "\n\nAguarde, já vamos te atender!"
    )


def _agent_handover_note(previous_name: str, agent_name: str) -> str:
    when = _now_utc().strftime("%d/%m/%Y %H:%M:%S")
    return (
        f"{AUTOMATIC_PREFIX}O atendente anterior *{previous_name}* transferiu o ticket "
        f"para você, *{agent_name}*, em {when}"
    )


def _new_ticket_notice(contact_name: str, queue_name: str, ticket_id: UUID) -> str:
    return (
        "Existe um novo chamado conforme abaixo:\n\n"
        f"Nome: {contact_name}\n"
        f"Área: {queue_name}\n\n"
        f"{settings.FRONTEND_URL.rstrip('/')}/tickets/{ticket_id}"
    )


def _conflict_message(conflict: Ticket) -> str:
    contact = conflict.contact
    channel_name = conflict.channel.name if conflict.channel else ""
    if conflict.user:
        return (
            f"O contato {contact.name}({contact.number}) já possui um ticket "
            f"{STATUS_LABELS[conflict.status]} com a conexão {channel_name} e está em atendimento "
            f"pelo atendente {conflict.user.name}. Não é possível realizar a transferência."
        )
    return (
        f"O contato {contact.name}({contact.number}) já possui um ticket "
        f"{STATUS_LABELS[conflict.status]} com a conexão {channel_name}, não é possível realizar "
        "a transferência usando essa conexão."
    )


def _send_completion_message(ticket_id: UUID, channel_id: UUID, address: str, body: str) -> None:
    """Completion message, at most once per ticket within the dedupe window."""
    if not messaging_service.completion_cache.claim(str(ticket_id)):
        logger.info("completion_message_deduplicated ticket_id=%s", ticket_id)
        return
    messaging_service.dispatch_message(channel_id, address, f"\u200e{body}")


# =============================================================================
# Validation
# =============================================================================


def _reject(company_id: UUID, acting_user_id: UUID | None, exc: TicketflowError) -> None:
    """Tell the acting user why the operation was refused, then raise."""
    realtime_service.notify_user(company_id, acting_user_id, exc.message)
    raise exc


def _validate_update(
    db: Session,
    ticket: Ticket,
    *,
    company_id: UUID,
    acting_user_id: UUID | None,
    acting_is_admin: bool,
    data: TicketUpdateData,
    target_status: TicketStatus,
    target_user: User | None,
    target_queue: Queue | None,
    target_channel: Channel,
) -> None:
    # Channel binding: an agent tied to one channel only takes tickets from it.
    if (
        data.is_set("user_id")
        and target_user
        and target_user.channel_id
        and target_user.channel_id != target_channel.id
        and not acting_is_admin
    ):
        bound = target_user.channel.name if target_user.channel else str(target_user.channel_id)
        _reject(
            company_id,
            acting_user_id,
            AccessDeniedError(
                f"O atendente {target_user.name} só pode receber atendimento pela conexão {bound}."
            ),
        )

    if (
        target_status == TicketStatus.OPEN
        and target_user
        and target_queue
        and not acting_is_admin
        and settings_service.is_enabled(db, company_id, SettingKey.REQUIRE_QUEUE_ON_ACCEPT)
        and not permission_service.user_has_queue_access(db, target_user.id, target_queue.id)
    ):
        _reject(
            company_id,
            acting_user_id,
            AccessDeniedError(f"User {target_user.name} is not a member of queue {target_queue.name}"),
        )

    reopening = ticket.status == TicketStatus.CLOSED and target_status != TicketStatus.CLOSED
    if data.is_transfer or target_channel.id != ticket.channel_id or reopening:
        conflict = find_active_ticket_for_contact_on_channel(
            db,
            company_id,
            ticket.contact_id,
            target_channel.id,
            exclude_ticket_id=ticket.id,
        )
        if conflict and not acting_is_admin and conflict.user_id != acting_user_id:
            _reject(
                company_id,
                acting_user_id,
                ConflictingTicketError(
                    _conflict_message(conflict),
                    ticket_id=conflict.id,
                    agent_name=conflict.user.name if conflict.user else None,
                ),
            )


# =============================================================================
# Update
# =============================================================================


def update_ticket(
    db: Session,
    company_id: UUID,
    ticket_id: UUID,
    data: TicketUpdateData,
    *,
    acting_user_id: UUID | None,
    origin: EventOrigin = EventOrigin.USER,
    source_card_id: UUID | None = None,
) -> TicketUpdateResult:
    """
    Apply a status/queue/user/channel change to a ticket.

    Fields not sent keep their value; ``user_id``/``queue_id`` sent as null
    clear the assignment. AccessDeniedError and ConflictingTicketError are
    raised before any write. ``source_card_id`` names the kanban card whose
    move triggered the update, if any.
    """
    ticket = require_ticket(db, company_id, ticket_id, lock=True)
    log_ctx = format_log_context(
        build_log_context(
            company_id=company_id,
            user_id=acting_user_id,
            ticket_id=ticket.id,
            origin=origin.value,
        )
    )

    old_status = ticket.status
    old_user_id = ticket.user_id
    old_queue_id = ticket.queue_id

    target_status = data.status or ticket.status
    reopening = old_status == TicketStatus.CLOSED and target_status != TicketStatus.CLOSED

    if data.is_set("channel_id") and data.channel_id:
        target_channel = _require_company_row(db, Channel, company_id, data.channel_id, "Channel")
    else:
        target_channel = ticket.channel

    if data.is_set("user_id"):
        target_user_id = data.user_id
    else:
        target_user_id = None if reopening else ticket.user_id
    if data.is_set("queue_id"):
        target_queue_id = data.queue_id
    else:
        target_queue_id = None if reopening else ticket.queue_id

    target_user = (
        _require_company_row(db, User, company_id, target_user_id, "User") if target_user_id else None
    )
    target_queue = (
        _require_company_row(db, Queue, company_id, target_queue_id, "Queue") if target_queue_id else None
    )
    acting_is_admin = permission_service.is_admin(db, company_id, acting_user_id)

    _validate_update(
        db,
        ticket,
        company_id=company_id,
        acting_user_id=acting_user_id,
        acting_is_admin=acting_is_admin,
        data=data,
        target_status=target_status,
        target_user=target_user,
        target_queue=target_queue,
        target_channel=target_channel,
    )

    # Writes start here.
    effects = SideEffectQueue()
    contact: Contact = ticket.contact
    can_message_contact = not ticket.is_group and not contact.disable_bot
    queue_changed = target_queue_id != old_queue_id
    user_changed = target_user_id != old_user_id

    closing = target_status == TicketStatus.CLOSED and old_status != TicketStatus.CLOSED
    # A ticket that is and stays closed has no open interval to touch.
    tracking: TicketTracking | None = None
    if target_status != TicketStatus.CLOSED or closing:
        tracking = tracking_service.find_or_create_open_tracking(
            db,
            ticket_id=ticket.id,
            company_id=company_id,
            channel_id=target_channel.id,
            user_id=target_user_id,
            queue_id=target_queue_id,
        )

    if reopening or target_channel.id != ticket.channel_id:
        ticket.chatbot = False
    _apply_plain_fields(ticket, data)
    ticket.channel_id = target_channel.id
    ticket.user_id = target_user_id
    ticket.queue_id = target_queue_id

    awaiting_rating = False
    if closing:
        awaiting_rating = _close(
            db,
            ticket,
            tracking,
            effects,
            company_id=company_id,
            channel=target_channel,
            send_farewell=data.send_farewell_message,
            can_message_contact=can_message_contact,
        )
    elif target_status != TicketStatus.CLOSED:
        ticket.status = target_status
        if target_status == TicketStatus.PENDING and (old_status != TicketStatus.PENDING or queue_changed):
            tracking_service.mark_queued(tracking, queue_id=target_queue_id, channel_id=target_channel.id)
        elif target_status == TicketStatus.OPEN and (old_status != TicketStatus.OPEN or user_changed):
            tracking_service.mark_started(
                tracking, user_id=target_user_id, queue_id=target_queue_id, channel_id=target_channel.id
            )
        if target_status != TicketStatus.PENDING and queue_changed and target_queue_id:
            tracking.queued_at = _now_utc()
            tracking.queue_id = target_queue_id

    if data.is_transfer and ticket.status != TicketStatus.CLOSED and can_message_contact:
        if settings_service.is_enabled(db, company_id, SettingKey.SEND_MSG_TRANSF_TICKET):
            _queue_transfer_messages(
                db,
                effects,
                ticket,
                channel_id=target_channel.id,
                old_user_id=old_user_id,
                old_queue_id=old_queue_id,
                target_user=target_user,
                target_queue=target_queue,
            )

    replaced_ticket: Ticket | None = None
    if (
        target_queue
        and queue_changed
        and target_queue.new_ticket_on_transfer
        and not target_queue.integration_id
        and not ticket.chatbot
        and not ticket.use_integration
        and not awaiting_rating
        and ticket.status != TicketStatus.CLOSED
    ):
        replaced_ticket = ticket
        ticket = _spawn_transfer_ticket(db, replaced_ticket, tracking, target_user_id)

    if ticket.status == TicketStatus.PENDING and queue_changed and target_queue:
        for member in permission_service.list_queue_users_to_notify(db, target_queue.id):
            effects.add(
                "notify_queue_member",
                messaging_service.dispatch_message,
                target_channel.id,
                member.number,
                _new_ticket_notice(contact.name, target_queue.name, ticket.id),
            )

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        effects.discard()
        logger.exception("ticket_update_commit_failed %s", log_ctx)
        raise InternalError("Could not update ticket") from exc
    db.refresh(ticket)

    removed = ticket.status != old_status or ticket.user_id != old_user_id or queue_changed
    if replaced_ticket is not None:
        db.refresh(replaced_ticket)
        ticket_events.queue_ticket_event(
            effects, db, company_id, replaced_ticket, TicketEvent.CLOSED, origin, removed_from_list=True
        )
        ticket_events.queue_ticket_event(effects, db, company_id, ticket, TicketEvent.CREATED, origin)
    elif ticket.status == TicketStatus.CLOSED and old_status != TicketStatus.CLOSED:
        ticket_events.queue_ticket_event(
            effects, db, company_id, ticket, TicketEvent.CLOSED, origin, removed_from_list=True
        )
    elif reopening:
        ticket_events.queue_ticket_event(
            effects,
            db,
            company_id,
            ticket,
            TicketEvent.REOPENED,
            origin,
            removed_from_list=True,
            source_card_id=source_card_id,
        )
    else:
        ticket_events.queue_ticket_event(
            effects, db, company_id, ticket, TicketEvent.UPDATED, origin, removed_from_list=removed
        )

    logger.info(
        "ticket_updated %s old_status=%s new_status=%s",
        log_ctx,
        old_status.value,
        ticket.status.value,
    )
    effects.run()
    return TicketUpdateResult(
        ticket=ticket,
        old_status=old_status,
        old_user_id=old_user_id,
        replaced_ticket=replaced_ticket,
    )


def _apply_plain_fields(ticket: Ticket, data: TicketUpdateData) -> None:
    for field in ("unread_messages", "value", "sku", "chatbot", "use_integration", "integration_id", "amount_used_bot_queues"):
        if not data.is_set(field):
            continue
        value = getattr(data, field)
        if value is None and field in {"unread_messages", "chatbot", "use_integration", "amount_used_bot_queues"}:
            continue
        setattr(ticket, field, value)


def _clear_integration(ticket: Ticket) -> None:
    ticket.chatbot = False
    ticket.use_integration = False
    ticket.integration_id = None
    ticket.integration_session_id = None


def _close(
    db: Session,
    ticket: Ticket,
    tracking: TicketTracking,
    effects: SideEffectQueue,
    *,
    company_id: UUID,
    channel: Channel,
    send_farewell: bool,
    can_message_contact: bool,
) -> bool:
    """
    Close the ticket, or ask for a rating first.

    Returns True when a rating request was sent instead: the ticket keeps
    its status and the tracking stays open until register_rating.
    """
    address = ticket.contact.address
    if (
        send_farewell
        and can_message_contact
        and tracking.rating_at is None
        and channel.rating_message
        and settings_service.is_enabled(db, company_id, SettingKey.USER_RATING)
    ):
        tracking.rating_at = _now_utc()
        tracking.rated = False
        tracking.finished_at = None
        effects.add(
            "send_rating_request",
            messaging_service.dispatch_message,
            channel.id,
            address,
            f"\u200e{channel.rating_message}\n\n{RATING_OPTIONS}",
        )
        return True

    if send_farewell and can_message_contact and channel.completion_message:
        effects.add(
            "send_completion_message",
            _send_completion_message,
            ticket.id,
            channel.id,
            address,
            channel.completion_message,
        )
    _clear_integration(ticket)
    tracking_service.finish_tracking(tracking, user_id=ticket.user_id, channel_id=channel.id)
    ticket.status = TicketStatus.CLOSED
    return False


def _queue_transfer_messages(
    db: Session,
    effects: SideEffectQueue,
    ticket: Ticket,
    *,
    channel_id: UUID,
    old_user_id: UUID | None,
    old_queue_id: UUID | None,
    target_user: User | None,
    target_queue: Queue | None,
) -> None:
    address = ticket.contact.address
    new_user_id = target_user.id if target_user else None
    new_queue_id = target_queue.id if target_queue else None
    queue_changed = new_queue_id != old_queue_id
    user_changed = new_user_id != old_user_id

    body: str | None = None
    agent_note: str | None = None
    if queue_changed and not user_changed and old_queue_id and target_queue:
        body = _queue_transfer_message(target_queue.name)
    elif user_changed and not queue_changed and old_user_id and target_user:
        body = _agent_transfer_message(target_user.name)
    elif user_changed and queue_changed and old_user_id and target_user and old_queue_id and target_queue:
        previous = db.get(User, old_user_id)
        previous_name = previous.name if previous else ""
        body = _queue_and_agent_transfer_message(target_queue.name, target_user.name, previous_name)
        if target_user.number:
            agent_note = _agent_handover_note(previous_name, target_user.name)
    elif target_user is None and queue_changed and target_queue:
        body = _queue_transfer_message(target_queue.name)

    if body:
        effects.add("send_transfer_message", messaging_service.dispatch_message, channel_id, address, body)
    if agent_note:
        effects.add(
            "send_agent_handover_note",
            messaging_service.dispatch_message,
            channel_id,
            target_user.number,
            agent_note,
        )


def _spawn_transfer_ticket(
    db: Session,
    old_ticket: Ticket,
    tracking: TicketTracking,
    user_id: UUID | None,
) -> Ticket:
    """Close ``old_ticket`` and open a pending one for the same contact/channel in its new queue."""
    _clear_integration(old_ticket)
    tracking_service.finish_tracking(tracking, user_id=old_ticket.user_id, channel_id=old_ticket.channel_id)
    old_ticket.status = TicketStatus.CLOSED
    db.flush()

    new_ticket = Ticket(
        company_id=old_ticket.company_id,
        contact_id=old_ticket.contact_id,
        channel_id=old_ticket.channel_id,
        queue_id=old_ticket.queue_id,
        user_id=user_id,
        status=TicketStatus.PENDING,
        is_group=old_ticket.is_group,
        unread_messages=0,
        value=old_ticket.value,
        sku=old_ticket.sku,
    )
    db.add(new_ticket)
    db.flush()

    new_tracking = tracking_service.find_or_create_open_tracking(
        db,
        ticket_id=new_ticket.id,
        company_id=new_ticket.company_id,
        channel_id=new_ticket.channel_id,
        queue_id=new_ticket.queue_id,
    )
    tracking_service.mark_queued(new_tracking, queue_id=new_ticket.queue_id, channel_id=new_ticket.channel_id)
    logger.info("ticket_transfer_replaced old_ticket_id=%s new_ticket_id=%s", old_ticket.id, new_ticket.id)
    return new_ticket


# =============================================================================
# Rating
# =============================================================================


def register_rating(db: Session, company_id: UUID, ticket_id: UUID, rate: int) -> Ticket:
    """Record the contact's answer to a rating request and close the ticket."""
    if not 1 <= rate <= 5:
        raise DomainValidationError("Rating must be between 1 and 5")

    ticket = require_ticket(db, company_id, ticket_id, lock=True)
    tracking = tracking_service.get_open_tracking(db, ticket.id, lock=True)
    if not tracking or tracking.rating_at is None:
        raise DomainValidationError("No rating request is pending for this ticket")

    old_status = ticket.status
    tracking.rating = rate
    tracking.rated = True
    tracking_service.finish_tracking(tracking, user_id=ticket.user_id, channel_id=ticket.channel_id)
    _clear_integration(ticket)
    ticket.status = TicketStatus.CLOSED

    effects = SideEffectQueue()
    channel = ticket.channel
    if channel.completion_message and not ticket.is_group and not ticket.contact.disable_bot:
        effects.add(
            "send_completion_message",
            _send_completion_message,
            ticket.id,
            channel.id,
            ticket.contact.address,
            channel.completion_message,
        )
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("ticket_rating_commit_failed ticket_id=%s", ticket_id)
        raise InternalError("Could not register rating") from exc
    db.refresh(ticket)

    if old_status != TicketStatus.CLOSED:
        ticket_events.queue_ticket_event(
            effects, db, company_id, ticket, TicketEvent.CLOSED, EventOrigin.SYSTEM, removed_from_list=True
        )
    logger.info("ticket_rated ticket_id=%s rate=%s", ticket.id, rate)
    effects.run()
    return ticket


# =============================================================================
# Find or create
# =============================================================================


def find_or_create_ticket(
    db: Session,
    company_id: UUID,
    contact_id: UUID,
    channel_id: UUID,
    unread_messages: int = 0,
    *,
    group_contact_id: UUID | None = None,
    value: Decimal | None = None,
    importing: bool = False,
    is_api: bool = False,
) -> Ticket:
    """
    Return the contact's active ticket on the channel, reopening or creating one.

    Branches: active ticket, latest group ticket, individual ticket touched
    within the reopen window, new ticket. API callers get closed tickets
    assigned to the company's first admin.
    """
    contact = _require_company_row(db, Contact, company_id, contact_id, "Contact")
    _require_company_row(db, Channel, company_id, channel_id, "Channel")
    owner_id = group_contact_id or contact_id
    if group_contact_id:
        _require_company_row(db, Contact, company_id, group_contact_id, "Contact")

    origin = EventOrigin.IMPORT if importing else (EventOrigin.API if is_api else EventOrigin.USER)
    now = _now_utc()
    effects = SideEffectQueue()

    ticket = find_active_ticket_for_contact_on_channel(db, company_id, owner_id, channel_id)
    event = TicketEvent.UPDATED
    if ticket:
        ticket.unread_messages = unread_messages
        if value is not None:
            ticket.value = value
        ticket.imported_at = now if importing else None
    elif group_contact_id:
        ticket = find_recent_ticket_for_contact(db, company_id, group_contact_id, channel_id)
        if ticket:
            tracking = tracking_service.get_open_tracking(db, ticket.id, lock=True)
            rating_pending = bool(tracking and tracking.user_id and tracking.rating_at)
            ticket.unread_messages = unread_messages
            ticket.imported_at = now if importing else None
            if value is not None:
                ticket.value = value
            ticket.queue_id = None
            ticket.user_id = None
            ticket.use_integration = False
            ticket.integration_id = None
            ticket.integration_session_id = None
            if not rating_pending:
                ticket.status = TicketStatus.PENDING
                ticket.is_group = True
                event = TicketEvent.REOPENED
    else:
        since = now - timedelta(hours=settings.TICKET_REOPEN_WINDOW_HOURS)
        ticket = find_recent_ticket_for_contact(db, company_id, contact_id, channel_id, since=since)
        if ticket:
            admin = permission_service.get_first_admin(db, company_id) if is_api else None
            ticket.status = TicketStatus.CLOSED if is_api else TicketStatus.PENDING
            ticket.user_id = admin.id if admin else None
            ticket.queue_id = None
            ticket.unread_messages = unread_messages
            ticket.is_group = contact.is_group
            ticket.imported_at = now if importing else None
            if value is not None:
                ticket.value = value
            event = TicketEvent.UPDATED if is_api else TicketEvent.REOPENED

    if ticket is None:
        admin = permission_service.get_first_admin(db, company_id) if is_api else None
        ticket = Ticket(
            company_id=company_id,
            contact_id=owner_id,
            channel_id=channel_id,
            status=TicketStatus.CLOSED if is_api else TicketStatus.PENDING,
            user_id=admin.id if admin else None,
            is_group=bool(group_contact_id) or contact.is_group,
            unread_messages=unread_messages,
            value=value,
            imported_at=now if importing else None,
        )
        db.add(ticket)
        db.flush()
        event = TicketEvent.CREATED
        if admin:
            effects.add(
                "notify_ticket_assigned",
                realtime_service.notify_user,
                company_id,
                admin.id,
                "ticketAssigned",
                "INFO",
            )

    if ticket.status != TicketStatus.CLOSED:
        tracking_service.find_or_create_open_tracking(
            db,
            ticket_id=ticket.id,
            company_id=company_id,
            channel_id=ticket.channel_id,
            user_id=ticket.user_id,
        )

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("ticket_find_or_create_commit_failed company_id=%s", company_id)
        raise InternalError("Could not create ticket") from exc
    db.refresh(ticket)

    ticket_events.queue_ticket_event(effects, db, company_id, ticket, event, origin)
    effects.run()
    return ticket

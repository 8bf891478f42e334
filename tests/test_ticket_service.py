"""Ticket state machine: find-or-create, transitions, transfers, rating."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from conftest import add_member, enable, make_contact, make_user
from ticketflow.core.errors import AccessDeniedError, ConflictingTicketError, DomainValidationError
from ticketflow.db.enums import SettingKey, TicketStatus
from ticketflow.db.models import Ticket, TicketTracking
from ticketflow.schemas.ticketing import TicketUpdateData
from ticketflow.services import ticket_service, tracking_service


def _open_trackings(db, ticket_id):
    return (
        db.query(TicketTracking)
        .filter(TicketTracking.ticket_id == ticket_id, TicketTracking.finished_at.is_(None))
        .all()
    )


def _update(db, company, ticket, acting_user, **fields):
    return ticket_service.update_ticket(
        db,
        company.id,
        ticket.id,
        TicketUpdateData(**fields),
        acting_user_id=acting_user.id if acting_user else None,
    )


@pytest.fixture
def ticket(db, company, contact, channel, published):
    return ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id, unread_messages=1)


# =============================================================================
# Find or create
# =============================================================================


def test_find_or_create_creates_pending_ticket_with_open_tracking(db, ticket, published):
    assert ticket.status == TicketStatus.PENDING
    assert ticket.unread_messages == 1
    assert len(_open_trackings(db, ticket.id)) == 1
    assert "update" in published.actions("-ticket")


def test_find_or_create_returns_active_ticket(db, company, contact, channel, ticket):
    again = ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id, unread_messages=3)

    assert again.id == ticket.id
    assert again.unread_messages == 3
    assert db.query(Ticket).count() == 1
    assert len(_open_trackings(db, ticket.id)) == 1


def test_recently_closed_ticket_is_reopened(db, company, contact, channel, ticket, admin_user, agent_user):
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id)
    _update(db, company, ticket, admin_user, status=TicketStatus.CLOSED)

    reopened = ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id)

    assert reopened.id == ticket.id
    assert reopened.status == TicketStatus.PENDING
    assert reopened.user_id is None
    assert len(_open_trackings(db, ticket.id)) == 1


def test_ticket_closed_outside_window_is_not_reopened(db, company, contact, channel, ticket, admin_user):
    _update(db, company, ticket, admin_user, status=TicketStatus.CLOSED)
    db.execute(
        update(Ticket)
        .where(Ticket.id == ticket.id)
        .values(updated_at=datetime.now(timezone.utc) - timedelta(hours=3))
    )
    db.commit()

    fresh = ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id)

    assert fresh.id != ticket.id
    assert fresh.status == TicketStatus.PENDING


def test_group_ticket_is_reopened_regardless_of_age(db, company, channel, admin_user, published):
    group = make_contact(db, company, name="Grupo Vendas", is_group=True)
    participant = make_contact(db, company, name="Participante")
    first = ticket_service.find_or_create_ticket(
        db, company.id, participant.id, channel.id, group_contact_id=group.id
    )
    _update(db, company, first, admin_user, status=TicketStatus.CLOSED)
    db.execute(
        update(Ticket).where(Ticket.id == first.id).values(updated_at=datetime.now(timezone.utc) - timedelta(days=3))
    )
    db.commit()

    again = ticket_service.find_or_create_ticket(db, company.id, participant.id, channel.id, group_contact_id=group.id)

    assert again.id == first.id
    assert again.status == TicketStatus.PENDING
    assert again.is_group
    assert again.contact_id == group.id


def test_api_ticket_is_closed_and_assigned_to_first_admin(db, company, contact, channel, admin_user, published):
    created = ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id, is_api=True)

    assert created.status == TicketStatus.CLOSED
    assert created.user_id == admin_user.id
    assert _open_trackings(db, created.id) == []
    assert (company.id, admin_user.id, "ticketAssigned") in published.notices


# =============================================================================
# Transitions
# =============================================================================


def test_accepting_ticket_starts_tracking(db, company, ticket, admin_user, agent_user):
    result = _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id)

    assert result.old_status == TicketStatus.PENDING
    assert result.ticket.status == TicketStatus.OPEN
    tracking = tracking_service.get_open_tracking(db, ticket.id)
    assert tracking.user_id == agent_user.id
    assert tracking.started_at is not None


def test_close_sends_completion_and_finishes_tracking(
    db, company, ticket, admin_user, agent_user, channel, contact, sent_messages
):
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id)

    result = _update(db, company, ticket, agent_user, status=TicketStatus.CLOSED)

    assert result.ticket.status == TicketStatus.CLOSED
    assert _open_trackings(db, ticket.id) == []
    finished = tracking_service.list_ticket_trackings(db, company.id, ticket.id)[-1]
    assert finished.user_id == agent_user.id
    assert finished.finished_at is not None
    assert [m.body for m in sent_messages] == ["\u200eObrigado pelo contato!"]
    assert sent_messages[0].address == contact.address


def test_close_without_farewell_sends_nothing(db, company, ticket, admin_user, sent_messages):
    _update(db, company, ticket, admin_user, status=TicketStatus.CLOSED, send_farewell_message=False)
    assert sent_messages == []


def test_completion_message_is_deduplicated_per_ticket(
    db, company, contact, channel, ticket, admin_user, sent_messages
):
    _update(db, company, ticket, admin_user, status=TicketStatus.CLOSED)
    ticket_service.find_or_create_ticket(db, company.id, contact.id, channel.id)
    _update(db, company, ticket, admin_user, status=TicketStatus.CLOSED)

    assert len(sent_messages) == 1


def test_closing_clears_bot_and_integration_state(db, company, ticket, admin_user):
    _update(db, company, ticket, admin_user, chatbot=True, use_integration=True)

    result = _update(db, company, ticket, admin_user, status=TicketStatus.CLOSED)

    assert result.ticket.chatbot is False
    assert result.ticket.use_integration is False
    assert result.ticket.integration_id is None


def test_returning_to_pending_requeues(db, company, ticket, admin_user, agent_user, queue):
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)

    _update(db, company, ticket, admin_user, status=TicketStatus.PENDING, user_id=None)

    tracking = tracking_service.get_open_tracking(db, ticket.id)
    assert tracking.queued_at is not None
    assert tracking.started_at is None
    assert tracking.user_id is None
    assert tracking.queue_id == queue.id


# =============================================================================
# Rating
# =============================================================================


@pytest.fixture
def rating_enabled(db, company, channel):
    channel.rating_message = "Como foi nosso atendimento?"
    db.commit()
    enable(db, company, SettingKey.USER_RATING)


def test_close_requests_rating_then_rating_closes(
    db, company, ticket, admin_user, agent_user, rating_enabled, sent_messages
):
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id)

    result = _update(db, company, ticket, agent_user, status=TicketStatus.CLOSED)

    assert result.ticket.status == TicketStatus.OPEN
    tracking = tracking_service.get_open_tracking(db, ticket.id)
    assert tracking.rating_at is not None
    assert sent_messages[0].body.startswith("\u200eComo foi nosso atendimento?")
    assert "*5* - _Muito Satisfeito_" in sent_messages[0].body

    rated = ticket_service.register_rating(db, company.id, ticket.id, 4)

    assert rated.status == TicketStatus.CLOSED
    db.refresh(tracking)
    assert tracking.rating == 4
    assert tracking.rated is True
    assert tracking.finished_at is not None
    assert sent_messages[-1].body == "\u200eObrigado pelo contato!"


def test_rating_without_pending_request_is_rejected(db, company, ticket):
    with pytest.raises(DomainValidationError):
        ticket_service.register_rating(db, company.id, ticket.id, 3)


def test_rating_out_of_range_is_rejected(db, company, ticket):
    with pytest.raises(DomainValidationError):
        ticket_service.register_rating(db, company.id, ticket.id, 6)


def test_accepting_again_voids_pending_rating(db, company, ticket, admin_user, agent_user, other_agent, rating_enabled):
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id)
    _update(db, company, ticket, agent_user, status=TicketStatus.CLOSED)

    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=other_agent.id)

    tracking = tracking_service.get_open_tracking(db, ticket.id)
    assert tracking.rating_at is None
    assert tracking.user_id == other_agent.id


# =============================================================================
# Access and conflicts
# =============================================================================


def test_transfer_onto_channel_with_conflicting_ticket_is_refused(
    db, company, contact, channel, second_channel, ticket, admin_user, agent_user, other_agent, published
):
    busy = ticket_service.find_or_create_ticket(db, company.id, contact.id, second_channel.id)
    _update(db, company, busy, admin_user, status=TicketStatus.OPEN, user_id=other_agent.id)

    with pytest.raises(ConflictingTicketError) as exc_info:
        _update(db, company, ticket, agent_user, channel_id=second_channel.id, is_transfer=True)
    db.rollback()

    assert exc_info.value.ticket_id == busy.id
    assert exc_info.value.agent_name == other_agent.name
    assert exc_info.value.to_dict()["code"] == "ERR_CONFLICTING_TICKET"
    assert published.notices[-1][1] == agent_user.id
    assert db.get(Ticket, ticket.id).channel_id == channel.id


def test_conflict_is_allowed_for_admin(db, company, contact, second_channel, ticket, admin_user, other_agent):
    busy = ticket_service.find_or_create_ticket(db, company.id, contact.id, second_channel.id)
    _update(db, company, busy, admin_user, status=TicketStatus.OPEN, user_id=other_agent.id)

    result = _update(db, company, ticket, admin_user, channel_id=second_channel.id, is_transfer=True)

    assert result.ticket.channel_id == second_channel.id


def test_conflict_is_allowed_for_its_own_agent(db, company, contact, second_channel, ticket, admin_user, other_agent):
    busy = ticket_service.find_or_create_ticket(db, company.id, contact.id, second_channel.id)
    _update(db, company, busy, admin_user, status=TicketStatus.OPEN, user_id=other_agent.id)

    result = _update(db, company, ticket, other_agent, channel_id=second_channel.id, is_transfer=True)

    assert result.ticket.channel_id == second_channel.id


def test_agent_bound_to_other_channel_cannot_receive_ticket(
    db, company, ticket, second_channel, agent_user, admin_user
):
    bound = make_user(db, company, name="Bound Agent", channel_id=second_channel.id)

    with pytest.raises(AccessDeniedError):
        _update(db, company, ticket, agent_user, status=TicketStatus.OPEN, user_id=bound.id)
    db.rollback()
    assert db.get(Ticket, ticket.id).user_id is None

    result = _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=bound.id)
    assert result.ticket.user_id == bound.id


def test_accept_requires_queue_membership_when_enabled(db, company, ticket, queue, agent_user, other_agent):
    enable(db, company, SettingKey.REQUIRE_QUEUE_ON_ACCEPT)

    with pytest.raises(AccessDeniedError):
        _update(db, company, ticket, other_agent, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)
    db.rollback()

    add_member(db, queue, agent_user)
    result = _update(db, company, ticket, other_agent, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)
    assert result.ticket.status == TicketStatus.OPEN


# =============================================================================
# Transfers
# =============================================================================


def test_queue_transfer_messages_contact(
    db, company, ticket, admin_user, agent_user, queue, sales_queue, contact, sent_messages
):
    enable(db, company, SettingKey.SEND_MSG_TRANSF_TICKET)
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)

    _update(db, company, ticket, admin_user, queue_id=sales_queue.id, is_transfer=True)

    assert len(sent_messages) == 1
    assert sent_messages[0].address == contact.address
    assert "departamento *Vendas*" in sent_messages[0].body


def test_queue_and_agent_transfer_notifies_new_agent(
    db, company, ticket, admin_user, agent_user, other_agent, queue, sales_queue, sent_messages
):
    enable(db, company, SettingKey.SEND_MSG_TRANSF_TICKET)
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)

    _update(db, company, ticket, admin_user, queue_id=sales_queue.id, user_id=other_agent.id, is_transfer=True)

    addresses = [m.address for m in sent_messages]
    assert other_agent.number in addresses
    assert any("anteriormente atendido por *Agent Ana*" in m.body for m in sent_messages)


def test_transfer_into_new_ticket_queue_replaces_ticket(
    db, company, ticket, admin_user, agent_user, queue, sales_queue
):
    sales_queue.new_ticket_on_transfer = True
    db.commit()
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)

    result = _update(db, company, ticket, admin_user, queue_id=sales_queue.id, is_transfer=True)

    assert result.replaced_ticket.id == ticket.id
    assert result.replaced_ticket.status == TicketStatus.CLOSED
    assert result.ticket.id != ticket.id
    assert result.ticket.status == TicketStatus.PENDING
    assert result.ticket.queue_id == sales_queue.id
    assert _open_trackings(db, ticket.id) == []
    assert len(_open_trackings(db, result.ticket.id)) == 1


def test_pending_queue_change_notifies_opted_in_members(
    db, company, ticket, admin_user, queue, channel, sent_messages
):
    watcher = make_user(db, company, name="Watcher", number="5511900000000", notify_new_ticket=True)
    add_member(db, queue, watcher)

    _update(db, company, ticket, admin_user, queue_id=queue.id)

    assert [m.address for m in sent_messages] == ["5511900000000"]
    assert f"/tickets/{ticket.id}" in sent_messages[0].body


def test_reopen_clears_assignment_unless_sent(db, company, ticket, admin_user, agent_user, queue):
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)
    _update(db, company, ticket, admin_user, status=TicketStatus.CLOSED)

    result = _update(db, company, ticket, admin_user, status=TicketStatus.PENDING)

    assert result.ticket.user_id is None
    assert result.ticket.queue_id is None
    assert len(_open_trackings(db, ticket.id)) == 1


def test_agent_and_queue_transfer_restamps_queue_time(
    db, company, ticket, admin_user, agent_user, other_agent, queue, sales_queue
):
    _update(db, company, ticket, admin_user, status=TicketStatus.OPEN, user_id=agent_user.id, queue_id=queue.id)
    tracking = tracking_service.get_open_tracking(db, ticket.id)
    tracking.queued_at = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()
    before = tracking.queued_at

    _update(db, company, ticket, admin_user, user_id=other_agent.id, queue_id=sales_queue.id, is_transfer=True)

    db.refresh(tracking)
    assert tracking.user_id == other_agent.id
    assert tracking.queue_id == sales_queue.id
    assert tracking.queued_at > before

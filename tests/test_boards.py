"""Board management and the single-default-board rule."""

import pytest

from ticketflow.db.enums import SettingKey
from ticketflow.db.models import KanbanLane
from ticketflow.schemas.kanban import BoardCreate, BoardUpdate
from ticketflow.services import board_service, settings_service
from ticketflow.services.board_service import BoardDeleteForbiddenError, BoardNotFoundError


def _defaults(db, company):
    return [b.id for b in board_service.list_boards(db, company.id, include_inactive=True) if b.is_default]


def test_creating_default_board_demotes_previous(db, company, published):
    first = board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    second = board_service.create_board(db, company.id, BoardCreate(name="B", is_default=True))

    assert _defaults(db, company) == [second.id]
    db.refresh(first)
    assert first.is_default is False


def test_promoting_existing_board_keeps_one_default(db, company, published):
    first = board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    second = board_service.create_board(db, company.id, BoardCreate(name="B"))

    board_service.update_board(db, company.id, second.id, BoardUpdate(is_default=True))

    assert _defaults(db, company) == [second.id]
    assert board_service.get_default_board(db, company.id).id == second.id
    db.refresh(first)
    assert not first.is_default


def test_default_is_per_company(db, company, other_company, published):
    mine = board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    board_service.create_board(db, other_company.id, BoardCreate(name="B", is_default=True))

    db.refresh(mine)
    assert mine.is_default


def test_default_board_cannot_be_deleted(db, company, published):
    board = board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    board_service.create_board(db, company.id, BoardCreate(name="B"))

    with pytest.raises(BoardDeleteForbiddenError):
        board_service.delete_board(db, company.id, board.id)


def test_delete_board_cascades_lanes(db, company, published):
    board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    extra = board_service.create_board(db, company.id, BoardCreate(name="B"))
    extra_id = extra.id

    board_service.delete_board(db, company.id, extra_id)

    assert db.query(KanbanLane).filter(KanbanLane.board_id == extra_id).count() == 0
    with pytest.raises(BoardNotFoundError):
        board_service.require_board(db, company.id, extra_id)


def test_get_or_create_default_board_creates_seeded_board(db, company, published):
    board = board_service.get_or_create_default_board(db, company.id)

    assert board.is_default
    assert board.name == board_service.DEFAULT_BOARD_NAME
    assert [lane.name for lane in board.lanes] == ["Pendente", "Em Atendimento", "Concluído"]
    assert board_service.get_or_create_default_board(db, company.id).id == board.id


def test_get_or_create_default_board_honours_setting(db, company, published):
    board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    configured = board_service.create_board(db, company.id, BoardCreate(name="B"))
    settings_service.set_setting(db, company.id, SettingKey.KANBAN_DEFAULT_BOARD_ID, str(configured.id))
    db.commit()

    assert board_service.get_or_create_default_board(db, company.id).id == configured.id


def test_invalid_board_setting_falls_back_to_default(db, company, published):
    default = board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    settings_service.set_setting(db, company.id, SettingKey.KANBAN_DEFAULT_BOARD_ID, "not-a-uuid")
    db.commit()

    assert board_service.get_or_create_default_board(db, company.id).id == default.id


def test_delete_board_keeps_ticket_cards_archived_on_default(db, company, contact, channel, published):
    from ticketflow.db.enums import TicketStatus
    from ticketflow.db.models import KanbanCard, Ticket
    from ticketflow.schemas.kanban import CardCreate
    from ticketflow.services import card_service

    default = board_service.create_board(db, company.id, BoardCreate(name="A", is_default=True))
    extra = board_service.create_board(db, company.id, BoardCreate(name="B"))
    ticket = Ticket(company_id=company.id, contact_id=contact.id, channel_id=channel.id, status=TicketStatus.OPEN)
    db.add(ticket)
    db.commit()
    linked = card_service.create_card(db, company.id, extra.lanes[1].id, CardCreate(ticket_id=ticket.id))
    plain = card_service.create_card(db, company.id, extra.lanes[0].id, CardCreate(title="Solto"))
    linked_id, plain_id = linked.id, plain.id

    board_service.delete_board(db, company.id, extra.id)

    kept = db.get(KanbanCard, linked_id)
    assert kept is not None
    assert kept.is_archived
    assert kept.lane_id == default.lanes[0].id
    assert db.get(KanbanCard, plain_id) is None

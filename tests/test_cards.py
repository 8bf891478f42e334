"""Card engine: lane limits, moves, time-in-lane capture and archival."""

from datetime import datetime, timedelta, timezone

import pytest

from ticketflow.core.errors import DomainValidationError, LimitReachedError, NotFoundError
from ticketflow.db.enums import MetricType
from ticketflow.db.models import KanbanCard, KanbanMetric
from ticketflow.schemas.kanban import BoardCreate, CardCreate, CardUpdate, LaneUpdate
from ticketflow.services import board_service, card_service, lane_service
from ticketflow.services.card_service import CrossBoardMoveError, MOVED_AT_KEY, PREVIOUS_LANE_KEY


@pytest.fixture
def board(db, company, published):
    return board_service.create_board(db, company.id, BoardCreate(name="Suporte", is_default=True))


@pytest.fixture
def lanes(db, company, board):
    return lane_service.list_lanes(db, company.id, board.id)


def test_create_card_sets_started_at(db, company, lanes, published):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="  Pedido 42 "))

    assert card.title == "Pedido 42"
    assert card.started_at is not None
    assert card.time_in_lane == 0
    assert "card-created" in published.actions("-kanban")


def test_card_title_falls_back_to_contact_name(db, company, lanes, contact):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(contact_id=contact.id))
    assert card.title == contact.name


def test_card_without_title_or_contact_is_rejected(db, company, lanes):
    with pytest.raises(DomainValidationError):
        card_service.create_card(db, company.id, lanes[0].id, CardCreate())


def test_card_with_foreign_contact_is_not_found(db, company, other_company, lanes):
    from conftest import make_contact

    stranger = make_contact(db, other_company, name="Estranho")
    with pytest.raises(NotFoundError):
        card_service.create_card(db, company.id, lanes[0].id, CardCreate(contact_id=stranger.id))


def test_lane_limit_blocks_create(db, company, lanes):
    lane_service.update_lane(db, company.id, lanes[0].id, LaneUpdate(card_limit=1))
    card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Um"))

    with pytest.raises(LimitReachedError):
        card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Dois"))


def test_archived_cards_do_not_count_against_limit(db, company, lanes):
    lane_service.update_lane(db, company.id, lanes[0].id, LaneUpdate(card_limit=1))
    first = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Um"))
    first.is_archived = True
    db.commit()

    card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Dois"))


def test_zero_limit_is_unlimited(db, company, lanes):
    for i in range(5):
        card_service.create_card(db, company.id, lanes[0].id, CardCreate(title=f"Card {i}"))
    assert lane_service.count_active_cards(db, lanes[0].id) == 5


def test_move_captures_time_in_lane(db, company, lanes, published):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))
    card.started_at = datetime.now(timezone.utc) - timedelta(minutes=10)
    db.commit()

    moved = card_service.move_card(db, company.id, card.id, lanes[1].id)

    assert moved.lane_id == lanes[1].id
    assert 600 <= moved.time_in_lane < 660
    assert moved.card_metadata[PREVIOUS_LANE_KEY] == str(lanes[0].id)
    assert MOVED_AT_KEY in moved.card_metadata
    assert moved.started_at > datetime.now(timezone.utc) - timedelta(minutes=1)
    assert "card-moved" in published.actions("-kanban")


def test_move_records_time_in_lane_metric(db, company, lanes, admin_user):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))

    card_service.move_card(db, company.id, card.id, lanes[1].id, acting_user_id=admin_user.id)

    rows = db.query(KanbanMetric).filter(KanbanMetric.metric_type == MetricType.TIME_IN_LANE).all()
    assert len(rows) == 1
    assert rows[0].lane_id == lanes[0].id
    assert rows[0].card_id == card.id
    assert rows[0].user_id == admin_user.id


def test_move_to_same_lane_is_noop(db, company, lanes):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))
    started = card.started_at

    moved = card_service.move_card(db, company.id, card.id, lanes[0].id)

    assert moved.started_at == started
    assert db.query(KanbanMetric).count() == 0


def test_move_into_full_lane_is_refused(db, company, lanes):
    lane_service.update_lane(db, company.id, lanes[1].id, LaneUpdate(card_limit=1))
    card_service.create_card(db, company.id, lanes[1].id, CardCreate(title="Ocupado"))
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))

    with pytest.raises(LimitReachedError):
        card_service.move_card(db, company.id, card.id, lanes[1].id)
    db.rollback()

    assert db.get(KanbanCard, card.id).lane_id == lanes[0].id


def test_move_across_boards_is_refused(db, company, lanes):
    other = board_service.create_board(db, company.id, BoardCreate(name="Outro"))
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))

    with pytest.raises(CrossBoardMoveError):
        card_service.move_card(db, company.id, card.id, other.lanes[0].id)


def test_update_card_unblock_clears_reason(db, company, lanes):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))
    card_service.update_card(db, company.id, card.id, CardUpdate(is_blocked=True, block_reason="Sem estoque"))

    updated = card_service.update_card(db, company.id, card.id, CardUpdate(is_blocked=False))

    assert updated.is_blocked is False
    assert updated.block_reason is None


def test_delete_plain_card_removes_it(db, company, lanes):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))
    card_id = card.id

    assert card_service.delete_card(db, company.id, card_id) is True
    assert card_service.get_card(db, company.id, card_id) is None


def test_card_of_another_company_is_not_found(db, company, other_company, lanes):
    card = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido"))

    with pytest.raises(NotFoundError):
        card_service.require_card(db, other_company.id, card.id)


def test_list_cards_filters_archived_and_search(db, company, lanes):
    card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido azul", sku="AZ-1"))
    archived = card_service.create_card(db, company.id, lanes[0].id, CardCreate(title="Pedido velho"))
    archived.is_archived = True
    db.commit()

    assert [c.title for c in card_service.list_cards(db, company.id, search="pedido")] == ["Pedido azul"]
    assert len(card_service.list_cards(db, company.id, include_archived=True)) == 2
    assert [c.title for c in card_service.list_cards(db, company.id, search="AZ-")] == ["Pedido azul"]


def test_search_cards_by_tags_priority_and_due_window(db, company, lanes):
    now = datetime.now(timezone.utc)
    urgent = card_service.create_card(
        db,
        company.id,
        lanes[0].id,
        CardCreate(title="Troca", tags=["vip", "troca"], priority=2, due_date=now + timedelta(days=1)),
    )
    card_service.create_card(
        db, company.id, lanes[0].id, CardCreate(title="Duvida", tags=["vip"], priority=0)
    )
    card_service.create_card(
        db,
        company.id,
        lanes[1].id,
        CardCreate(title="Entrega", tags=["troca"], priority=1, due_date=now + timedelta(days=10)),
    )

    cards, total = card_service.search_cards(db, company.id, tags=["vip", "troca"])
    assert [c.id for c in cards] == [urgent.id]
    assert total == 1

    cards, total = card_service.search_cards(db, company.id, priorities=[1, 2])
    assert {c.title for c in cards} == {"Troca", "Entrega"}
    assert total == 2

    cards, _ = card_service.search_cards(
        db, company.id, due_from=now, due_to=(now + timedelta(days=2)).replace(tzinfo=None)
    )
    assert [c.title for c in cards] == ["Troca"]


def test_search_cards_total_ignores_paging(db, company, lanes):
    for index in range(3):
        card_service.create_card(db, company.id, lanes[0].id, CardCreate(title=f"Pedido {index}"))

    cards, total = card_service.search_cards(db, company.id, limit=2)
    assert len(cards) == 2
    assert total == 3

    cards, total = card_service.search_cards(db, company.id, limit=2, offset=2)
    assert len(cards) == 1
    assert total == 3

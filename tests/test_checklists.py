"""Checklist templates and items."""

import pytest

from ticketflow.core.errors import InvalidPositionError, SetMismatchError
from ticketflow.schemas.kanban import (
    BoardCreate,
    CardCreate,
    ChecklistItemCreate,
    ChecklistItemUpdate,
    ChecklistTemplateCreate,
    ChecklistTemplateItem,
)
from ticketflow.services import board_service, card_service, checklist_service
from ticketflow.services.checklist_service import ChecklistItemNotFoundError, TemplateNotFoundError


@pytest.fixture
def card(db, company, published):
    board = board_service.create_board(db, company.id, BoardCreate(name="Suporte", is_default=True))
    return card_service.create_card(db, company.id, board.lanes[0].id, CardCreate(title="Pedido"))


@pytest.fixture
def template(db, company, admin_user):
    return checklist_service.create_template(
        db,
        company.id,
        ChecklistTemplateCreate(
            name="Onboarding",
            items_template=[
                ChecklistTemplateItem(description="Conferir documentos", required=True),
                ChecklistTemplateItem(description="Enviar contrato"),
            ],
        ),
        created_by_id=admin_user.id,
    )


def _descriptions(db, company, card):
    return [item.description for item in checklist_service.list_items(db, company.id, card.id)]


def test_apply_template_appends_items_in_order(db, company, card, template):
    checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description="Ligar"))

    items = checklist_service.apply_template(db, company.id, card.id, template.id)

    assert [i.description for i in items] == ["Ligar", "Conferir documentos", "Enviar contrato"]
    assert [i.position for i in items] == [0, 1, 2]
    assert items[1].required is True
    assert items[1].template_id == template.id


def test_create_item_at_position_shifts_others(db, company, card):
    checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description="A"))
    checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description="B"))
    checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description="C", position=0))

    assert _descriptions(db, company, card) == ["C", "A", "B"]


def test_check_stamps_user_and_uncheck_clears(db, company, card, agent_user):
    item = checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description="A"))

    checked = checklist_service.set_checked(db, company.id, item.id, True, user_id=agent_user.id)
    assert checked.checked
    assert checked.checked_by_id == agent_user.id
    assert checked.checked_at is not None

    unchecked = checklist_service.set_checked(db, company.id, item.id, False)
    assert not unchecked.checked
    assert unchecked.checked_by_id is None
    assert unchecked.checked_at is None


def test_update_item_checked_flag_goes_through_stamping(db, company, card, agent_user):
    item = checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description="A"))

    updated = checklist_service.update_item(
        db, company.id, item.id, ChecklistItemUpdate(checked=True, description="A2"), user_id=agent_user.id
    )

    assert updated.description == "A2"
    assert updated.checked_by_id == agent_user.id


def test_delete_item_keeps_positions_dense(db, company, card):
    items = [
        checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description=d))
        for d in ("A", "B", "C")
    ]

    checklist_service.delete_item(db, company.id, items[0].id)

    remaining = checklist_service.list_items(db, company.id, card.id)
    assert [(i.description, i.position) for i in remaining] == [("B", 0), ("C", 1)]


def test_move_and_reorder_items(db, company, card):
    a, b, c = (
        checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description=d))
        for d in ("A", "B", "C")
    )

    checklist_service.move_item(db, company.id, c.id, 0)
    assert _descriptions(db, company, card) == ["C", "A", "B"]

    checklist_service.reorder_items(db, company.id, card.id, [(a.id, 0), (b.id, 1), (c.id, 2)])
    assert _descriptions(db, company, card) == ["A", "B", "C"]

    with pytest.raises(InvalidPositionError):
        checklist_service.move_item(db, company.id, a.id, 5)
    db.rollback()

    with pytest.raises(SetMismatchError):
        checklist_service.reorder_items(db, company.id, card.id, [(a.id, 0)])


def test_delete_template_keeps_applied_items(db, company, card, template):
    template_id = template.id
    checklist_service.apply_template(db, company.id, card.id, template_id)

    checklist_service.delete_template(db, company.id, template_id)

    items = checklist_service.list_items(db, company.id, card.id)
    assert len(items) == 2
    assert all(item.template_id is None for item in items)
    with pytest.raises(TemplateNotFoundError):
        checklist_service.require_template(db, company.id, template_id)


def test_items_of_another_company_are_not_found(db, company, other_company, card):
    item = checklist_service.create_item(db, company.id, card.id, ChecklistItemCreate(description="A"))

    with pytest.raises(ChecklistItemNotFoundError):
        checklist_service.set_checked(db, other_company.id, item.id, True)

"""Checklist templates and per-card checklist items."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.core.errors import NotFoundError
from ticketflow.db.models import KanbanChecklistItem, KanbanChecklistTemplate
from ticketflow.schemas.kanban import (
    ChecklistItemCreate,
    ChecklistItemUpdate,
    ChecklistTemplateCreate,
    ChecklistTemplateUpdate,
)
from ticketflow.services import card_service, position_service
from ticketflow.services.position_service import PositionScope

logger = logging.getLogger(__name__)


class TemplateNotFoundError(NotFoundError):
    """Checklist template not found."""


class ChecklistItemNotFoundError(NotFoundError):
    """Checklist item not found."""


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _scope(card_id: UUID) -> PositionScope:
    return PositionScope(model=KanbanChecklistItem, parent_attr="card_id", parent_id=card_id)


# =============================================================================
# Templates
# =============================================================================


def list_templates(db: Session, company_id: UUID, include_inactive: bool = False) -> list[KanbanChecklistTemplate]:
    query = select(KanbanChecklistTemplate).where(KanbanChecklistTemplate.company_id == company_id)
    if not include_inactive:
        query = query.where(KanbanChecklistTemplate.active.is_(True))
    return list(db.execute(query.order_by(KanbanChecklistTemplate.name)).scalars().all())


def require_template(db: Session, company_id: UUID, template_id: UUID) -> KanbanChecklistTemplate:
    template = db.execute(
        select(KanbanChecklistTemplate).where(
            KanbanChecklistTemplate.id == template_id,
            KanbanChecklistTemplate.company_id == company_id,
        )
    ).scalar_one_or_none()
    if not template:
        raise TemplateNotFoundError(f"Checklist template {template_id} not found")
    return template


def create_template(
    db: Session,
    company_id: UUID,
    data: ChecklistTemplateCreate,
    created_by_id: UUID | None = None,
) -> KanbanChecklistTemplate:
    template = KanbanChecklistTemplate(
        company_id=company_id,
        name=data.name.strip(),
        description=data.description,
        items_template=[item.model_dump() for item in data.items_template],
        created_by_id=created_by_id,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def update_template(
    db: Session,
    company_id: UUID,
    template_id: UUID,
    data: ChecklistTemplateUpdate,
) -> KanbanChecklistTemplate:
    template = require_template(db, company_id, template_id)
    fields = data.model_dump(exclude_unset=True)
    if fields.get("name"):
        template.name = fields["name"].strip()
    if "description" in fields:
        template.description = fields["description"]
    if fields.get("items_template") is not None:
        template.items_template = [dict(item) for item in fields["items_template"]]
    if fields.get("active") is not None:
        template.active = fields["active"]
    db.commit()
    db.refresh(template)
    return template


def delete_template(db: Session, company_id: UUID, template_id: UUID) -> None:
    """Delete a template; items already applied to cards are kept."""
    template = require_template(db, company_id, template_id)
    for item in db.execute(
        select(KanbanChecklistItem).where(KanbanChecklistItem.template_id == template.id)
    ).scalars():
        item.template_id = None
    db.delete(template)
    db.commit()


def apply_template(
    db: Session,
    company_id: UUID,
    card_id: UUID,
    template_id: UUID,
) -> list[KanbanChecklistItem]:
    """Copy the template items onto the card after its existing items."""
    card = card_service.require_card(db, company_id, card_id)
    template = require_template(db, company_id, template_id)

    rows = [
        KanbanChecklistItem(
            template_id=template.id,
            description=entry.get("description", "").strip(),
            required=bool(entry.get("required", False)),
        )
        for entry in template.items_template or []
        if entry.get("description")
    ]
    items = position_service.insert_many(db, _scope(card.id), rows)
    db.commit()
    logger.info(
        "kanban_checklist_applied card_id=%s template_id=%s items=%s",
        card.id,
        template.id,
        len(items),
    )
    return list_items(db, company_id, card.id)


# =============================================================================
# Items
# =============================================================================


def list_items(db: Session, company_id: UUID, card_id: UUID) -> list[KanbanChecklistItem]:
    card_service.require_card(db, company_id, card_id)
    return list(
        db.execute(
            select(KanbanChecklistItem)
            .where(KanbanChecklistItem.card_id == card_id)
            .order_by(KanbanChecklistItem.position)
        ).scalars().all()
    )


def require_item(db: Session, company_id: UUID, item_id: UUID) -> KanbanChecklistItem:
    item = db.get(KanbanChecklistItem, item_id)
    # Company scoping goes through the owning card.
    if not item or not card_service.get_card(db, company_id, item.card_id):
        raise ChecklistItemNotFoundError(f"Checklist item {item_id} not found")
    return item


def create_item(
    db: Session,
    company_id: UUID,
    card_id: UUID,
    data: ChecklistItemCreate,
) -> KanbanChecklistItem:
    card = card_service.require_card(db, company_id, card_id)
    item = KanbanChecklistItem(
        description=data.description.strip(),
        required=data.required,
        assigned_user_id=data.assigned_user_id,
    )
    position_service.insert_at(db, _scope(card.id), item, data.position)
    db.commit()
    db.refresh(item)
    return item


def set_checked(
    db: Session,
    company_id: UUID,
    item_id: UUID,
    checked: bool,
    user_id: UUID | None = None,
) -> KanbanChecklistItem:
    """Check stamps who/when; uncheck clears both."""
    item = require_item(db, company_id, item_id)
    _apply_checked(item, checked, user_id)
    db.commit()
    db.refresh(item)
    return item


def _apply_checked(item: KanbanChecklistItem, checked: bool, user_id: UUID | None) -> None:
    item.checked = checked
    if checked:
        item.checked_at = _now_utc()
        item.checked_by_id = user_id
    else:
        item.checked_at = None
        item.checked_by_id = None


def update_item(
    db: Session,
    company_id: UUID,
    item_id: UUID,
    data: ChecklistItemUpdate,
    user_id: UUID | None = None,
) -> KanbanChecklistItem:
    item = require_item(db, company_id, item_id)
    fields = data.model_dump(exclude_unset=True)
    if fields.get("description"):
        item.description = fields["description"].strip()
    if fields.get("required") is not None:
        item.required = fields["required"]
    if "assigned_user_id" in fields:
        item.assigned_user_id = fields["assigned_user_id"]
    if fields.get("checked") is not None and fields["checked"] != item.checked:
        _apply_checked(item, fields["checked"], user_id)
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, company_id: UUID, item_id: UUID) -> None:
    item = require_item(db, company_id, item_id)
    position_service.remove(db, _scope(item.card_id), item)
    db.commit()


def move_item(db: Session, company_id: UUID, item_id: UUID, to_position: int) -> KanbanChecklistItem:
    item = require_item(db, company_id, item_id)
    position_service.move(db, _scope(item.card_id), item, to_position)
    db.commit()
    db.refresh(item)
    return item


def reorder_items(
    db: Session,
    company_id: UUID,
    card_id: UUID,
    updates: list[tuple[UUID, int]],
) -> list[KanbanChecklistItem]:
    card_service.require_card(db, company_id, card_id)
    items = position_service.reorder(db, _scope(card_id), updates)
    db.commit()
    return items

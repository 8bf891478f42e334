"""Dense ordering of siblings (lanes within a board, checklist items within a card).

Positions inside a scope are always exactly ``0..N-1``. Every operation
locks the full sibling set first, validates, and only then shifts rows, so a
rejected request leaves positions untouched. Callers own the commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.core.errors import InvalidPositionError, SetMismatchError


@dataclass(frozen=True)
class PositionScope:
    """A parent scope: ``model.<parent_attr> == parent_id``."""

    model: Any
    parent_attr: str
    parent_id: UUID

    @property
    def label(self) -> str:
        return self.model.__tablename__


def lock_siblings(db: Session, scope: PositionScope) -> list[Any]:
    """Load every row of the scope ordered by position, row-locked."""
    model = scope.model
    return list(
        db.execute(
            select(model)
            .where(getattr(model, scope.parent_attr) == scope.parent_id)
            .order_by(model.position, model.created_at)
            .with_for_update()
        ).scalars().all()
    )


def insert_at(db: Session, scope: PositionScope, row: Any, position: int | None = None) -> Any:
    """
    Insert ``row`` into the scope.

    Explicit position P shifts siblings at ``>= P`` up by one; no position
    (or one past the end) appends at ``max + 1``.
    """
    if position is not None and position < 0:
        raise InvalidPositionError(f"Position {position} is out of range")

    siblings = lock_siblings(db, scope)
    append_at = max((s.position for s in siblings), default=-1) + 1
    if position is None or position >= append_at:
        position = append_at
    else:
        for sibling in siblings:
            if sibling.position >= position:
                sibling.position += 1

    setattr(row, scope.parent_attr, scope.parent_id)
    row.position = position
    db.add(row)
    db.flush()
    return row


def insert_many(db: Session, scope: PositionScope, rows: Iterable[Any]) -> list[Any]:
    """Append several rows in order after the existing siblings."""
    siblings = lock_siblings(db, scope)
    next_position = max((s.position for s in siblings), default=-1) + 1
    inserted = []
    for row in rows:
        setattr(row, scope.parent_attr, scope.parent_id)
        row.position = next_position
        next_position += 1
        db.add(row)
        inserted.append(row)
    db.flush()
    return inserted


def remove(db: Session, scope: PositionScope, row: Any) -> None:
    """Delete ``row`` and close the gap (siblings at ``> P`` shift down)."""
    siblings = lock_siblings(db, scope)
    removed_position = row.position
    db.delete(row)
    for sibling in siblings:
        if sibling.id != row.id and sibling.position > removed_position:
            sibling.position -= 1
    db.flush()


def move(db: Session, scope: PositionScope, row: Any, to_position: int) -> Any:
    """Move ``row`` from its position A to B, shifting the rows in between."""
    siblings = lock_siblings(db, scope)
    if not 0 <= to_position <= len(siblings) - 1:
        raise InvalidPositionError(
            f"Position {to_position} is out of range for {len(siblings)} {scope.label}"
        )

    from_position = row.position
    if from_position == to_position:
        return row

    for sibling in siblings:
        if sibling.id == row.id:
            continue
        if to_position > from_position and from_position < sibling.position <= to_position:
            sibling.position -= 1
        elif to_position < from_position and to_position <= sibling.position < from_position:
            sibling.position += 1

    row.position = to_position
    db.flush()
    return row


def reorder(db: Session, scope: PositionScope, updates: list[tuple[UUID, int]]) -> list[Any]:
    """
    Apply a full ``{id: position}`` permutation for the scope.

    The supplied ids must be exactly the scope's ids and the positions a
    permutation of ``0..N-1``; otherwise nothing is written.
    """
    siblings = lock_siblings(db, scope)
    by_id = {sibling.id: sibling for sibling in siblings}
    supplied_ids = [row_id for row_id, _ in updates]

    if len(updates) != len(siblings) or set(supplied_ids) != set(by_id) or len(set(supplied_ids)) != len(supplied_ids):
        raise SetMismatchError(
            f"Reorder must include every {scope.label} row exactly once "
            f"(expected {len(siblings)}, got {len(updates)})"
        )

    positions = sorted(position for _, position in updates)
    if positions != list(range(len(siblings))):
        raise InvalidPositionError("Positions must be a permutation of 0..N-1")

    for row_id, position in updates:
        by_id[row_id].position = position
    db.flush()
    return sorted(siblings, key=lambda s: s.position)

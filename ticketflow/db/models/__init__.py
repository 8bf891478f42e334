"""SQLAlchemy ORM models."""

from ticketflow.db.models.companies import Company, Setting, User
from ticketflow.db.models.contacts import Channel, Contact
from ticketflow.db.models.kanban import (
    KanbanBoard,
    KanbanCard,
    KanbanChecklistItem,
    KanbanChecklistTemplate,
    KanbanLane,
    KanbanMetric,
)
from ticketflow.db.models.queues import Queue, QueueMember
from ticketflow.db.models.ticketing import Ticket, TicketTracking

__all__ = [
    "Channel",
    "Company",
    "Contact",
    "KanbanBoard",
    "KanbanCard",
    "KanbanChecklistItem",
    "KanbanChecklistTemplate",
    "KanbanLane",
    "KanbanMetric",
    "Queue",
    "QueueMember",
    "Setting",
    "Ticket",
    "TicketTracking",
    "User",
]

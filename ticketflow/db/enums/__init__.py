"""Enum definitions for application constants."""

from ticketflow.db.enums.auth import Profile
from ticketflow.db.enums.kanban import BoardView, CardPriority, MetricType
from ticketflow.db.enums.ticketing import (
    ACTIVE_TICKET_STATUSES,
    EventOrigin,
    SettingKey,
    TicketEvent,
    TicketStatus,
)

__all__ = [
    "ACTIVE_TICKET_STATUSES",
    "BoardView",
    "CardPriority",
    "EventOrigin",
    "MetricType",
    "Profile",
    "SettingKey",
    "TicketEvent",
    "TicketStatus",
]

"""Ticket lifecycle enums."""

from enum import Enum


class TicketStatus(str, Enum):
    """Ticket lifecycle status. Closed is terminal but reopenable."""

    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"


ACTIVE_TICKET_STATUSES = (TicketStatus.PENDING.value, TicketStatus.OPEN.value)


class EventOrigin(str, Enum):
    """Where a ticket or card change came from."""

    USER = "user"
    KANBAN = "kanban"
    IMPORT = "import"
    API = "api"
    SYSTEM = "system"


class TicketEvent(str, Enum):
    """Ticket lifecycle events consumed by the kanban sync bridge."""

    CREATED = "created"
    REOPENED = "reopened"
    UPDATED = "updated"
    CLOSED = "closed"


class SettingKey(str, Enum):
    """Per-company settings read by the core."""

    KANBAN_AUTO_CREATE_CARDS = "kanbanAutoCreateCards"
    KANBAN_DEFAULT_BOARD_ID = "kanbanDefaultBoardId"
    KANBAN_LANE_STATUS_MAP = "kanbanLaneStatusMap"
    REQUIRE_QUEUE_ON_ACCEPT = "requireQueueOnAccept"
    SEND_MSG_TRANSF_TICKET = "sendMsgTransfTicket"
    USER_RATING = "userRating"

"""Kanban board enums."""

from enum import Enum


class BoardView(str, Enum):
    """Default presentation of a board."""

    KANBAN = "kanban"
    LIST = "list"
    CALENDAR = "calendar"


class MetricType(str, Enum):
    """Fact row kinds written by the metrics aggregator."""

    TIME_IN_LANE = "time_in_lane"
    CONVERSION_RATE = "conversion_rate"
    THROUGHPUT = "throughput"
    LEAD_TIME = "lead_time"


class CardPriority(int, Enum):
    """Card priority buckets derived from ticket state."""

    NORMAL = 0
    ELEVATED = 1
    URGENT = 2

"""Real-time push to connected clients (best effort)."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from ticketflow.core.async_utils import run_from_sync
from ticketflow.core.websocket import manager

logger = logging.getLogger(__name__)

PUSH_TIMEOUT_SECONDS = 5.0


def ticket_topic(company_id: UUID) -> str:
    return f"company-{company_id}-ticket"


def kanban_topic(company_id: UUID) -> str:
    return f"company-{company_id}-kanban"


def app_message_topic(company_id: UUID) -> str:
    return f"company-{company_id}-appMessage"


def publish(company_id: UUID, topic: str, payload: dict[str, Any]) -> None:
    """Fan out to every connected client of the company. Never raises."""
    if not manager.has_company_connections(company_id):
        return
    try:
        run_from_sync(manager.publish(company_id, topic, payload), timeout=PUSH_TIMEOUT_SECONDS)
    except Exception:
        logger.warning("realtime_publish_failed topic=%s", topic, exc_info=True)


def notify_user(
    company_id: UUID,
    user_id: UUID | None,
    message: str,
    level: str = "ERROR",
) -> None:
    """Push an app message (toast) to a single user. Never raises."""
    if not user_id or not manager.is_user_connected(user_id):
        return
    payload = {
        "topic": app_message_topic(company_id),
        "payload": {"action": "notification", "level": level, "message": message},
    }
    try:
        run_from_sync(manager.send_to_user(user_id, payload), timeout=PUSH_TIMEOUT_SECONDS)
    except Exception:
        logger.warning("realtime_notify_user_failed user_id=%s", user_id, exc_info=True)

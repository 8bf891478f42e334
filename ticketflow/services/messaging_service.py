"""Outbound messaging to contacts and agents through the channel gateway.

Sends are fire-and-forget: bounded by a timeout, retried on transient
gateway errors, and never raised to the caller of ``dispatch_message``.
This module also owns the completion-message dedupe cache.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from uuid import UUID

import httpx

from ticketflow.core.async_utils import run_from_sync
from ticketflow.core.config import settings

logger = logging.getLogger(__name__)

RETRY_STATUSES = {429, 500, 502, 503, 504}


class MessagingError(Exception):
    """Gateway rejected or failed to deliver a message."""


# =============================================================================
# Transport
# =============================================================================


async def send_message(channel_id: UUID, address: str, body: str) -> bool:
    """
    Post one text message to the gateway.

    Returns False when the gateway is not configured. Raises MessagingError
    when every attempt failed.
    """
    if not settings.MESSAGING_GATEWAY_URL:
        logger.debug("messaging_gateway_disabled channel_id=%s", channel_id)
        return False

    url = f"{settings.MESSAGING_GATEWAY_URL.rstrip('/')}/channels/{channel_id}/messages"
    headers = {}
    if settings.MESSAGING_GATEWAY_TOKEN:
        headers["Authorization"] = f"Bearer {settings.MESSAGING_GATEWAY_TOKEN}"
    payload = {"to": address, "body": body}

    async with httpx.AsyncClient(timeout=settings.MESSAGING_TIMEOUT_SECONDS) as client:
        response = await _post_with_retries(
            lambda: client.post(url, json=payload, headers=headers),
            max_attempts=settings.MESSAGING_MAX_ATTEMPTS,
        )
    if response.status_code >= 400:
        raise MessagingError(f"gateway returned {response.status_code}")
    return True


async def _post_with_retries(request_fn, *, max_attempts: int, base_delay: float = 0.5, max_delay: float = 4.0) -> httpx.Response:
    """Exponential backoff with jitter on transport errors and retryable statuses."""
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        last = attempt >= attempts - 1
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if last:
                raise MessagingError("gateway unreachable") from exc
            logger.warning("messaging_request_failed attempt=%s", attempt + 1, exc_info=exc)
        else:
            if response.status_code not in RETRY_STATUSES or last:
                return response
            logger.warning("messaging_request_retry status=%s", response.status_code)
        delay = min(max_delay, base_delay * (2**attempt))
        await asyncio.sleep(delay + random.uniform(0, delay / 2))
    raise MessagingError("no attempts made")


def dispatch_message(channel_id: UUID, address: str, body: str) -> bool:
    """Sync, never-raising send used by post-commit side effects."""
    if not settings.MESSAGING_GATEWAY_URL:
        return False
    try:
        return run_from_sync(
            send_message(channel_id, address, body),
            timeout=settings.MESSAGING_TIMEOUT_SECONDS * max(1, settings.MESSAGING_MAX_ATTEMPTS) + 5,
        )
    except Exception:
        logger.warning("message_dispatch_failed channel_id=%s", channel_id, exc_info=True)
        return False


# =============================================================================
# Completion message dedupe
# =============================================================================


class CompletionMessageCache:
    """
    Bounded record of recently sent completion messages.

    Keyed by ticket id (or contact address). An entry suppresses another
    completion message for the same key until ``window`` elapses. When full,
    the least recently sent entry is evicted.
    """

    def __init__(self, max_entries: int, window: timedelta):
        self.max_entries = max_entries
        self.window = window
        self._entries: OrderedDict[str, datetime] = OrderedDict()
        self._lock = threading.Lock()

    def should_send(self, key: str, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            sent_at = self._entries.get(key)
            if sent_at is None:
                return True
            if now - sent_at >= self.window:
                del self._entries[key]
                return True
            return False

    def mark_sent(self, key: str, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            self._entries[key] = now
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def claim(self, key: str, now: datetime | None = None) -> bool:
        """Check and record in one step. True means the caller should send."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            sent_at = self._entries.get(key)
            if sent_at is not None and now - sent_at < self.window:
                return False
            self._entries[key] = now
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


completion_cache = CompletionMessageCache(
    max_entries=settings.COMPLETION_DEDUP_MAX_ENTRIES,
    window=timedelta(minutes=settings.COMPLETION_DEDUP_WINDOW_MINUTES),
)

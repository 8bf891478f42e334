"""Outbound messaging: retries, dispatch and completion dedupe."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from ticketflow.core.config import settings
from ticketflow.services import messaging_service
from ticketflow.services.messaging_service import CompletionMessageCache, MessagingError


# =============================================================================
# Completion cache
# =============================================================================


def test_claim_suppresses_within_window():
    cache = CompletionMessageCache(max_entries=10, window=timedelta(minutes=5))
    now = datetime.now(timezone.utc)

    assert cache.claim("ticket-1", now=now) is True
    assert cache.claim("ticket-1", now=now + timedelta(minutes=4)) is False
    assert cache.claim("ticket-1", now=now + timedelta(minutes=5)) is True


def test_should_send_and_mark_sent():
    cache = CompletionMessageCache(max_entries=10, window=timedelta(minutes=5))
    now = datetime.now(timezone.utc)

    assert cache.should_send("ticket-1", now=now)
    cache.mark_sent("ticket-1", now=now)
    assert not cache.should_send("ticket-1", now=now + timedelta(seconds=30))
    assert cache.should_send("ticket-1", now=now + timedelta(minutes=6))
    assert len(cache) == 0


def test_oldest_entry_is_evicted_when_full():
    cache = CompletionMessageCache(max_entries=2, window=timedelta(minutes=5))
    now = datetime.now(timezone.utc)
    for key in ("a", "b", "c"):
        cache.claim(key, now=now)

    assert len(cache) == 2
    assert cache.claim("a", now=now) is True
    assert cache.claim("c", now=now) is False


# =============================================================================
# Retries
# =============================================================================


@pytest.fixture
def no_sleep(monkeypatch):
    delays: list[float] = []

    async def _sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(messaging_service.asyncio, "sleep", _sleep)
    return delays


def _responder(*outcomes):
    calls = {"count": 0}
    request = httpx.Request("POST", "http://gateway/channels/x/messages")

    async def _request():
        outcome = outcomes[calls["count"]]
        calls["count"] += 1
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, request=request)

    return _request, calls


async def test_retries_transient_status_then_succeeds(no_sleep):
    request_fn, calls = _responder(503, 429, 200)

    response = await messaging_service._post_with_retries(request_fn, max_attempts=3)

    assert response.status_code == 200
    assert calls["count"] == 3
    assert len(no_sleep) == 2
    assert no_sleep[1] >= no_sleep[0]


async def test_client_error_is_not_retried(no_sleep):
    request_fn, calls = _responder(400, 200)

    response = await messaging_service._post_with_retries(request_fn, max_attempts=3)

    assert response.status_code == 400
    assert calls["count"] == 1
    assert no_sleep == []


async def test_last_retryable_response_is_returned(no_sleep):
    request_fn, calls = _responder(502, 502)

    response = await messaging_service._post_with_retries(request_fn, max_attempts=2)

    assert response.status_code == 502
    assert calls["count"] == 2


async def test_transport_errors_exhaust_into_messaging_error(no_sleep):
    request = httpx.Request("POST", "http://gateway")
    request_fn, calls = _responder(
        httpx.ConnectError("refused", request=request),
        httpx.ReadTimeout("slow", request=request),
    )

    with pytest.raises(MessagingError):
        await messaging_service._post_with_retries(request_fn, max_attempts=2)
    assert calls["count"] == 2


# =============================================================================
# Dispatch
# =============================================================================


async def test_send_message_without_gateway_is_noop():
    assert await messaging_service.send_message(uuid4(), "5511988887777", "oi") is False


def test_dispatch_without_gateway_returns_false():
    assert messaging_service.dispatch_message(uuid4(), "5511988887777", "oi") is False


def test_dispatch_swallows_gateway_failure(monkeypatch):
    async def _failing_send(channel_id, address, body):
        raise MessagingError("gateway returned 500")

    monkeypatch.setattr(settings, "MESSAGING_GATEWAY_URL", "http://gateway.test")
    monkeypatch.setattr(messaging_service, "send_message", _failing_send)

    assert messaging_service.dispatch_message(uuid4(), "5511988887777", "oi") is False

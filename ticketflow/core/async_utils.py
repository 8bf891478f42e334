"""
Bridge from sync service code to the async gateway and websocket clients.

Services run in FastAPI's worker threads (sync endpoints) or in
post-commit side effects, while message delivery and realtime pushes are
coroutines. ``run_from_sync`` drives such a coroutine to completion and
returns its result.
"""

from __future__ import annotations

import asyncio
from typing import Coroutine, TypeVar

import anyio

T = TypeVar("T")


def _in_event_loop_thread() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def run_from_sync(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run an outbound coroutine (gateway send, websocket push) from sync code.

    From a request worker thread the coroutine is handed to the app's event
    loop, so pushes share the loop that owns the websocket connections.
    Without a loop (import sweeps, sync tests) a private loop is started.
    ``timeout`` bounds the whole call and raises ``TimeoutError``.
    """

    async def _bounded() -> T:
        if timeout is None:
            return await coro
        with anyio.fail_after(timeout):
            return await coro

    try:
        return anyio.from_thread.run(_bounded)
    except RuntimeError:
        if not _in_event_loop_thread():
            return anyio.run(_bounded)
    # Blocking here would deadlock the loop the coroutine needs.
    coro.close()
    raise RuntimeError("run_from_sync called on the event loop thread; await the coroutine instead")

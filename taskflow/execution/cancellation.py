"""Cooperative cancellation shared by one agent run.

The token is checked before each task dispatch and each model call, and is
handed to subprocesses so in-flight work stops promptly.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from typing import Awaitable, Optional, Protocol, TypeVar

from taskflow.utils.error_handler import RunCancelled

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationSignal(Protocol):
    """What the engine, dispatcher and orchestrator need from a token."""

    def is_cancelled(self) -> bool:
        ...

    def cancel(self, reason: str = "Operation cancelled") -> None:
        ...

    async def wait(self) -> None:
        ...


class CancellationToken:
    """Thread-safe, asyncio-aware cancellation flag."""

    def __init__(self, run_id: Optional[str] = None) -> None:
        self.run_id = run_id or uuid.uuid4().hex[:8]
        self._lock = threading.RLock()
        self._cancelled = False
        self._reason: Optional[str] = None
        self._event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def cancel(self, reason: str = "Operation cancelled") -> None:
        """Request cancellation. Safe to call from any thread, idempotent."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            loop = self._loop

        LOGGER.info(f"Cancellation requested for run {self.run_id}: {reason}")

        if loop is None or loop.is_closed():
            self._event.set()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        with self._lock:
            if self._cancelled:
                return
            self._loop = asyncio.get_running_loop()
        await self._event.wait()

    def raise_if_cancelled(self, context: str = "") -> None:
        if self.is_cancelled():
            where = f" at {context}" if context else ""
            raise RunCancelled(
                f"Run {self.run_id} cancelled{where}: {self.reason}",
                "The run was cancelled.",
            )


async def run_cancellable(
    awaitable: Awaitable[T],
    token: Optional[CancellationSignal],
    timeout_s: Optional[float] = None,
) -> T:
    """Await ``awaitable`` unless the token fires or the timeout expires first.

    Raises RunCancelled on cancellation and asyncio.TimeoutError on timeout;
    the pending work is cancelled in both cases.
    """
    if token is None:
        return await asyncio.wait_for(awaitable, timeout_s)

    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, watcher}, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED)
        if work in done:
            return work.result()
        if watcher in done:
            raise RunCancelled("Cancelled while waiting on in-flight work", "The run was cancelled.")
        raise asyncio.TimeoutError(f"Timed out after {timeout_s}s")
    finally:
        for pending in (work, watcher):
            if not pending.done():
                pending.cancel()


__all__ = ["CancellationSignal", "CancellationToken", "run_cancellable"]

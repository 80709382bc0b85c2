"""Cooperative cancellation for replay loops and post-replay waits.

A token is only observed at suspension points (before each action, during
inter-action delays, drag steps, and post-replay waits). Setting it never
interrupts an in-flight driver call.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self, parent: "CancellationToken | None" = None) -> None:
        self._event = asyncio.Event()
        self._reason = ""
        self._children: list[CancellationToken] = []
        self._timer: asyncio.TimerHandle | None = None
        if parent is not None:
            parent.link(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("[cancel] %s", reason)
        for child in list(self._children):
            child.cancel(reason)

    def reset(self) -> None:
        self._event.clear()
        self._reason = ""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def link(self, child: "CancellationToken") -> "CancellationToken":
        self._children.append(child)
        if self.cancelled:
            child.cancel(self._reason)
        return child

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def cancel_after(self, seconds: float, reason: str = "timeout") -> None:
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(max(0.0, float(seconds)), self.cancel, reason)

    async def sleep(self, ms: float) -> bool:
        """Wait up to ``ms``; False if cancellation cut the wait short."""
        if self.cancelled:
            return False
        delay = max(0.0, float(ms)) / 1000.0
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

    async def wait_for(self, event: asyncio.Event, ms: float) -> str:
        """Wait for ``event``; returns 'set', 'cancelled' or 'timeout'."""
        if event.is_set():
            return "set"
        if self.cancelled:
            return "cancelled"
        event_task = asyncio.ensure_future(event.wait())
        cancel_task = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {event_task, cancel_task},
                timeout=max(0.0, float(ms)) / 1000.0,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (event_task, cancel_task):
                if not task.done():
                    task.cancel()
        if event.is_set():
            return "set"
        if self.cancelled:
            return "cancelled"
        return "timeout"

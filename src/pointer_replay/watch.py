"""Network request watcher: readiness signal and draw counting during replay."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pointer_replay.cancellation import CancellationToken
from pointer_replay.config import RecorderConfig
from pointer_replay.network_fault import NetworkFaultController
from pointer_replay.overlay import show_draw_labels

logger = logging.getLogger(__name__)


def matches_any(url: str, patterns: list[str]) -> bool:
    return any(pattern in url for pattern in patterns)


def draw_label(url: str, suffix: str) -> str:
    last = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    if suffix and last.endswith(suffix):
        last = last[: -len(suffix)]
    return last


class RequestWatcher:
    """Tracks page requests once a start pattern is seen.

    Within a tracking window, requests whose path ends with the configured
    suffix are logged; those that also match a filter pattern count as a
    draw. Reaching the target draw count cancels the armed replay token.
    """

    def __init__(self, config: RecorderConfig, fault: NetworkFaultController | None = None) -> None:
        self.config = config
        self.fault = fault
        self.ready = asyncio.Event()
        self.tracking = False
        self.draws = 0
        self.target_draws = 1
        self.captured: list[str] = []
        self.page: Any = None
        self._token: CancellationToken | None = None
        self._skip_requested = False

    def attach(self, page: Any) -> None:
        self.page = page
        page.on("request", self.on_request)
        logger.info(
            "[watch] start=%s suffix=%r filter=%s",
            self.config.tracking_start_patterns,
            self.config.tracking_suffix,
            self.config.tracking_filter_patterns,
        )

    def arm(self, token: CancellationToken, target_draws: int) -> None:
        self._token = token
        self.target_draws = max(1, int(target_draws))
        self.draws = 0
        self.captured = []

    def disarm(self) -> None:
        self._token = None

    def begin_loop(self) -> None:
        self.tracking = False

    def skip_ready_wait(self) -> None:
        self._skip_requested = True
        self.ready.set()

    async def wait_until_ready(self, token: CancellationToken, timeout_ms: int) -> str:
        logger.info("[watch] waiting for ready signal (%r)", self.config.ready_signal_pattern)
        outcome = await token.wait_for(self.ready, timeout_ms)
        if outcome == "set" and self._skip_requested:
            outcome = "skipped"
        self.ready.clear()
        self._skip_requested = False
        logger.info("[watch] ready wait finished: %s", outcome)
        return outcome

    async def on_request(self, request: Any) -> None:
        url = str(request.url)
        signal = self.config.ready_signal_pattern
        if signal and signal in url:
            self.ready.set()
            logger.info("[watch] ready signal: %s", url)

        if not self.tracking and matches_any(url, self.config.tracking_start_patterns):
            self.tracking = True
            logger.info("[watch] tracking started by %s", url)

        if not self.tracking:
            return
        suffix = self.config.tracking_suffix
        if not url.split("?", 1)[0].endswith(suffix):
            return
        logger.info("[watch] request %s %s", request.method, url)
        filters = self.config.tracking_filter_patterns
        if not filters or not matches_any(url, filters):
            return

        self.draws += 1
        label = draw_label(url, suffix)
        self.captured.append(label)
        logger.info("[watch] draw %d of %d: %s", self.draws, self.target_draws, label)
        if self.draws == self.target_draws and self._token is not None:
            self._token.cancel("target draw count reached")
        if self.page is not None:
            await show_draw_labels(self.page, self.captured)
        if self.fault is not None and self.fault.enabled:
            await self.fault.clear()

"""Replay engine: re-synthesizes a recorded action log with original pacing."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from pointer_replay.cancellation import CancellationToken
from pointer_replay.constants import (
    DRAG_INTERPOLATION_STEPS,
    DRAG_STEP_DELAY_MS,
    READY_SETTLE_MS,
    REPLAY_BADGE_ID,
)
from pointer_replay.frames import FrameRegistry, is_page_closed_error, page_is_closed
from pointer_replay.models import Action
from pointer_replay.network_fault import NetworkFaultController
from pointer_replay.overlay import (
    install_ripple_helper,
    set_badge,
    show_draw_labels,
    show_filter_patterns,
    show_ripple,
)
from pointer_replay.post_replay import PostReplayOrchestrator, PostReplayOutcome
from pointer_replay.watch import RequestWatcher

logger = logging.getLogger(__name__)


class DriverClosedError(RuntimeError):
    """The page or browser went away; replay cannot continue."""


@dataclass
class ReplayReport:
    loops_requested: int
    loops_completed: int = 0
    cancelled: bool = False
    cancel_reason: str = ""
    actions_performed: int = 0
    failed_actions: list[int] = field(default_factory=list)
    post_replay: list[PostReplayOutcome] = field(default_factory=list)
    draw_labels: list[str] = field(default_factory=list)


def interpolate_drag(
    start: tuple[float, float],
    end: tuple[float, float],
    steps: int = DRAG_INTERPOLATION_STEPS,
) -> list[tuple[float, float]]:
    """Evenly spaced points from just after ``start`` up to and including ``end``."""
    steps = max(1, int(steps))
    sx, sy = start
    ex, ey = end
    dx = (ex - sx) / steps
    dy = (ey - sy) / steps
    return [(sx + dx * k, sy + dy * k) for k in range(1, steps + 1)]


def inter_action_delay_ms(current: Action, following: Action | None) -> float:
    if following is None:
        return 0.0
    return max(0.0, float(following.captured_at_ms) - float(current.captured_at_ms))


class ReplayEngine:
    def __init__(
        self,
        page: Any,
        fault: NetworkFaultController,
        *,
        registry: FrameRegistry | None = None,
        post_replay: PostReplayOrchestrator | None = None,
        watcher: RequestWatcher | None = None,
        drag_steps: int = DRAG_INTERPOLATION_STEPS,
        drag_step_delay_ms: int = DRAG_STEP_DELAY_MS,
        ready_wait_ms: int = 30000,
        on_loop_start: Callable[[int, int], None] | None = None,
    ) -> None:
        self.page = page
        self.fault = fault
        self.registry = registry or FrameRegistry(page)
        self.post_replay = post_replay
        self.watcher = watcher
        self.drag_steps = drag_steps
        self.drag_step_delay_ms = drag_step_delay_ms
        self.ready_wait_ms = ready_wait_ms
        self.on_loop_start = on_loop_start
        self._last_down: tuple[float, float] | None = None

    async def replay(
        self,
        actions: Sequence[Action],
        loop_count: int,
        token: CancellationToken,
        *,
        target_draws: int = 1,
    ) -> ReplayReport:
        loop_count = max(1, int(loop_count))
        report = ReplayReport(loops_requested=loop_count)
        if not actions:
            logger.warning("[replay] no recorded actions to replay")
            return report
        if self.watcher is not None:
            self.watcher.arm(token, target_draws)
        try:
            for loop_idx in range(loop_count):
                if token.cancelled:
                    logger.info("[replay] cancelled before loop %d", loop_idx + 1)
                    break
                if self.on_loop_start is not None:
                    self.on_loop_start(loop_idx + 1, loop_count)
                await self._show_panels()
                await self._await_ready(token)
                if token.cancelled:
                    break
                await self._prepare_frames()
                remaining = loop_count - (loop_idx + 1)
                await set_badge(
                    self.page,
                    REPLAY_BADGE_ID,
                    True,
                    text=f"REPLAYING ({loop_idx + 1}/{loop_count})<br>{remaining} remaining",
                    background="#007bff",
                    top=90,
                )
                logger.info(
                    "[replay] loop %d of %d: %d action(s)", loop_idx + 1, loop_count, len(actions)
                )
                completed = await self._run_loop(actions, token, report)
                if not completed:
                    logger.info("[replay] loop %d cancelled, post-replay skipped", loop_idx + 1)
                    break
                report.loops_completed += 1
                logger.info("[replay] loop %d completed", loop_idx + 1)
                if self.post_replay is not None:
                    report.post_replay.append(await self.post_replay.run(token))
        finally:
            if self.watcher is not None:
                self.watcher.disarm()
                report.draw_labels = list(self.watcher.captured)
            if not page_is_closed(self.page):
                await set_badge(self.page, REPLAY_BADGE_ID, False)
        report.cancelled = token.cancelled
        report.cancel_reason = token.reason
        return report

    async def _show_panels(self) -> None:
        if self.watcher is None:
            return
        await show_filter_patterns(self.page, self.watcher.config.tracking_filter_patterns)
        await show_draw_labels(self.page, self.watcher.captured)

    async def _await_ready(self, token: CancellationToken) -> None:
        if self.watcher is None or not self.watcher.config.tracking_enabled:
            return
        self.watcher.begin_loop()
        await self.watcher.wait_until_ready(token, self.ready_wait_ms)
        await token.sleep(READY_SETTLE_MS)

    async def _prepare_frames(self) -> None:
        installed = 0
        for handle in self.registry.snapshot():
            try:
                if await install_ripple_helper(handle.frame):
                    installed += 1
            except Exception as exc:
                logger.debug("[replay] ripple helper skipped for frame %d: %s", handle.index, exc)
        if installed:
            logger.debug("[replay] ripple helper installed in %d frame(s)", installed)

    async def _run_loop(
        self,
        actions: Sequence[Action],
        token: CancellationToken,
        report: ReplayReport,
    ) -> bool:
        self._last_down = None
        total = len(actions)
        for idx, action in enumerate(actions):
            if token.cancelled:
                logger.info("[replay] cancelled before action %d/%d", idx + 1, total)
                return False
            try:
                await self._perform(action, idx, total)
                report.actions_performed += 1
            except Exception as exc:
                if page_is_closed(self.page) or is_page_closed_error(exc):
                    raise DriverClosedError(f"page closed during action {idx + 1}: {exc}") from exc
                logger.warning("[replay] action %d/%d failed: %s", idx + 1, total, exc)
                report.failed_actions.append(idx)
            following = actions[idx + 1] if idx + 1 < total else None
            delay = inter_action_delay_ms(action, following)
            if delay > 0:
                await token.sleep(delay)
        return not token.cancelled

    async def _perform(self, action: Action, idx: int, total: int) -> None:
        position = f"[{idx + 1}/{total}]"
        canvas = " [canvas]" if action.is_canvas_target else ""

        if action.kind == "network-toggle":
            enable = action.network_toggle_kind == "enable-fault"
            await self.fault.set_fault(enable)
            logger.info("[replay] %s network fault %s", position, "enabled" if enable else "disabled")
            return

        if action.kind == "pointer-move" and action.is_drag:
            # Stored drag moves are superseded by interpolation on release.
            return

        gx, gy = action.global_point()
        mouse = self.page.mouse

        if action.kind == "click":
            await self._ripple(action)
            await mouse.click(gx, gy)
            logger.info("[replay] %s click at (%s, %s)%s", position, action.x, action.y, canvas)
        elif action.kind == "pointer-down":
            self._last_down = (gx, gy)
            await self._ripple(action)
            await mouse.move(gx, gy)
            await mouse.down()
            logger.info("[replay] %s down at (%s, %s)%s", position, action.x, action.y, canvas)
        elif action.kind == "pointer-move":
            await mouse.move(gx, gy)
            logger.debug("[replay] %s move to (%s, %s)", position, action.x, action.y)
        elif action.kind == "pointer-up":
            if action.is_drag and self._last_down is not None:
                for px, py in interpolate_drag(self._last_down, (gx, gy), self.drag_steps):
                    await mouse.move(px, py)
                    await asyncio.sleep(self.drag_step_delay_ms / 1000.0)
            await mouse.move(gx, gy)
            await mouse.up()
            self._last_down = None
            drag = " [drag]" if action.is_drag else ""
            logger.info("[replay] %s up at (%s, %s)%s%s", position, action.x, action.y, canvas, drag)
        else:
            raise ValueError(f"unsupported action kind {action.kind}")

    async def _ripple(self, action: Action) -> None:
        frame = self.registry.frame_at(action.frame_index)
        if frame is None:
            return
        await show_ripple(frame, action.x or 0, action.y or 0, canvas=action.is_canvas_target)

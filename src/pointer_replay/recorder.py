"""Recorder facade: owns the action log and keeps capture and replay apart."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pointer_replay.cancellation import CancellationToken
from pointer_replay.capture import CaptureSession
from pointer_replay.config import RecorderConfig
from pointer_replay.frames import FrameRegistry
from pointer_replay.models import Action, Recording, RecordingFormatError, RecordingMetadata, fault_used
from pointer_replay.network_fault import FaultResult, NetworkFaultController
from pointer_replay.post_replay import PostReplayOrchestrator
from pointer_replay.replay import ReplayEngine, ReplayReport
from pointer_replay.storage import RunContext, load_recording, save_recording, write_status
from pointer_replay.watch import RequestWatcher

logger = logging.getLogger(__name__)


class PhaseError(RuntimeError):
    """Capture and replay were asked to overlap."""


class PointerRecorder:
    def __init__(
        self,
        page: Any,
        config: RecorderConfig,
        *,
        url: str = "",
        run_context: RunContext | None = None,
        registry: FrameRegistry | None = None,
        fault: NetworkFaultController | None = None,
        watcher: RequestWatcher | None = None,
    ) -> None:
        self.page = page
        self.config = config
        self.url = url
        self.run_context = run_context
        self.registry = registry or FrameRegistry(page)
        self.fault = fault or NetworkFaultController(page, self.registry)
        self.watcher = watcher or RequestWatcher(config, self.fault)
        self.capture = CaptureSession(page, self.registry)
        self.actions: list[Action] = []
        self.last_saved: Path | None = None
        self._token: CancellationToken | None = None
        self._replaying = False

    @property
    def phase(self) -> str:
        if self.capture.active:
            return "capturing"
        if self._replaying:
            return "replaying"
        return "idle"

    def watch_requests(self) -> None:
        self.watcher.attach(self.page)

    async def start_capture(self) -> int:
        if self.phase != "idle":
            raise PhaseError(f"cannot start capture while {self.phase}")
        self.actions = []
        frames = await self.capture.begin()
        self._write_status("capturing")
        return frames

    async def stop_capture(self) -> Path | None:
        if not self.capture.active:
            raise PhaseError("no capture in progress")
        self.actions = await self.capture.end()
        self._write_status("idle")
        if not self.actions:
            logger.warning("[capture] no actions captured, nothing saved")
            return None
        recording = Recording(
            metadata=RecordingMetadata(
                source_url=self.url or str(getattr(self.page, "url", "") or ""),
                recorded_at=datetime.now(timezone.utc).isoformat(),
                fault_was_used_during_capture=fault_used(self.actions),
            ),
            actions=tuple(self.actions),
        )
        self.last_saved = save_recording(recording, Path(self.config.recordings_dir))
        logger.info("[capture] saved %d action(s) to %s", len(self.actions), self.last_saved)
        return self.last_saved

    async def set_fault(self, enabled: bool) -> FaultResult:
        # Logged before the fault is applied.
        if self.capture.active:
            await self.capture.record_network_toggle("enable-fault" if enabled else "disable-fault")
        return await self.fault.set_fault(enabled)

    def load(self, path: Path) -> Recording:
        if self.phase != "idle":
            raise PhaseError(f"cannot load a recording while {self.phase}")
        try:
            recording = load_recording(Path(path))
        except (OSError, RecordingFormatError):
            if self.config.clear_log_on_load_failure:
                self.actions = []
                logger.info("[replay] action log cleared after failed load")
            raise
        self.actions = list(recording.actions)
        if recording.legacy:
            logger.info("[replay] loaded legacy recording %s", path)
        if recording.metadata.fault_was_used_during_capture:
            logger.info("[replay] recording toggles the network fault")
        logger.info("[replay] loaded %d action(s) from %s", len(self.actions), path)
        return recording

    async def replay(self, loops: int = 1, target_draws: int = 1) -> ReplayReport:
        if self.phase != "idle":
            raise PhaseError(f"cannot replay while {self.phase}")
        token = CancellationToken()
        self._token = token
        self._replaying = True
        engine = ReplayEngine(
            self.page,
            self.fault,
            registry=self.registry,
            post_replay=self._post_replay(),
            watcher=self.watcher,
            drag_steps=self.config.drag_steps,
            ready_wait_ms=self.config.ready_wait_ms,
            on_loop_start=self._on_loop_start,
        )
        try:
            report = await engine.replay(list(self.actions), loops, token, target_draws=target_draws)
        finally:
            self._replaying = False
            self._token = None
            self._write_status("idle")
        logger.info(
            "[replay] finished: %d/%d loop(s), %d failed action(s)%s",
            report.loops_completed,
            report.loops_requested,
            len(report.failed_actions),
            f", cancelled ({report.cancel_reason})" if report.cancelled else "",
        )
        return report

    def cancel(self, reason: str = "operator cancel") -> bool:
        if self._token is None:
            return False
        self._token.cancel(reason)
        return True

    def skip_ready_wait(self) -> None:
        self.watcher.skip_ready_wait()

    async def shutdown(self) -> None:
        self.cancel("shutdown")
        if self.capture.active:
            await self.stop_capture()
        await self.fault.clear()

    def _post_replay(self) -> PostReplayOrchestrator:
        return PostReplayOrchestrator(
            self.page,
            self.fault,
            url=self.url,
            script=self.config.post_replay_script,
            wait_ms=self.config.post_replay_wait_ms,
            settle_ms=self.config.post_reload_wait_ms,
            script_timeout_seconds=self.config.script_timeout_seconds,
            run_context=self.run_context,
        )

    def _on_loop_start(self, current: int, total: int) -> None:
        self._write_status("replaying", loop_current=current, loop_total=total)

    def _write_status(self, state: str, **extra: Any) -> None:
        if self.run_context is None:
            return
        try:
            write_status(
                run_id=self.run_context.run_id,
                run_dir=self.run_context.run_dir,
                url=self.url,
                state=state,
                recording_path=self.last_saved,
                **extra,
            )
        except OSError as exc:
            logger.warning("[status] could not write status: %s", exc)

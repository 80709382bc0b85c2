"""Line-based operator console for an open browser session."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable

from pointer_replay.capture import CaptureError
from pointer_replay.models import RecordingFormatError
from pointer_replay.recorder import PhaseError, PointerRecorder
from pointer_replay.replay import DriverClosedError
from pointer_replay.storage import list_recordings

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  s                 start capture
  f                 finish capture and save
  r [loops] [draws] replay the loaded actions
  l [n]             list recordings, or load number n
  p                 enable packet loss
  n                 restore network
  x                 cancel replay
  c                 skip the ready-signal wait
  h                 reload configuration
  q                 quit"""


class Console:
    def __init__(
        self,
        recorder: PointerRecorder,
        *,
        reader: Callable[[], str] | None = None,
        writer: Callable[[str], None] = print,
    ) -> None:
        self.recorder = recorder
        self._read = reader or sys.stdin.readline
        self._write = writer
        self._replay_task: asyncio.Task | None = None

    @property
    def replay_running(self) -> bool:
        return self._replay_task is not None and not self._replay_task.done()

    async def run(self) -> None:
        self._write(HELP_TEXT)
        try:
            while True:
                line = await asyncio.to_thread(self._read)
                if line == "":
                    break
                if not await self.handle(line.strip()):
                    break
        finally:
            await self.close()

    async def handle(self, line: str) -> bool:
        """Run one command; False means quit."""
        if not line:
            return True
        command, *args = line.split()
        command = command.lower()
        if command == "q":
            return False
        try:
            await self._dispatch(command, args)
        except (PhaseError, CaptureError, RecordingFormatError, ValueError, OSError) as exc:
            self._write(f"Error: {exc}")
        except Exception:
            logger.exception("[console] command %r failed", command)
        return True

    async def close(self) -> None:
        if self.replay_running:
            self.recorder.cancel("quit")
        if self._replay_task is not None:
            await self._replay_task
        await self.recorder.shutdown()

    async def _dispatch(self, command: str, args: list[str]) -> None:
        recorder = self.recorder
        if command == "s":
            frames = await recorder.start_capture()
            self._write(f"Capturing in {frames} frame(s). Press f to finish.")
        elif command == "f":
            path = await recorder.stop_capture()
            if path is None:
                self._write("No actions captured.")
            else:
                self._write(f"Saved {len(recorder.actions)} action(s) to {path}")
        elif command == "r":
            if self.replay_running:
                self._write("Replay already running. Press x to cancel.")
                return
            loops = _positive_int(args[0], "loops") if args else 1
            draws = _positive_int(args[1], "draws") if len(args) > 1 else 1
            if recorder.phase != "idle":
                raise PhaseError(f"cannot replay while {recorder.phase}")
            self._replay_task = asyncio.create_task(self._run_replay(loops, draws))
        elif command == "l":
            self._list_or_load(args)
        elif command == "p":
            await recorder.set_fault(True)
        elif command == "n":
            await recorder.set_fault(False)
        elif command == "x":
            if not recorder.cancel("operator cancel"):
                self._write("Nothing to cancel.")
        elif command == "c":
            recorder.skip_ready_wait()
        elif command == "h":
            changed = recorder.config.reload()
            self._write(f"Config reloaded: {', '.join(changed) if changed else 'no changes'}")
        elif command in ("help", "?"):
            self._write(HELP_TEXT)
        else:
            self._write(f"Unknown command '{command}'. Type help.")

    def _list_or_load(self, args: list[str]) -> None:
        paths = list_recordings(Path(self.recorder.config.recordings_dir))
        if not args:
            if not paths:
                self._write("No recordings found.")
            for idx, path in enumerate(paths, start=1):
                self._write(f"  {idx}. {path.name}")
            return
        choice = _positive_int(args[0], "recording number")
        if choice > len(paths):
            raise ValueError(f"no recording number {choice}")
        recording = self.recorder.load(paths[choice - 1])
        self._write(f"Loaded {len(recording.actions)} action(s) from {paths[choice - 1].name}")

    async def _run_replay(self, loops: int, draws: int) -> None:
        try:
            report = await self.recorder.replay(loops, draws)
        except PhaseError as exc:
            self._write(f"Error: {exc}")
        except DriverClosedError as exc:
            logger.error("[replay] browser closed: %s", exc)
        except Exception:
            logger.exception("[replay] replay failed")
        else:
            self._write(f"Replay done: {report.loops_completed}/{report.loops_requested} loop(s)")
            if report.draw_labels:
                self._write("Draws: " + ", ".join(report.draw_labels))


def _positive_int(raw: str, label: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{label} must be a number") from None
    if value < 1:
        raise ValueError(f"{label} must be at least 1")
    return value

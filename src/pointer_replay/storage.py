"""File storage helpers for recordings and replay run artifacts."""

from __future__ import annotations

import json
import os
import tempfile
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pointer_replay.models import Recording, RecordingFormatError, decode_recording


RUNS_DIR = Path("runs")
STATUS_PATH = RUNS_DIR / "status.json"


@dataclass(frozen=True)
class RunContext:
    run_id: str
    run_dir: Path
    session_log: Path
    script_stdout_log: Path
    script_stderr_log: Path


def create_run_context(root: Path = RUNS_DIR) -> RunContext:
    root.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    for attempt in range(100):
        run_id = f"{stamp}-{attempt:02d}" if attempt else stamp
        run_dir = root / run_id
        try:
            run_dir.mkdir()
        except FileExistsError:
            continue
        return RunContext(
            run_id=run_id,
            run_dir=run_dir,
            session_log=run_dir / "session.log",
            script_stdout_log=run_dir / "script_stdout.log",
            script_stderr_log=run_dir / "script_stderr.log",
        )
    raise RuntimeError(f"Could not allocate a run directory under {root}")


def save_recording(recording: Recording, directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"recording_{int(time.time() * 1000)}.json"
    attempt = 0
    while path.exists():
        attempt += 1
        path = directory / f"recording_{int(time.time() * 1000)}_{attempt:02d}.json"
    write_json_atomic(path, recording.to_dict())
    return path


def load_recording(path: Path) -> Recording:
    try:
        with path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except json.JSONDecodeError as exc:
        raise RecordingFormatError(f"{path.name} is not valid JSON: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise RecordingFormatError(f"{path.name} is not UTF-8 text: {exc}") from exc
    return decode_recording(payload)


def list_recordings(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".json")


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
            fh.write("\n")
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def write_status(
    *,
    run_id: str,
    run_dir: Path,
    url: str,
    state: str,
    recording_path: Path | None = None,
    loop_current: int | None = None,
    loop_total: int | None = None,
) -> None:
    payload: dict[str, Any] = {
        "run_id": run_id,
        "run_dir": str(run_dir),
        "url": url,
        "state": state,
        "updated_at_utc": datetime.now(timezone.utc).isoformat(),
    }
    if recording_path is not None:
        payload["recording_path"] = str(recording_path)
    if loop_total is not None:
        payload["loop"] = {"current": loop_current, "total": loop_total}
    # Read concurrently by `status` and `logs`; never leave a half-written file.
    write_json_atomic(STATUS_PATH, payload)


def status_payload() -> dict[str, Any]:
    try:
        with STATUS_PATH.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return {"status": "no-runs"}


def tail_lines(path: Path, line_count: int) -> list[str]:
    if line_count <= 0 or not path.is_file():
        return []
    with path.open("r", encoding="utf-8", errors="replace") as fh:
        return [line.rstrip("\n") for line in deque(fh, maxlen=line_count)]

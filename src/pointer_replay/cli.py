"""CLI entrypoint for pointer-replay."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path

from pointer_replay.config import RecorderConfig, load_config
from pointer_replay.console import Console
from pointer_replay.driver import BrowserSession
from pointer_replay.logging_setup import configure_logging
from pointer_replay.models import RecordingFormatError
from pointer_replay.recorder import PointerRecorder
from pointer_replay.replay import DriverClosedError, ReplayReport
from pointer_replay.storage import (
    RunContext,
    create_run_context,
    list_recordings,
    load_recording,
    status_payload,
    tail_lines,
    write_status,
)

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "open":
        config = load_config(args.config)
        asyncio.run(open_command(args.url, config, headless=args.headless))
        return
    if args.command == "replay":
        config = load_config(args.config)
        report = asyncio.run(
            replay_command(
                Path(args.recording),
                config,
                url=args.url,
                loops=args.loops,
                draws=args.draws,
                headless=args.headless,
            )
        )
        print(json.dumps(asdict(report), indent=2, ensure_ascii=False, default=str))
        return
    if args.command == "recordings":
        recordings_command(load_config(args.config))
        return
    if args.command == "status":
        print(json.dumps(status_payload(), indent=2, ensure_ascii=False))
        return
    if args.command == "logs":
        logs_command(args.tail)
        return

    parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pointer-replay",
        description="Capture and replay pointer interactions in a browser page.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    subparsers = parser.add_subparsers(dest="command")

    open_parser = subparsers.add_parser("open", help="Open a page with the interactive console")
    open_parser.add_argument("url", type=str)
    open_parser.add_argument("--headless", action="store_true")

    replay_parser = subparsers.add_parser("replay", help="Replay a saved recording")
    replay_parser.add_argument("recording", type=str)
    replay_parser.add_argument("--url", type=str, default="", help="Page to open (default: recorded URL)")
    replay_parser.add_argument("--loops", type=int, default=1)
    replay_parser.add_argument("--draws", type=int, default=1, help="Stop after this many tracked draws")
    replay_parser.add_argument("--headless", action="store_true")

    subparsers.add_parser("recordings", help="List saved recordings")
    subparsers.add_parser("status", help="Show latest run status")

    logs_parser = subparsers.add_parser("logs", help="Show latest run logs")
    logs_parser.add_argument("--tail", type=int, default=50)
    return parser


async def open_command(url: str, config: RecorderConfig, *, headless: bool = False) -> None:
    ctx = _start_run()
    session = BrowserSession(url, Path(config.sessions_dir), headless=headless)
    try:
        page = await session.start()
    except Exception as exc:
        await session.close()
        _finish_run(ctx, session.url, "failed")
        raise SystemExit(f"Could not open {session.url}: {exc}") from exc

    recorder = PointerRecorder(page, config, url=session.url, run_context=ctx)
    recorder.watch_requests()
    write_status(run_id=ctx.run_id, run_dir=ctx.run_dir, url=session.url, state="idle")
    try:
        await Console(recorder).run()
    finally:
        await session.close()
        _finish_run(ctx, session.url, "closed")


async def replay_command(
    recording_path: Path,
    config: RecorderConfig,
    *,
    url: str = "",
    loops: int = 1,
    draws: int = 1,
    headless: bool = False,
) -> ReplayReport:
    if loops < 1:
        raise SystemExit("--loops must be at least 1")
    try:
        recording = load_recording(recording_path)
    except FileNotFoundError as exc:
        raise SystemExit(f"Recording not found: {recording_path}") from exc
    except RecordingFormatError as exc:
        raise SystemExit(f"Invalid recording {recording_path}: {exc}") from exc
    target = url or recording.metadata.source_url
    if not target:
        raise SystemExit("Recording has no source URL; pass --url")

    ctx = _start_run()
    session = BrowserSession(target, Path(config.sessions_dir), headless=headless)
    state = "failed"
    try:
        try:
            page = await session.start()
        except Exception as exc:
            raise SystemExit(f"Could not open {session.url}: {exc}") from exc
        recorder = PointerRecorder(page, config, url=session.url, run_context=ctx)
        recorder.watch_requests()
        recorder.load(recording_path)
        report = await recorder.replay(loops, draws)
        state = "cancelled" if report.cancelled else "completed"
        return report
    except DriverClosedError as exc:
        raise SystemExit(f"Browser closed during replay: {exc}") from exc
    finally:
        await session.close()
        _finish_run(ctx, session.url, state)


def recordings_command(config: RecorderConfig) -> None:
    paths = list_recordings(Path(config.recordings_dir))
    if not paths:
        print(f"No recordings in {config.recordings_dir}")
        return
    for path in paths:
        try:
            recording = load_recording(path)
        except (OSError, RecordingFormatError) as exc:
            print(f"{path.name}\tunreadable: {exc}")
            continue
        meta = recording.metadata
        flags = " fault" if meta.fault_was_used_during_capture else ""
        flags += " legacy" if recording.legacy else ""
        print(f"{path.name}\t{len(recording.actions)} action(s)\t{meta.source_url or '-'}{flags}")


def logs_command(tail_count: int) -> None:
    payload = status_payload()
    if payload.get("status") == "no-runs":
        raise SystemExit("No runs available yet.")
    run_dir = Path(payload["run_dir"])
    output_lines = []
    output_lines.extend(tail_lines(run_dir / "session.log", tail_count))
    output_lines.extend(tail_lines(run_dir / "script_stdout.log", tail_count))
    output_lines.extend(tail_lines(run_dir / "script_stderr.log", tail_count))
    print("\n".join(output_lines))


def _start_run() -> RunContext:
    ctx = create_run_context()
    configure_logging(ctx.session_log)
    logger.info("[run] %s started in %s", ctx.run_id, ctx.run_dir)
    return ctx


def _finish_run(ctx: RunContext, url: str, state: str) -> None:
    write_status(run_id=ctx.run_id, run_dir=ctx.run_dir, url=url, state=state)
    logger.info("[run] %s %s", ctx.run_id, state)


if __name__ == "__main__":
    main()

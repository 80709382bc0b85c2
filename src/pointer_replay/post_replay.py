"""Post-replay sequence: bounded wait, external script, fault clear, defensive reload."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pointer_replay.cancellation import CancellationToken
from pointer_replay.constants import (
    BLANK_PAGE_TIMEOUT_MS,
    BLANK_PAGE_URL,
    POLL_INTERVAL_MS,
    RELOAD_ABORT_SETTLE_MS,
    RELOAD_TIMEOUT_MS,
    RELOAD_WAIT_UNTIL,
)
from pointer_replay.network_fault import NetworkFaultController
from pointer_replay.storage import RunContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptResult:
    stdout: str
    stderr: str
    returncode: int
    timed_out: bool = False


@dataclass
class PostReplayOutcome:
    cancelled: bool = False
    waited: bool = False
    script: ScriptResult | None = None
    fault_cleared: bool = False
    reloaded: bool = False
    defensive_reload: bool = False
    errors: list[str] = field(default_factory=list)


def script_command(script: Path) -> list[str]:
    suffix = script.suffix.lower()
    if suffix == ".sh":
        return ["bash", str(script)]
    if suffix in (".bat", ".cmd"):
        return ["cmd", "/c", str(script)]
    return [str(script)]


async def run_post_replay_script(script: Path, timeout_seconds: float) -> ScriptResult:
    proc = await asyncio.create_subprocess_exec(
        *script_command(script.resolve()),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        proc.kill()
        out, err = await proc.communicate()
        return ScriptResult(
            stdout=(out or b"").decode("utf-8", errors="replace"),
            stderr=(err or b"").decode("utf-8", errors="replace"),
            returncode=124,
            timed_out=True,
        )
    return ScriptResult(
        stdout=(out or b"").decode("utf-8", errors="replace"),
        stderr=(err or b"").decode("utf-8", errors="replace"),
        returncode=proc.returncode if proc.returncode is not None else -1,
    )


class PostReplayOrchestrator:
    def __init__(
        self,
        page: Any,
        fault: NetworkFaultController,
        *,
        url: str,
        script: str | None,
        wait_ms: int,
        settle_ms: int,
        script_timeout_seconds: float = 120,
        run_context: RunContext | None = None,
        poll_interval_ms: int = POLL_INTERVAL_MS,
    ) -> None:
        self.page = page
        self.fault = fault
        self.url = url
        self.script = script
        self.wait_ms = wait_ms
        self.settle_ms = settle_ms
        self.script_timeout_seconds = script_timeout_seconds
        self.run_context = run_context
        self.poll_interval_ms = max(1, poll_interval_ms)

    async def run(self, token: CancellationToken) -> PostReplayOutcome:
        outcome = PostReplayOutcome()
        logger.info("[post-replay] waiting %.1f s (cancel to skip)", self.wait_ms / 1000)
        if not await self._bounded_wait(token):
            logger.info("[post-replay] wait cancelled, skipping script and reload")
            outcome.cancelled = True
            return outcome
        outcome.waited = True

        # Each step runs even when an earlier one failed.
        try:
            outcome.script = await self._run_script(outcome)
        except Exception as exc:
            self._step_failed(outcome, "script", exc)
        try:
            await self._reload(outcome)
        except Exception as exc:
            self._step_failed(outcome, "reload", exc)
            if self.fault.enabled:
                outcome.fault_cleared = await self._clear_fault(outcome)
        try:
            await token.sleep(self.settle_ms)
        except Exception as exc:
            self._step_failed(outcome, "settle", exc)
        logger.info("[post-replay] done%s", f" with {len(outcome.errors)} error(s)" if outcome.errors else "")
        return outcome

    def _step_failed(self, outcome: PostReplayOutcome, step: str, exc: Exception) -> None:
        logger.exception("[post-replay] %s step failed", step)
        outcome.errors.append(f"{step}: {exc}")

    async def _bounded_wait(self, token: CancellationToken) -> bool:
        elapsed = 0
        while elapsed < self.wait_ms:
            if token.cancelled:
                return False
            chunk = min(self.poll_interval_ms, self.wait_ms - elapsed)
            if not await token.sleep(chunk):
                return False
            elapsed += chunk
        return not token.cancelled

    async def _run_script(self, outcome: PostReplayOutcome) -> ScriptResult | None:
        if not self.script:
            return None
        path = Path(self.script)
        if not path.is_file():
            logger.info("[post-replay] no script found at %s, skipping", path)
            return None
        logger.info("[post-replay] executing %s", path.resolve())
        try:
            result = await run_post_replay_script(path, self.script_timeout_seconds)
        except OSError as exc:
            logger.warning("[post-replay] script failed to start: %s", exc)
            outcome.errors.append(f"script: {exc}")
            return None
        if result.stdout.strip():
            logger.info("[post-replay] script output:\n%s", result.stdout.strip())
        if result.stderr.strip():
            logger.warning("[post-replay] script errors:\n%s", result.stderr.strip())
        if result.timed_out:
            logger.warning("[post-replay] script timed out after %ss", self.script_timeout_seconds)
        else:
            logger.info("[post-replay] script exited with %d", result.returncode)
        self._store_script_output(result)
        return result

    def _store_script_output(self, result: ScriptResult) -> None:
        if self.run_context is None:
            return
        try:
            with self.run_context.script_stdout_log.open("a", encoding="utf-8") as fh:
                fh.write(result.stdout)
            with self.run_context.script_stderr_log.open("a", encoding="utf-8") as fh:
                fh.write(result.stderr)
        except OSError as exc:
            logger.warning("[post-replay] could not store script output: %s", exc)

    async def _reload(self, outcome: PostReplayOutcome) -> None:
        target_url = self.url or str(getattr(self.page, "url", "") or "")
        if not self.fault.enabled:
            outcome.fault_cleared = await self._clear_fault(outcome)
            logger.info("[post-replay] reloading page")
            try:
                await self.page.reload(wait_until=RELOAD_WAIT_UNTIL, timeout=RELOAD_TIMEOUT_MS)
                outcome.reloaded = True
            except Exception as exc:
                logger.warning("[post-replay] reload failed: %s", exc)
                outcome.errors.append(f"reload: {exc}")
            return

        # Under packet loss the reload itself would hang: start it, abort it by
        # leaving for a blank page, restore the network, then load the real page.
        outcome.defensive_reload = True
        logger.info("[post-replay] reloading under fault, aborting in-flight requests first")
        reload_task = asyncio.ensure_future(
            self.page.reload(wait_until=RELOAD_WAIT_UNTIL, timeout=RELOAD_TIMEOUT_MS)
        )
        try:
            await asyncio.sleep(RELOAD_ABORT_SETTLE_MS / 1000.0)
            await self.page.goto(
                BLANK_PAGE_URL, wait_until=RELOAD_WAIT_UNTIL, timeout=BLANK_PAGE_TIMEOUT_MS
            )
        except Exception as exc:
            logger.warning("[post-replay] could not leave for blank page: %s", exc)
            outcome.errors.append(f"blank: {exc}")
        finally:
            await self._settle_reload_task(reload_task)

        outcome.fault_cleared = await self._clear_fault(outcome)
        if not target_url:
            outcome.errors.append("reload: no page url to return to")
            return
        logger.info("[post-replay] loading %s with restored network", target_url)
        try:
            await self.page.goto(target_url, wait_until=RELOAD_WAIT_UNTIL, timeout=RELOAD_TIMEOUT_MS)
            outcome.reloaded = True
        except Exception as exc:
            logger.warning("[post-replay] reload failed, refresh manually: %s", exc)
            outcome.errors.append(f"reload: {exc}")

    async def _settle_reload_task(self, task: "asyncio.Future[Any]") -> None:
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("[post-replay] aborted reload cancelled")
        except Exception as exc:
            logger.info("[post-replay] reload aborted as expected: %s", exc)

    async def _clear_fault(self, outcome: PostReplayOutcome) -> bool:
        result = await self.fault.clear()
        if result is None:
            outcome.errors.append("fault: network restore failed")
            return False
        return True

"""Chromium session with per-URL persisted storage state."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from pointer_replay.constants import RELOAD_TIMEOUT_MS, RELOAD_WAIT_UNTIL
from pointer_replay.frames import page_is_closed

logger = logging.getLogger(__name__)

_LAUNCH_ARGS = ["--start-maximized", "--disable-blink-features=AutomationControlled"]


def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("url is required")
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url):
        url = f"https://{url}"
    return url


def session_state_path(sessions_dir: Path, url: str) -> Path:
    sanitized = re.sub(r"[^a-zA-Z0-9.-]", "_", url)
    return sessions_dir / f"session_{sanitized}.json"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def launch_options(*, headless: bool = False) -> dict[str, Any]:
    args = list(_LAUNCH_ARGS)
    if _env_flag("INCOGNITO"):
        args.append("--incognito")
    kwargs: dict[str, Any] = {"headless": headless, "args": args}
    chrome_path = os.getenv("CHROME_PATH", "").strip()
    if chrome_path:
        kwargs["executable_path"] = chrome_path
    return kwargs


class BrowserSession:
    def __init__(self, url: str, sessions_dir: Path, *, headless: bool = False) -> None:
        self.url = normalize_url(url)
        self.sessions_dir = Path(sessions_dir)
        self.headless = headless
        self.state_path = session_state_path(self.sessions_dir, self.url)
        self.page: Any = None
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None

    async def start(self) -> Any:
        try:
            from playwright.async_api import async_playwright
        except Exception as exc:
            raise RuntimeError("Playwright is not installed. Run: pip install playwright") from exc

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(**launch_options(headless=self.headless))
        context_kwargs: dict[str, Any] = {"no_viewport": True}
        if self.state_path.exists():
            context_kwargs["storage_state"] = str(self.state_path)
            logger.info("[driver] restoring session from %s", self.state_path)
        self._context = await self._browser.new_context(**context_kwargs)
        self.page = await self._context.new_page()
        logger.info("[driver] opening %s", self.url)
        await self.page.goto(self.url, wait_until=RELOAD_WAIT_UNTIL, timeout=RELOAD_TIMEOUT_MS)
        return self.page

    async def save_state(self) -> Path | None:
        if self._context is None:
            return None
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        await self._context.storage_state(path=str(self.state_path))
        logger.info("[driver] session saved to %s", self.state_path)
        return self.state_path

    async def close(self) -> None:
        try:
            if self._context is not None and not page_is_closed(self.page):
                await self.save_state()
        except Exception as exc:
            logger.warning("[driver] could not save session: %s", exc)
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            self._context = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

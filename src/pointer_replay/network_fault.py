"""Simulated total packet loss applied to the page and every child frame."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pointer_replay.constants import (
    FAULT_BADGE_ID,
    FAULT_NETWORK_CONDITIONS,
    RESTORED_NETWORK_CONDITIONS,
)
from pointer_replay.frames import FrameRegistry, page_is_closed
from pointer_replay.overlay import set_badge

logger = logging.getLogger(__name__)


@dataclass
class FaultResult:
    enabled: bool
    applied: int = 0
    skipped: list[int] = field(default_factory=list)


class NetworkFaultController:
    """Each target gets its own debugging-protocol session, cached across toggles."""

    def __init__(self, page: Any, registry: FrameRegistry | None = None) -> None:
        self.page = page
        self.registry = registry or FrameRegistry(page)
        self._enabled = False
        self._sessions: dict[Any, Any] = {}
        self._network_enabled: set[Any] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def set_fault(self, enabled: bool) -> FaultResult:
        conditions = FAULT_NETWORK_CONDITIONS if enabled else RESTORED_NETWORK_CONDITIONS
        label = "enabling 100% packet loss" if enabled else "restoring network"
        logger.info("[fault] %s", label)
        result = FaultResult(enabled=enabled)

        # The main page must accept the condition; a failure here is reported to the caller.
        await self._apply(self.page, conditions)
        result.applied += 1

        handles = self.registry.snapshot()
        self._forget_stale({h.frame for h in handles if not h.is_main})
        for handle in handles:
            if handle.is_main:
                continue
            try:
                await self._apply(handle.frame, conditions)
            except Exception as exc:
                # Same-process and some cross-origin frames have no separate session.
                logger.warning("[fault] skipping frame %d: %s", handle.index, exc)
                result.skipped.append(handle.index)
                continue
            result.applied += 1

        self._enabled = enabled
        await set_badge(
            self.page,
            FAULT_BADGE_ID,
            enabled,
            text="⚠️ PACKET LOSS",
            background="#ffc107",
            color="black",
            top=50,
        )
        logger.info(
            "[fault] %s on %d target(s), %d skipped",
            "packet loss active" if enabled else "network restored",
            result.applied,
            len(result.skipped),
        )
        return result

    async def clear(self) -> FaultResult | None:
        """Restore the network; safe when no fault is active or the page is gone."""
        if page_is_closed(self.page):
            self._enabled = False
            return None
        try:
            return await self.set_fault(False)
        except Exception as exc:
            logger.warning("[fault] failed to restore network: %s", exc)
            return None

    async def _apply(self, target: Any, conditions: dict[str, Any]) -> None:
        key = target
        session = self._sessions.get(key)
        if session is None:
            session = await self.page.context.new_cdp_session(target)
            self._sessions[key] = session
        try:
            if key not in self._network_enabled:
                await session.send("Network.enable")
                self._network_enabled.add(key)
            await session.send("Network.emulateNetworkConditions", dict(conditions))
        except Exception:
            self._sessions.pop(key, None)
            self._network_enabled.discard(key)
            raise

    def _forget_stale(self, live_frames: set[Any]) -> None:
        for key in list(self._sessions):
            if key is self.page or key in live_frames:
                continue
            self._sessions.pop(key, None)
            self._network_enabled.discard(key)

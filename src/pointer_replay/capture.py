"""Per-frame pointer capture: listener injection, buffering and merge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pointer_replay.constants import DRAG_THRESHOLD_PX, RECORDING_BADGE_ID, RIPPLE_STYLE_ID
from pointer_replay.frames import FrameRegistry, dispose_handle
from pointer_replay.models import Action, merge_frame_logs
from pointer_replay.overlay import set_badge

logger = logging.getLogger(__name__)

# Returns a session object; the caller keeps it alive through the JS handle,
# so nothing is left on the frame's window.
_CAPTURE_SESSION_SCRIPT = """
([threshold, styleId]) => {
  const doc = document;
  const session = { actions: [], down: null, echoClick: false, active: true };

  const owns = (e) => {
    const t = e.target;
    if (!t) return false;
    return (t.ownerDocument || t) === doc;
  };
  const isCanvas = (e) => !!e.target && String(e.target.tagName || '').toUpperCase() === 'CANVAS';
  const moved = (e) => !!session.down && (
    Math.abs(e.clientX - session.down.x) > threshold ||
    Math.abs(e.clientY - session.down.y) > threshold
  );

  const ripple = (x, y, canvas) => {
    try {
      if (!doc.getElementById(styleId) && doc.head) {
        const style = doc.createElement('style');
        style.id = styleId;
        style.textContent =
          '@keyframes pointerReplayRipple {' +
          '0% { transform: scale(1); opacity: 1; }' +
          '100% { transform: scale(3); opacity: 0; } }';
        doc.head.appendChild(style);
      }
      if (!doc.body) return;
      const dot = doc.createElement('div');
      dot.style.cssText = [
        'position: fixed', `left: ${x}px`, `top: ${y}px`,
        'width: 20px', 'height: 20px', 'margin-left: -10px', 'margin-top: -10px',
        `border: 3px solid ${canvas ? '#00ff00' : '#ff0000'}`, 'border-radius: 50%',
        'pointer-events: none', 'z-index: 2147483644',
        'animation: pointerReplayRipple 0.6s ease-out',
      ].join(';');
      doc.body.appendChild(dot);
      setTimeout(() => dot.remove(), 600);
    } catch (_e) {}
  };

  const record = (kind, e, isDrag) => {
    const canvas = isCanvas(e);
    const x = Math.round(e.clientX);
    const y = Math.round(e.clientY);
    session.actions.push({
      kind, x, y, isDrag, isCanvasTarget: canvas, capturedAtMs: Date.now(),
    });
    if (kind === 'pointer-down' || kind === 'click') ripple(x, y, canvas);
  };

  const listeners = {
    mousemove: (e) => {
      if (!session.active || !session.down || !owns(e)) return;
      record('pointer-move', e, moved(e));
    },
    mousedown: (e) => {
      if (!session.active || !owns(e)) return;
      session.down = { x: e.clientX, y: e.clientY };
      session.echoClick = false;
      doc.addEventListener('mousemove', listeners.mousemove, true);
      record('pointer-down', e, false);
    },
    mouseup: (e) => {
      if (!session.active || !session.down || !owns(e)) return;
      record('pointer-up', e, moved(e));
      session.down = null;
      session.echoClick = true;
      doc.removeEventListener('mousemove', listeners.mousemove, true);
    },
    click: (e) => {
      if (!session.active || !owns(e)) return;
      if (session.echoClick) {
        session.echoClick = false;
        return;
      }
      if (session.down) return;
      record('click', e, false);
    },
  };

  doc.addEventListener('mousedown', listeners.mousedown, true);
  doc.addEventListener('mouseup', listeners.mouseup, true);
  doc.addEventListener('click', listeners.click, true);

  session.push = (action) => {
    session.actions.push(Object.assign({ capturedAtMs: Date.now() }, action));
  };
  session.stop = () => {
    session.active = false;
    session.down = null;
    doc.removeEventListener('mousedown', listeners.mousedown, true);
    doc.removeEventListener('mousemove', listeners.mousemove, true);
    doc.removeEventListener('mouseup', listeners.mouseup, true);
    doc.removeEventListener('click', listeners.click, true);
  };
  session.drain = () => {
    const out = session.actions.slice();
    session.actions.length = 0;
    return out;
  };
  return session;
}
"""


@dataclass
class FrameCaptureSession:
    index: int
    frame: Any
    handle: Any
    is_main: bool


class CaptureError(RuntimeError):
    """Raised when capture cannot start at all (main frame unreachable)."""


class CaptureSession:
    """One capture run across every frame reachable when it started."""

    def __init__(self, page: Any, registry: FrameRegistry | None = None) -> None:
        self.page = page
        self.registry = registry or FrameRegistry(page)
        self._frames: list[FrameCaptureSession] = []
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    async def begin(self) -> int:
        if self._active:
            raise CaptureError("capture already active")
        self._frames = []
        handles = self.registry.snapshot()
        logger.info("[capture] found %d frame(s), injecting listeners", len(handles))
        for handle in handles:
            try:
                js_session = await handle.frame.evaluate_handle(
                    _CAPTURE_SESSION_SCRIPT, [DRAG_THRESHOLD_PX, RIPPLE_STYLE_ID]
                )
            except Exception as exc:
                if handle.is_main:
                    raise CaptureError(f"could not inject into main frame: {exc}") from exc
                logger.warning("[capture] could not inject into frame %d: %s", handle.index, exc)
                continue
            self._frames.append(
                FrameCaptureSession(
                    index=handle.index,
                    frame=handle.frame,
                    handle=js_session,
                    is_main=handle.is_main,
                )
            )
        self._active = True
        await set_badge(self.page, RECORDING_BADGE_ID, True, text="\U0001F534 RECORDING")
        logger.info("[capture] listening in %d frame(s)", len(self._frames))
        return len(self._frames)

    async def record_network_toggle(self, toggle_kind: str) -> bool:
        if not self._active:
            return False
        main = next((s for s in self._frames if s.is_main), None)
        if main is None:
            logger.warning("[capture] no main-frame session, network toggle not recorded")
            return False
        try:
            await main.handle.evaluate(
                "(s, kind) => s.push({ kind: 'network-toggle', networkToggleKind: kind })",
                toggle_kind,
            )
        except Exception as exc:
            logger.warning("[capture] failed to record network toggle: %s", exc)
            return False
        logger.info("[capture] recorded %s", toggle_kind)
        return True

    async def end(self) -> list[Action]:
        if not self._active:
            return []
        self._active = False
        await set_badge(self.page, RECORDING_BADGE_ID, False)

        for session in self._frames:
            try:
                await session.handle.evaluate("s => s.stop()")
            except Exception as exc:
                logger.debug("[capture] frame %d listener removal failed: %s", session.index, exc)

        per_frame: list[list[Action]] = []
        for session in self._frames:
            try:
                offset = await self.registry.offset_of(session.frame)
                raw = await session.handle.evaluate("s => s.drain()")
            except Exception as exc:
                logger.warning("[capture] skipping inaccessible frame %d: %s", session.index, exc)
                continue
            finally:
                await dispose_handle(session.handle)
            actions: list[Action] = []
            for item in raw or []:
                try:
                    actions.append(Action.from_dict(item).with_frame(session.index, offset))
                except ValueError as exc:
                    logger.warning("[capture] dropping malformed event from frame %d: %s", session.index, exc)
            per_frame.append(actions)
        self._frames = []
        merged = merge_frame_logs(per_frame)
        logger.info("[capture] stopped with %d action(s)", len(merged))
        return merged

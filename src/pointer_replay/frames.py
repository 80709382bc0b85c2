"""Frame enumeration and frame-to-viewport offset helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pointer_replay.models import FrameOffset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameHandle:
    index: int
    frame: Any
    is_main: bool


def frame_is_detached(frame: Any) -> bool:
    checker = getattr(frame, "is_detached", None)
    if callable(checker):
        try:
            return bool(checker())
        except Exception:
            return True
    return False


def page_is_closed(page: Any | None) -> bool:
    if page is None:
        return True
    checker = getattr(page, "is_closed", None)
    if callable(checker):
        try:
            return bool(checker())
        except Exception:
            return True
    return False


def is_page_closed_error(exc: BaseException) -> bool:
    msg = str(exc or "").lower()
    return (
        "target page" in msg and "closed" in msg
    ) or "context or browser has been closed" in msg or "page closed" in msg


class FrameRegistry:
    """Snapshot of the page's frame tree, re-read at every operation boundary."""

    def __init__(self, page: Any) -> None:
        self.page = page

    def snapshot(self) -> list[FrameHandle]:
        main = self.page.main_frame
        handles: list[FrameHandle] = []
        for index, frame in enumerate(self.page.frames):
            if frame is not main and frame_is_detached(frame):
                continue
            handles.append(FrameHandle(index=index, frame=frame, is_main=frame is main))
        return handles

    def frame_at(self, index: int) -> Any | None:
        frames = self.page.frames
        if 0 <= index < len(frames):
            return frames[index]
        return None

    async def offset_of(self, frame: Any) -> FrameOffset:
        """Top-left of the frame's content box in top-level viewport pixels."""
        if frame is self.page.main_frame or getattr(frame, "parent_frame", None) is None:
            return FrameOffset(0.0, 0.0)
        owner = await frame.frame_element()
        try:
            box = await owner.bounding_box()
            if box is None:
                raise RuntimeError("frame owner element is not rendered")
            # bounding_box() already accounts for every ancestor frame.
            border = await owner.evaluate(
                "el => ({x: el.clientLeft || 0, y: el.clientTop || 0})"
            )
        finally:
            await dispose_handle(owner)
        border = border if isinstance(border, dict) else {}
        return FrameOffset(
            x=float(box["x"]) + float(border.get("x") or 0),
            y=float(box["y"]) + float(border.get("y") or 0),
        )


async def dispose_handle(handle: Any) -> None:
    dispose = getattr(handle, "dispose", None)
    if not callable(dispose):
        return
    try:
        await dispose()
    except Exception:
        logger.debug("[frames] dispose failed", exc_info=True)

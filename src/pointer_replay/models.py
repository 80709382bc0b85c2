"""Data models and strict decoding for recorded pointer actions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable

from pointer_replay.constants import (
    ACTION_KINDS,
    LEGACY_KIND_ALIASES,
    LEGACY_TOGGLE_ALIASES,
    NETWORK_TOGGLE_KINDS,
    POINTER_KINDS,
)


class RecordingFormatError(ValueError):
    """Raised when a recording payload has neither accepted shape."""


@dataclass(frozen=True)
class FrameOffset:
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_dict(cls, payload: Any) -> "FrameOffset":
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ValueError("'frameOffset' must be an object with x and y")
        return cls(
            x=_expect_number(payload, "x", default=0.0),
            y=_expect_number(payload, "y", default=0.0),
        )

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Action:
    kind: str
    captured_at_ms: float
    x: int | None = None
    y: int | None = None
    is_drag: bool = False
    is_canvas_target: bool = False
    frame_index: int = 0
    frame_offset: FrameOffset = field(default_factory=FrameOffset)
    network_toggle_kind: str | None = None

    @property
    def is_pointer(self) -> bool:
        return self.kind in POINTER_KINDS

    def global_point(self) -> tuple[float, float]:
        if self.x is None or self.y is None:
            raise ValueError(f"{self.kind} action has no coordinates")
        return (self.frame_offset.x + self.x, self.frame_offset.y + self.y)

    def with_frame(self, frame_index: int, frame_offset: FrameOffset) -> "Action":
        return Action(
            kind=self.kind,
            captured_at_ms=self.captured_at_ms,
            x=self.x,
            y=self.y,
            is_drag=self.is_drag,
            is_canvas_target=self.is_canvas_target,
            frame_index=frame_index,
            frame_offset=frame_offset,
            network_toggle_kind=self.network_toggle_kind,
        )

    @classmethod
    def from_dict(cls, payload: Any) -> "Action":
        if not isinstance(payload, dict):
            raise ValueError("action must be an object")
        raw_kind = payload.get("kind", payload.get("type"))
        if not isinstance(raw_kind, str):
            raise ValueError("action 'kind' must be a string")
        kind = raw_kind if raw_kind in ACTION_KINDS else LEGACY_KIND_ALIASES.get(raw_kind, "")
        if not kind:
            raise ValueError(f"Unknown action kind '{raw_kind}'")

        stamp_key = "capturedAtMs" if "capturedAtMs" in payload else "timestamp"
        captured_at_ms = _expect_number(payload, stamp_key)

        if kind == "network-toggle":
            raw_toggle = payload.get("networkToggleKind", payload.get("networkActionType"))
            toggle = raw_toggle if raw_toggle in NETWORK_TOGGLE_KINDS else LEGACY_TOGGLE_ALIASES.get(
                str(raw_toggle), ""
            )
            if not toggle:
                raise ValueError(f"Unknown network toggle '{raw_toggle}'")
            return cls(
                kind=kind,
                captured_at_ms=captured_at_ms,
                frame_index=_expect_int(payload, "frameIndex", default=0),
                frame_offset=FrameOffset.from_dict(payload.get("frameOffset")),
                network_toggle_kind=toggle,
            )

        canvas_key = "isCanvasTarget" if "isCanvasTarget" in payload else "isCanvas"
        return cls(
            kind=kind,
            captured_at_ms=captured_at_ms,
            x=int(round(_expect_number(payload, "x"))),
            y=int(round(_expect_number(payload, "y"))),
            is_drag=_expect_bool(payload, "isDrag", default=False),
            is_canvas_target=_expect_bool(payload, canvas_key, default=False),
            frame_index=_expect_int(payload, "frameIndex", default=0),
            frame_offset=FrameOffset.from_dict(payload.get("frameOffset")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, "capturedAtMs": self.captured_at_ms}
        if self.kind == "network-toggle":
            out["networkToggleKind"] = self.network_toggle_kind
        else:
            out["x"] = self.x
            out["y"] = self.y
            out["isDrag"] = self.is_drag
            out["isCanvasTarget"] = self.is_canvas_target
        out["frameIndex"] = self.frame_index
        out["frameOffset"] = self.frame_offset.to_dict()
        return out


@dataclass(frozen=True)
class RecordingMetadata:
    source_url: str = ""
    recorded_at: str = ""
    fault_was_used_during_capture: bool = False

    @classmethod
    def from_dict(cls, payload: Any) -> "RecordingMetadata":
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ValueError("'metadata' must be an object")
        url_key = "sourceUrl" if "sourceUrl" in payload else "url"
        fault_key = (
            "faultWasUsedDuringCapture"
            if "faultWasUsedDuringCapture" in payload
            else "packetLossEnabledInRecording"
        )
        return cls(
            source_url=_expect_str(payload, url_key, default=""),
            recorded_at=_expect_str(payload, "recordedAt", default=""),
            fault_was_used_during_capture=_expect_bool(payload, fault_key, default=False),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceUrl": self.source_url,
            "recordedAt": self.recorded_at,
            "faultWasUsedDuringCapture": self.fault_was_used_during_capture,
        }


@dataclass(frozen=True)
class Recording:
    metadata: RecordingMetadata
    actions: tuple[Action, ...]
    legacy: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "actions": [action.to_dict() for action in self.actions],
        }


def decode_recording(payload: Any) -> Recording:
    """Decode a wrapped recording, else a bare action list; reject anything else."""
    if isinstance(payload, dict):
        actions = payload.get("actions")
        if not isinstance(actions, list):
            raise RecordingFormatError("Recording object has no 'actions' list")
        try:
            metadata = RecordingMetadata.from_dict(payload.get("metadata"))
            decoded = tuple(_decode_actions(actions))
        except ValueError as exc:
            raise RecordingFormatError(str(exc)) from exc
        return Recording(metadata=metadata, actions=decoded)
    if isinstance(payload, list):
        try:
            decoded = tuple(_decode_actions(payload))
        except ValueError as exc:
            raise RecordingFormatError(str(exc)) from exc
        return Recording(metadata=RecordingMetadata(), actions=decoded, legacy=True)
    raise RecordingFormatError(
        f"Recording must be an object or a list, got {type(payload).__name__}"
    )


def merge_frame_logs(per_frame: Iterable[Iterable[Action]]) -> list[Action]:
    merged: list[Action] = []
    for actions in per_frame:
        merged.extend(actions)
    # sorted() is stable: equal stamps keep frame order.
    return sorted(merged, key=lambda action: action.captured_at_ms)


def fault_used(actions: Iterable[Action]) -> bool:
    return any(
        action.kind == "network-toggle" and action.network_toggle_kind == "enable-fault"
        for action in actions
    )


def _decode_actions(items: list[Any]) -> Iterable[Action]:
    for idx, item in enumerate(items):
        try:
            yield Action.from_dict(item)
        except ValueError as exc:
            raise ValueError(f"action {idx + 1}: {exc}") from exc


_MISSING = object()


def _expect_number(payload: dict[str, Any], key: str, default: Any = _MISSING) -> float:
    value = payload.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise ValueError(f"'{key}' is required")
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number")
    try:
        finite = math.isfinite(value)
    except OverflowError:
        finite = False
    if not finite:
        raise ValueError(f"'{key}' must be a finite number")
    return value


def _expect_int(payload: dict[str, Any], key: str, default: Any = _MISSING) -> int:
    value = _expect_number(payload, key, default=default)
    if int(value) != value:
        raise ValueError(f"'{key}' must be an integer")
    return int(value)


def _expect_bool(payload: dict[str, Any], key: str, default: Any = _MISSING) -> bool:
    value = payload.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise ValueError(f"'{key}' is required")
        return default
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be a boolean")
    return value


def _expect_str(payload: dict[str, Any], key: str, default: Any = _MISSING) -> str:
    value = payload.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise ValueError(f"'{key}' is required")
        return default
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value

"""Recorder configuration: JSON file with environment overrides."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from pointer_replay.constants import DRAG_INTERPOLATION_STEPS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.json")

# JSON key -> dataclass attribute.
_FILE_KEYS = {
    "postReplayScript": "post_replay_script",
    "postReplayWaitTime": "post_replay_wait_ms",
    "postReloadWaitTime": "post_reload_wait_ms",
    "scriptTimeoutSeconds": "script_timeout_seconds",
    "recordingsDir": "recordings_dir",
    "sessionsDir": "sessions_dir",
    "clearLogOnLoadFailure": "clear_log_on_load_failure",
    "networkTrackingStartPatterns": "tracking_start_patterns",
    "networkTrackingFilterPatterns": "tracking_filter_patterns",
    "networkTrackingSuffix": "tracking_suffix",
    "readySignalPattern": "ready_signal_pattern",
    "readyWaitTime": "ready_wait_ms",
    "dragSteps": "drag_steps",
}

_PATTERN_FIELDS = {"tracking_start_patterns", "tracking_filter_patterns"}


def _default_script() -> str:
    return "./post-replay.bat" if sys.platform == "win32" else "./post-replay.sh"


@dataclass
class RecorderConfig:
    post_replay_script: str = field(default_factory=_default_script)
    post_replay_wait_ms: int = 6000
    post_reload_wait_ms: int = 8000
    script_timeout_seconds: int = 120
    recordings_dir: str = "./recordings"
    sessions_dir: str = "./sessions"
    clear_log_on_load_failure: bool = False
    tracking_start_patterns: list[str] = field(default_factory=list)
    tracking_filter_patterns: list[str] = field(default_factory=list)
    tracking_suffix: str = "_big"
    ready_signal_pattern: str = "nop"
    ready_wait_ms: int = 30000
    drag_steps: int = DRAG_INTERPOLATION_STEPS
    source_path: Path | None = None

    @property
    def tracking_enabled(self) -> bool:
        return bool(self.tracking_start_patterns)

    def reload(self) -> list[str]:
        """Re-read the backing file; return the names of fields that changed."""
        fresh = load_config(self.source_path)
        changed: list[str] = []
        for f in fields(self):
            if f.name == "source_path":
                continue
            old = getattr(self, f.name)
            new = getattr(fresh, f.name)
            if old != new:
                changed.append(f.name)
                setattr(self, f.name, new)
        return changed


def load_config(path: Path | None = None) -> RecorderConfig:
    config_path = Path(path) if path is not None else _config_path_from_env()
    config = RecorderConfig(source_path=config_path)
    payload: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as fh:
                loaded = json.load(fh)
            if isinstance(loaded, dict):
                payload = loaded
                logger.info("[config] loaded %s", config_path)
            else:
                logger.warning("[config] %s is not a JSON object, using defaults", config_path)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("[config] error reading %s, using defaults: %s", config_path, exc)
    else:
        logger.info("[config] %s not found, using defaults", config_path)

    for key, attr in _FILE_KEYS.items():
        if key not in payload or payload[key] in (None, ""):
            continue
        _assign(config, attr, payload[key])
    _apply_env_overrides(config)
    return config


def _config_path_from_env() -> Path:
    raw = os.getenv("POINTER_REPLAY_CONFIG", "").strip()
    return Path(raw) if raw else DEFAULT_CONFIG_PATH


def _apply_env_overrides(config: RecorderConfig) -> None:
    for attr in (
        "post_replay_script",
        "post_replay_wait_ms",
        "post_reload_wait_ms",
        "script_timeout_seconds",
        "recordings_dir",
        "sessions_dir",
        "clear_log_on_load_failure",
    ):
        raw = os.getenv(f"POINTER_REPLAY_{attr.upper()}")
        if raw is None or not raw.strip():
            continue
        _assign(config, attr, raw.strip())


def _assign(config: RecorderConfig, attr: str, value: Any) -> None:
    current = getattr(config, attr)
    try:
        if attr in _PATTERN_FIELDS:
            coerced: Any = _as_patterns(value)
        elif isinstance(current, bool):
            coerced = _as_bool(value)
        elif isinstance(current, int):
            coerced = int(value)
        else:
            coerced = str(value)
    except (TypeError, ValueError):
        logger.warning("[config] ignoring invalid value for %s: %r", attr, value)
        return
    setattr(config, attr, coerced)


def _as_patterns(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, list):
        return [str(item) for item in value if str(item)]
    raise TypeError("patterns must be a string or a list of strings")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    low = str(value).strip().lower()
    if low in {"1", "true", "yes", "on"}:
        return True
    if low in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {value!r}")

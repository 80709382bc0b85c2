"""Console and run-log handlers for the pointer_replay loggers."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_TAG = "_pointer_replay_handler"


def _parse_log_level(raw: str, default: int = logging.INFO) -> int:
    value = logging.getLevelName(str(raw or "").strip().upper())
    return value if isinstance(value, int) else default


def configure_logging(run_log: Path | None = None, level: str | None = None) -> logging.Logger:
    root = logging.getLogger("pointer_replay")
    root.setLevel(_parse_log_level(level or os.getenv("POINTER_REPLAY_LOG_LEVEL", "INFO")))
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(_FORMAT, datefmt="%H:%M:%S")
    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(formatter)
    setattr(stream, _HANDLER_TAG, True)
    root.addHandler(stream)

    if run_log is not None:
        run_log.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(run_log, encoding="utf-8")
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)

    root.propagate = False
    return root

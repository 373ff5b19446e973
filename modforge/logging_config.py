"""Logging setup for hosts that run modforge directly (scripts, watch).

Library code only ever calls ``logging.getLogger(__name__)``; configuring
handlers is left to whoever owns the process.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_LEVEL_ENV_VAR = "LOG_LEVEL"


class _PlainFormatter(logging.Formatter):
    """``2026-01-01 12:00:00 INFO     [            pipeline] message``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        name = record.name.split(".")[-1][:20]
        text = f"{ts} {record.levelname:<8s} [{name:>20s}] {record.getMessage()}"
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Attach a stderr handler to the ``modforge`` logger (once).

    *level* falls back to ``$LOG_LEVEL`` and then INFO.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger("modforge")
    root.setLevel(level)
    if not any(getattr(h, "_modforge", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_PlainFormatter())
        handler._modforge = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return root

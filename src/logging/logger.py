# src/logging/logger.py - v1
"""Log formatters and setup for the gapflow logger tree.

Every record is stamped with the run and step it was emitted under
(see gapflow.logging.context). The JSON form puts them at top level so
a run's lines can be filtered without parsing nested objects.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TextIO

from gapflow.logging.context import get_context

if TYPE_CHECKING:
    from gapflow.config.settings import Settings

ROOT_LOGGER = "gapflow"

_TEXT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, run_id, step."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(get_context().as_dict())

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Console line: time level logger [run/step] - message."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        line = (
            f"{_timestamp(record).strftime(_TEXT_TIME_FORMAT)} "
            f"{record.levelname:<8s} {record.name}"
        )
        if ctx.run_id:
            scope = f"{ctx.run_id}/{ctx.step}" if ctx.step else ctx.run_id
            line += f" [{scope}]"
        line += f" - {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


_FORMATTERS: dict[str, type[logging.Formatter]] = {
    "json": JsonFormatter,
    "text": TextFormatter,
}


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure the gapflow logger tree and return its root.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
        log_format: "json" or "text".
        log_file: Optional file, rotated by size (see handlers.py).
        rotation: Max file size before rotation, e.g. "10MB".
        retention: Rotated files kept.
        stream: Console stream (default stdout).

    Raises:
        ValueError: Unknown log_format.
    """
    if log_format not in _FORMATTERS:
        raise ValueError(
            f"Unknown log format {log_format!r}, expected one of {sorted(_FORMATTERS)}"
        )
    formatter = _FORMATTERS[log_format]()

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        from gapflow.logging.handlers import create_rotating_handler

        file_handler = create_rotating_handler(
            log_file, rotation=rotation, retention=retention
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def setup_logging_from_settings(settings: Settings, **overrides: Any) -> logging.Logger:
    """setup_logging() driven by the LOG_* settings; keyword overrides win."""
    options: dict[str, Any] = {
        "level": settings.log_level,
        "log_format": settings.log_format,
        "log_file": str(settings.log_file) if settings.log_file else None,
        "rotation": settings.log_rotation,
        "retention": settings.log_retention,
    }
    options.update(overrides)
    return setup_logging(**options)

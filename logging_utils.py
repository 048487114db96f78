"""Tagged logging for the estimator and its config layer.

``log_event(level, tag, message, **fields)`` writes one line per event:
``[LEVEL][Tag] message | key=value ...``. Float fields are rendered with
three decimals so per-frame numbers stay readable.
"""
from __future__ import annotations

import logging
from typing import Any

_logger = logging.getLogger("bpmsense")
if not _logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s][%(tag)s] %(message)s")
    handler.setFormatter(formatter)
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


class _TagAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: dict[str, Any]):
        kwargs.setdefault("extra", {})["tag"] = kwargs.pop("tag", "BPM")
        return msg, kwargs


_logger_adapter = _TagAdapter(_logger, {})


def _level_value(level: str | None) -> int:
    name = str(level or "INFO").strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log ``message`` under ``tag``; ``fields`` are appended as key=value."""
    level_val = _level_value(level)
    if not _logger.isEnabledFor(level_val):
        return
    if fields:
        extras = " ".join(f"{k}={_format_value(v)}" for k, v in fields.items())
        message = f"{message} | {extras}"
    _logger_adapter.log(level_val, message, tag=tag)


def set_log_level(level: str) -> None:
    """Set global log level (DEBUG/INFO/WARNING/ERROR); unknown names mean INFO."""
    _logger.setLevel(_level_value(level))


def get_log_level() -> str:
    return logging.getLevelName(_logger.level)

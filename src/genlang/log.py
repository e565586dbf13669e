"""Logging setup for genlang.

All loggers live under the ``genlang`` namespace. Nothing is printed until
``configure_logging()`` is called or one of the environment variables below
is set before import:

* ``GENLANG_DEBUG=1``: log everything at DEBUG.
* ``GENLANG_LOG_LEVEL``: DEBUG, INFO, WARNING or ERROR.
* ``GENLANG_LOG_FORMAT``: ``text`` (default) or ``json``.

Usage::

    from genlang.log import LogContext, configure_logging, get_logger

    configure_logging("DEBUG")
    with LogContext(model="models/gemini-pro"):
        get_logger("client").debug("sending")
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_NAMESPACE = "genlang"

_bound: ContextVar[dict[str, Any] | None] = ContextVar("_genlang_log_bound", default=None)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_RESET = "\033[0m"
_DIM = "\033[2m"

# level -> (single-letter tag, ANSI color)
_LEVEL_STYLE: dict[int, tuple[str, str]] = {
    logging.DEBUG: ("D", "\033[2m"),
    logging.INFO: ("I", "\033[32m"),
    logging.WARNING: ("W", "\033[33m"),
    logging.ERROR: ("E", "\033[31m"),
    logging.CRITICAL: ("C", "\033[1;31m"),
}


def _short_name(name: str) -> str:
    if name.startswith(f"{_NAMESPACE}."):
        return name[len(_NAMESPACE) + 1 :]
    return name


class TextFormatter(logging.Formatter):
    """One line per record: time, level letter, logger, bound context, message."""

    def format(self, record: logging.LogRecord) -> str:
        tag, color = _LEVEL_STYLE.get(record.levelno, ("?", ""))
        parts = [
            f"{_DIM}{self.formatTime(record, '%H:%M:%S')}{_RESET}",
            f"{color}{tag} {_short_name(record.name)}{_RESET}",
        ]
        bound = _bound.get()
        if bound:
            parts.append(" ".join(f"{k}={v}" for k, v in bound.items()))
        parts.append(f"| {record.getMessage()}")
        line = " ".join(parts)

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line = f"{line}\n{color}{record.exc_text}{_RESET}"
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        bound = _bound.get()
        if bound:
            entry["context"] = dict(bound)
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_FORMATTERS: dict[str, type[logging.Formatter]] = {
    "text": TextFormatter,
    "json": JsonFormatter,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Return the logger ``genlang.<name>``; names already under ``genlang`` are kept."""
    if name != _NAMESPACE and not name.startswith(f"{_NAMESPACE}."):
        name = f"{_NAMESPACE}.{name}"
    return logging.getLogger(name)


_lock = threading.Lock()
_configured = False


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.WARNING


def configure_logging(
    level: str | int = "WARNING",
    fmt: str = "text",
    *,
    force: bool = False,
) -> None:
    """Attach a stderr handler to the ``genlang`` logger.

    Only the first call has an effect unless ``force`` is set.

    Args:
        level: Level name or number.
        fmt: ``"text"`` or ``"json"``.
        force: Replace the handler installed by an earlier call.

    Raises:
        ValueError: If ``fmt`` is not a known format.
    """
    global _configured

    if fmt not in _FORMATTERS:
        raise ValueError(f"Unknown log format {fmt!r}; expected one of {sorted(_FORMATTERS)}")

    with _lock:
        if _configured and not force:
            return
        root = logging.getLogger(_NAMESPACE)
        root.handlers.clear()
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_FORMATTERS[fmt]())
        root.addHandler(handler)
        root.setLevel(_resolve_level(level))
        _configured = True


def reset_logging() -> None:
    """Drop handlers and return to the unconfigured state. Used by tests."""
    global _configured
    with _lock:
        _configured = False
        root = logging.getLogger(_NAMESPACE)
        root.handlers.clear()
        root.setLevel(logging.WARNING)


_ENV_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_from_env() -> bool:
    """Configure logging from ``GENLANG_*`` environment variables.

    ``GENLANG_DEBUG=1`` wins over ``GENLANG_LOG_LEVEL``; an unknown level
    falls back to WARNING. Does nothing when neither variable is set.

    Returns:
        Whether a handler was configured.
    """
    debug = os.environ.get("GENLANG_DEBUG", "") == "1"
    if not debug and "GENLANG_LOG_LEVEL" not in os.environ:
        return False

    level = os.environ.get("GENLANG_LOG_LEVEL", "WARNING").upper()
    if level not in _ENV_LEVELS:
        level = "WARNING"
    if debug:
        level = "DEBUG"
    fmt = os.environ.get("GENLANG_LOG_FORMAT", "text").lower()
    if fmt not in _FORMATTERS:
        fmt = "text"
    configure_logging(level, fmt, force=True)
    return True


configure_from_env()


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class LogContext:
    """Bind key-value pairs to every record logged inside the ``with`` block.

    Bindings nest and are task-local, so concurrent requests keep their own
    ``model``/``method`` tags::

        with LogContext(model="models/gemini-pro", method="generateContent"):
            log.debug("sending")
    """

    def __init__(self, **bindings: Any) -> None:
        self._bindings = bindings
        self._token: Any = None

    def __enter__(self) -> LogContext:
        merged = dict(_bound.get() or {})
        merged.update(self._bindings)
        self._token = _bound.set(merged)
        return self

    def __exit__(self, *_: object) -> None:
        if self._token is not None:
            _bound.reset(self._token)
            self._token = None


def current_context() -> dict[str, Any]:
    """Return a copy of the bindings active in this task."""
    return dict(_bound.get() or {})

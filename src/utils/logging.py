"""Shared logging configuration and logger factory."""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_LOG_DIR_ENV = "GALLERY_BUILDER_LOG_DIR"
_LOG_LEVEL_ENV = "GALLERY_BUILDER_LOG_LEVEL"


def _log_root() -> Path:
    override = os.getenv(_LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return _PROJECT_ROOT / "log"


class _StructuredFormatter(logging.Formatter):
    """Formatter that renders records as single-line JSON objects (JSONL-friendly)."""

    def format(self, record: logging.LogRecord) -> str:
        standard_keys = logging.makeLogRecord({}).__dict__.keys()
        extras: Dict[str, Any] = {
            key: value for key, value in record.__dict__.items() if key not in standard_keys and key != "stack_info"
        }

        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if extras:
            payload.update(extras)

        try:
            return json.dumps(payload, ensure_ascii=False, sort_keys=True)
        except TypeError:
            safe_payload: Dict[str, Any] = {
                key: (str(value) if not isinstance(value, (str, int, float, bool, type(None))) else value)
                for key, value in payload.items()
            }
            return json.dumps(safe_payload, ensure_ascii=False, sort_keys=True)


class _ConsoleFormatter(logging.Formatter):
    """Formatter for console output that renders ``extra`` fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        standard_keys = logging.makeLogRecord({}).__dict__.keys()
        ignore_keys = set(standard_keys) | {"stack_info", "asctime", "message"}
        extras: Dict[str, Any] = {key: value for key, value in record.__dict__.items() if key not in ignore_keys}

        if not extras:
            return base

        parts = [f"{key}={value!r}" for key, value in sorted(extras.items())]
        return f"{base} | " + " ".join(parts)


def _configure_root_logger() -> None:
    """Configure the root logger with console and file handlers if needed."""

    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(_resolve_level(os.getenv(_LOG_LEVEL_ENV)))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_ConsoleFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(console_handler)

    # Structured JSON lines in a rotating file; the console stays human-readable.
    try:
        log_root = _log_root()
        log_root.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_root / "gallery_builder.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(_StructuredFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(file_handler)
    except OSError:
        # File logging is optional; a read-only checkout still gets console output.
        pass


class _StructuredAdapter(logging.LoggerAdapter):
    """Adapter that merges call-site ``extra`` fields over the base ``extra``."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if level:
        resolved = logging.getLevelName(level.strip().upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO


def set_log_level(level: str | int | None) -> int:
    """Set the root log level by name or number; unknown names fall back to INFO."""

    _configure_root_logger()
    resolved = _resolve_level(level)
    logging.getLogger().setLevel(resolved)
    return resolved


def get_logger(name: str, extra: Dict[str, Any] | None = None) -> logging.LoggerAdapter:
    """Return a structured logger adapter for the given name.

    The first call configures the root handlers. Callers can pass a base
    ``extra`` mapping that is attached to every log record emitted through the
    returned adapter; ``extra`` fields passed at the call site are merged
    over it.
    """

    _configure_root_logger()
    logger = logging.getLogger(name)
    return _StructuredAdapter(logger, extra or {})


__all__ = ["get_logger", "set_log_level"]

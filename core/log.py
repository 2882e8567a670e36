"""
core/log.py -- Logging setup and structured context for the SSO service.

Three environments, chosen by Settings.env:
  local -- human-readable text, DEBUG
  dev   -- JSON lines, DEBUG
  prod  -- human-readable text, INFO

Structured context: callers attach key-value pairs (op, email, user_id, ...)
through bind(), which returns a LoggerAdapter whose extras are merged with
any per-call extra= argument. JSONFormatter surfaces those keys as fields;
the text format appends them as key=value pairs.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

ENV_LOCAL = "local"
ENV_DEV = "dev"
ENV_PROD = "prod"

# Keys lifted from LogRecord.__dict__ into structured output when present.
_CONTEXT_KEYS = ("op", "email", "user_id", "app_id", "is_admin")

_TEXT_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s%(context)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _context_of(record: logging.LogRecord) -> dict:
    return {k: record.__dict__[k] for k in _CONTEXT_KEYS if record.__dict__.get(k) is not None}


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log.update(_context_of(record))
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Plain text with structured context appended as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT, datefmt=_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        ctx = _context_of(record)
        record.context = "".join(f" {k}={v}" for k, v in ctx.items())
        return super().format(record)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges bound context with per-call extra= values.

    The stock adapter replaces a call's extra with its own; here the call
    wins on key collisions and both sets reach the record.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def bind(logger: logging.Logger | logging.LoggerAdapter, **context) -> ContextAdapter:
    """Return an adapter that adds context to every record logged through it."""
    return ContextAdapter(logger, context)


def setup_logging(env: str) -> logging.Logger:
    """Configure the root logger for env and return the "sso" logger.

    Replaces any handlers already on the root logger, so calling it twice
    (e.g. lifespan restarts in tests) does not duplicate output.
    """
    if env == ENV_DEV:
        formatter: logging.Formatter = JSONFormatter()
        level = logging.DEBUG
    elif env == ENV_PROD:
        formatter = TextFormatter()
        level = logging.INFO
    else:
        formatter = TextFormatter()
        level = logging.DEBUG

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    return logging.getLogger("sso")

"""Logging setup for the study proxy and the session services.

Records carry a small set of context fields (request, question key, stream
event). Values passed through ``extra=`` win; anything missing is filled from
the context bound with :func:`bind_log_context`, so service code running
inside a request or a keyed interview call does not have to pass them along.

Output is plain text, text with context, or one JSON object per line,
selected by ``settings.log_format``.
"""

import json
import logging
import logging.config
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from aceai.app.core.config import settings

CONTEXT_FIELDS = (
    "request_id",
    "path",
    "method",
    "status_code",
    "duration_ms",
    "question_key",
    "event",
)

_bound_context: ContextVar[Dict[str, Any]] = ContextVar("aceai_log_context", default={})

# LogRecord attributes and keys the JSON layout already emits.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "timestamp", "logger", "level", "source"}


@contextmanager
def bind_log_context(**fields: Any) -> Iterator[None]:
    """Attach context fields to every record logged inside the block."""
    merged = {**_bound_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _bound_context.set(merged)
    try:
        yield
    finally:
        _bound_context.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_bound_context.get())


class ContextFilter(logging.Filter):
    """Gives every record all context fields, taken from the bound context or None."""

    def filter(self, record: logging.LogRecord) -> bool:
        bound = _bound_context.get()
        for field in CONTEXT_FIELDS:
            if getattr(record, field, None) is None:
                setattr(record, field, bound.get(field))
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Context fields are top-level keys and are left out when unset. Any other
    ``extra=`` keys are grouped under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_FORMATTERS: Dict[str, Dict[str, Any]] = {
    "text": {"format": _TEXT_FORMAT},
    "structured": {
        "format": _TEXT_FORMAT + " - request_id=%(request_id)s - question_key=%(question_key)s"
    },
    "json": {"()": JSONFormatter},
}


def _stream_handler(stream, level: str, formatter: str) -> Dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "stream": stream,
        "filters": ["context"],
    }


def get_logging_config() -> Dict[str, Any]:
    """Build a ``logging.config.dictConfig`` dictionary from settings.

    Unknown formats fall back to plain text. Records at ERROR and above are
    also written to stderr.
    """
    log_format = str(getattr(settings, "log_format", "text")).lower()
    if log_format not in _FORMATTERS:
        log_format = "text"
    log_level = str(getattr(settings, "log_level", "INFO")).upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {log_format: _FORMATTERS[log_format]},
        "filters": {"context": {"()": ContextFilter}},
        "handlers": {
            "console": _stream_handler(sys.stdout, log_level, log_format),
            "error_console": _stream_handler(sys.stderr, "ERROR", log_format),
        },
        "loggers": {
            "aceai": {
                "level": log_level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
            "uvicorn": {"level": log_level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config())

    # Per-request access lines come from RequestIdMiddleware instead
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = "aceai") -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    question_key: Optional[str] = None,
    event: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, dropping fields that are None.

    Example:
        >>> logger.info("Review submitted", extra=get_log_context(question_key="short-0"))
    """
    context = {"request_id": request_id, "question_key": question_key, "event": event, **extra}
    return {k: v for k, v in context.items() if v is not None}

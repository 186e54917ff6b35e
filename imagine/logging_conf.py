"""JSON logging with request and job correlation fields."""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from imagine.config import settings

_ctx_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_ctx_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)
_ctx_attempt: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "attempt", default=None
)

_ZONE = ZoneInfo(settings.tz)

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JsonLogFormatter(logging.Formatter):
    """Render each record as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed %-args
            message = str(record.msg)

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, _ZONE).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "func": record.funcName,
            "line": record.lineno,
            "message": message,
            **get_log_context(),
        }

        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


_configured = False


def configure_logging(level: int | str = logging.INFO) -> None:
    """Route the root and uvicorn loggers through a single JSON handler."""

    global _configured
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if _configured:
        logging.getLogger().setLevel(level)
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonLogFormatter())
    root_logger.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True
    # The request middleware already logs one line per request.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True


def set_request_id(value: str | None) -> None:
    _ctx_request_id.set(value)


def set_job_context(job_id: str | None, attempt: int | None) -> None:
    _ctx_job_id.set(job_id)
    _ctx_attempt.set(attempt)


def set_attempt(value: int | None) -> None:
    """Set the attempt number without touching the job id."""

    _ctx_attempt.set(value)


def get_log_context() -> dict[str, Any]:
    """Return the correlation fields attached to the current task."""

    return {
        "request_id": _ctx_request_id.get(),
        "job_id": _ctx_job_id.get(),
        "attempt": _ctx_attempt.get(),
    }

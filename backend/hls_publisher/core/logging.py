"""Structured logging bound to the running transcoding job.

While a job runs, every record carries its ``job_id`` (the source file id)
and ``base`` (the source base name), so all lines of one run can be grouped
together across probe, encoder, uploads and cleanup. The trace and span ids
of the active stage are attached as well.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from hls_publisher.core.tracing import current_trace_ids

_job_context: ContextVar[Optional[dict[str, str]]] = ContextVar("hls_job_context", default=None)

# LogRecord attributes that are not user supplied extras
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "job_id", "base",
}

NOISY_LOGGERS = ("httpx", "httpcore", "celery.app.trace")


def bind_job(job_id: str, base: Optional[str] = None) -> None:
    """Attach the current job to every record logged from this context."""
    context = {"job_id": job_id}
    if base:
        context["base"] = base
    _job_context.set(context)


def unbind_job() -> None:
    _job_context.set(None)


def current_job() -> dict[str, str]:
    """Job fields bound to the current context, empty outside of a job."""
    return dict(_job_context.get() or {})


class JobContextFilter(logging.Filter):
    """Copies the bound job fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        job = _job_context.get() or {}
        record.job_id = job.get("job_id", "-")
        record.base = job.get("base", "-")
        return True


class JobLogFormatter(logging.Formatter):
    """Renders a record as one JSON object per line."""

    def __init__(self, include_stack_trace: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        job = _job_context.get() or {}
        for key in ("job_id", "base"):
            value = job.get(key) or getattr(record, key, None)
            if value and value != "-":
                entry[key] = value

        trace_id, span_id = current_trace_ids()
        if trace_id:
            entry["trace_id"] = trace_id
            entry["span_id"] = span_id

        if record.exc_info and record.exc_info[0] is not None:
            error = {"type": record.exc_info[0].__name__, "message": str(record.exc_info[1])}
            if self.include_stack_trace:
                error["stack_trace"] = traceback.format_exception(*record.exc_info)
            entry["exception"] = error

        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure the root logger for the worker.

    Args:
        level: Log level name
        json_format: One JSON object per line; plain text otherwise
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(JobContextFilter())
    if json_format:
        handler.setFormatter(JobLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(job_id)s %(base)s] %(message)s"
        ))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _log(logger: logging.Logger, level: int, message: str, exception=None, **fields: Any) -> None:
    logger.log(level, message, exc_info=exception, extra=fields or None)


def log_info(logger: logging.Logger, message: str, **fields: Any) -> None:
    _log(logger, logging.INFO, message, **fields)


def log_warning(logger: logging.Logger, message: str, **fields: Any) -> None:
    _log(logger, logging.WARNING, message, **fields)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Log an error with an optional exception and structured fields."""
    _log(logger, logging.ERROR, message, exception, **fields)

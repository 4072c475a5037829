"""
Logging utilities for Ticket Dispatcher.

- RequestIdFilter attaches request_id/path (inside a Flask request) and the
  id of the job currently being drained (inside the queue worker thread)
- JsonFormatter emits structured logs when TICKETDISPATCH_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

_job_context = threading.local()


def current_job_id() -> Optional[str]:
    return getattr(_job_context, "job_id", None)


@contextmanager
def job_log_context(job_id: str) -> Iterator[None]:
    """
    Tag every record logged by this thread with `job_id` until the block exits.
    """
    previous = current_job_id()
    _job_context.job_id = job_id
    try:
        yield
    finally:
        _job_context.job_id = previous


class RequestIdFilter(logging.Filter):
    """
    Attach request-scoped metadata (request_id, path) and the active job id to log records.
    Safely degrades outside of a Flask request context.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            from flask import g, has_request_context, request  # lazy import

            record.request_id = g.request_id if has_request_context() and hasattr(g, "request_id") else "-"
            record.path = request.path if has_request_context() else "-"
        except Exception:
            record.request_id = "-"
            record.path = "-"
        record.job_id = current_job_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter: timestamp, level, logger, message, request_id, path and job_id.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "path", None)
        if path is not None:
            base["path"] = path
        job_id = getattr(record, "job_id", "-")
        if job_id != "-":
            base["job_id"] = job_id
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging for the dispatcher.

    Behavior:
    - Level from `level`, else TICKETDISPATCH_LOG_LEVEL, else INFO
    - Clears any existing handlers to avoid duplicates on reload
    - Chooses JSON or plain formatter based on TICKETDISPATCH_JSON_LOGS
    - Prefer systemd's JournalHandler, fallback to StreamHandler
    - Ensures Flask app logger propagates to root (no separate handlers)

    Returns the configured root logger.
    """
    root = logging.getLogger()
    root.setLevel((level or os.environ.get("TICKETDISPATCH_LOG_LEVEL", "INFO")).upper())

    root.handlers = []

    json_logs = os.environ.get("TICKETDISPATCH_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(request_id)s job=%(job_id)s %(name)s: %(message)s")

    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler: logging.Handler = JournalHandler(SYSLOG_IDENTIFIER="ticket-dispatcher")
        handler.setFormatter(formatter)
    except Exception:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    try:
        flask_logger = logging.getLogger("flask.app")
        flask_logger.handlers = []
        flask_logger.propagate = True
    except Exception:
        pass

    return root


__all__ = ["JsonFormatter", "RequestIdFilter", "configure_logging", "current_job_id", "job_log_context"]

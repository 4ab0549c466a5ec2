"""Audit log for proxied calls.

One JSON object per line on stdout, mirrored to AUDIT_LOG_FILE when set.
Each record carries the id of the inbound request it belongs to; the
same id is returned to the caller in the X-Request-Id header, so a
caller's report can be matched to the upstream status and latency
logged for it.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from nim_proxy.config.settings import Settings

LOGGER_NAME = "nim_proxy.audit"
REQUEST_ID_HEADER = "X-Request-Id"

current_request_id: ContextVar[str] = ContextVar("current_request_id", default="")


class AuditFormatter(logging.Formatter):
    """Renders a record, its request id and its ``audit_data`` as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": current_request_id.get(),
        }
        entry.update(getattr(record, "audit_data", {}))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(settings: Settings) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file))
    for handler in handlers:
        handler.setFormatter(AuditFormatter())
        logger.addHandler(handler)

    # Records would otherwise be printed again by uvicorn's root handler
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def new_request_id() -> str:
    """Start a request: mint a short id and bind it to the current context."""
    rid = uuid.uuid4().hex[:12]
    current_request_id.set(rid)
    return rid


class UpstreamTimer:
    """Times the wait for an upstream answer.

    For streams this covers the time to response headers, not the relay.
    """

    def __init__(self):
        self.elapsed_ms: float = 0.0
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc_info):
        self.elapsed_ms = round((time.perf_counter() - self._started) * 1000, 2)
        return False

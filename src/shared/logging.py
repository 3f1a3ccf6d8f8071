"""Structured JSON logging with trace_id support."""
from __future__ import annotations

import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Context variable for trace_id
trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "trace_id", default=""
)

# Module loggers live under the ``src`` package; configuring it once
# routes every ``logging.getLogger(__name__)`` through the JSON handler.
PACKAGE_LOGGER_NAME = "src"


class JSONFormatter(logging.Formatter):
    """Custom JSON log formatter."""

    def __init__(self, service_name: str = "unknown") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "logger": record.name,
            "trace_id": trace_id_var.get(""),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def setup_logging(service_name: str, level: str = "INFO") -> logging.Logger:
    """Configure structured JSON logging for an entry point.

    Both the named service logger and the ``src`` package logger get a
    JSON handler writing to stderr.  stdout is left untouched because the
    MCP stdio transport owns it.

    Args:
        service_name: Name of the service for log entries.
        level: Log level string (e.g. "INFO", "DEBUG").

    Returns:
        Configured service logger instance.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    for name in (service_name, PACKAGE_LOGGER_NAME):
        target = logging.getLogger(name)
        target.setLevel(numeric_level)

        # Remove existing handlers
        target.handlers.clear()

        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JSONFormatter(service_name=service_name))
        target.addHandler(handler)

    return logging.getLogger(service_name)


class TraceIDMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware that sets a unique trace_id per request."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_trace_id = request.headers.get("X-Trace-ID") or str(uuid.uuid4())
        trace_id_var.set(request_trace_id)
        response = await call_next(request)
        response.headers["X-Trace-ID"] = request_trace_id
        return response

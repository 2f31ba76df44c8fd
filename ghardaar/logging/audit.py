"""Structured JSON logging for the marketplace API.

Every line is one JSON object on stdout (plus AUDIT_LOG_FILE when set),
stamped with the id and route of the request that produced it. Admin and
integration routes log request fields, so credential-like keys in
``audit_data`` are masked before they are written.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from ghardaar.config.settings import get_settings

LOGGER_NAME = "ghardaar.audit"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
# "METHOD /path" of the request being served
route_var: ContextVar[str] = ContextVar("route", default="")

MASK = "***"
SENSITIVE_KEYS = frozenset({
    "password",
    "token",
    "authorization",
    "private_key",
    "api_key",
    "service_role_key",
})


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return any(key == s or key.endswith("_" + s) for s in SENSITIVE_KEYS)


def mask_sensitive(data: dict) -> dict:
    """Copy of data with credential-like values replaced, nested dicts included."""
    masked = {}
    for key, value in data.items():
        if _is_sensitive(str(key)):
            masked[key] = MASK
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


def bind_request(method: str, path: str) -> str:
    """Start the logging context for one request and return its new id."""
    rid = generate_request_id()
    request_id_var.set(rid)
    route_var.set(f"{method} {path}")
    return rid


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        route = route_var.get("")
        if route:
            log_entry["route"] = route
        if hasattr(record, "audit_data"):
            log_entry.update(mask_sensitive(record.audit_data))
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging() -> None:
    settings = get_settings()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = JSONFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Lambda's root handler would print every line a second time
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Wall-clock latency of a block, in milliseconds."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

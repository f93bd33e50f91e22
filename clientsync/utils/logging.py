"""
Structured JSON logging with correlation IDs.

Every log line is JSON with: timestamp, level, correlation_id, module, message.
Correlation IDs are generated per-request via middleware and stored in contextvars.
Sync passes run inside correlation_scope() so every line of one pass shares an ID.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Extra attributes copied from LogRecord into the JSON line when present
EXTRA_FIELDS = ("client_id", "row_index", "sync_kind", "channel", "status_code")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


@contextmanager
def correlation_scope(cid: Optional[str] = None) -> Iterator[str]:
    """
    Run a block under its own correlation ID and restore the outer one on exit.
    A sync pass triggered from a request logs under the pass ID, and the
    request's remaining lines keep the request ID.
    """
    token = correlation_id_ctx.set(cid or generate_correlation_id())
    try:
        yield correlation_id_ctx.get()
    finally:
        correlation_id_ctx.reset(token)


class StructuredJsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines for the sync CLI, tagged with a short correlation ID."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s [%(cid)s] %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        record.cid = (get_correlation_id() or "-")[:8]
        return super().format(record)


def configure_structured_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Replace default logging with structured JSON logging (console lines when
    json_output is False). Call once at startup before any log calls.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(StructuredJsonFormatter() if json_output else ConsoleFormatter())
    root_logger.addHandler(stream_handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "google.auth"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

"""Logging setup for the gateway process.

Every record passes through ``RequestContextFilter``, which stamps it with
the client identity and provider of the request being served (empty outside
a request). ``LOG_JSON=true`` switches the stdout handler to one JSON object
per line.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

from foundry_gateway.core.config import Settings, settings

_CONTEXT_FIELDS = ("client_id", "provider")

_request_context: ContextVar[dict[str, str]] = ContextVar("foundry_request_context", default={})


def bind_log_context(**fields: str | None) -> None:
    """Attach request fields to every record logged by the current task."""
    current = dict(_request_context.get())
    current.update({key: value for key, value in fields.items() if value})
    _request_context.set(current)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        context = _request_context.get()
        for key in _CONTEXT_FIELDS:
            if not hasattr(record, key):
                setattr(record, key, context.get(key, ""))
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, "")
            if value:
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(config: Settings | None = None) -> None:
    """Route all logging to stdout at LOG_LEVEL."""
    config = config or settings
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    if config.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)

    # HTTP client internals log every connection at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

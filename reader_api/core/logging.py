"""Logging setup for the reader API.

Provides:
- `set_request_id` / `get_request_id` to carry a per-request correlation id in a ContextVar
- `JSONFormatter` to render logs as single-line JSON with request_id and `extra=` context
- `configure_logging` to set up stdout logging, JSON or plain text
"""

import json
import logging
import sys
from contextvars import ContextVar

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(rid: str | None) -> None:
    _request_id.set(rid)


def get_request_id() -> str | None:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record so plain formats can print it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True


# attributes every LogRecord carries; anything else arrived through `extra=`
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "request_id"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record: level, ts, logger, msg, request_id and any `extra=` context."""

    def format(self, record: logging.LogRecord) -> str:
        out = {
            "level": record.levelname,
            "ts": round(record.created, 3),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        rid = getattr(record, "request_id", None) or _request_id.get()
        if rid and rid != "-":
            out["request_id"] = rid
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                out[key] = value
        if record.exc_info:
            out["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(out, ensure_ascii=False, default=str)


def configure_logging(level: int | str = "INFO", json_logs: bool = False) -> logging.Logger:
    """Configure root logging to stdout.

    Args:
        level: Logging level as int or string (e.g., logging.INFO or "INFO").
        json_logs: Emit one JSON object per line instead of plain text.

    Returns:
        The package logger ("reader_api").
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s")
        )
    logging.basicConfig(level=level, handlers=[handler], force=True)
    return logging.getLogger("reader_api")

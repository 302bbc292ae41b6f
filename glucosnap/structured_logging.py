"""
Structured logging for the GlucoSnap analysis service.

Every line carries the request ID so one analysis can be followed across the
upload, invocation and classification steps. Pipeline fields (step, code,
result_kind, duration_ms) sit at the top level of a JSON line so log queries
can filter on them directly; anything else goes under "data".
"""

import logging
import json
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Client-supplied IDs end up in every log line
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")

PIPELINE_FIELDS = ("step", "code", "result_kind", "duration_ms")

_LOG_CALL_KWARGS = ("exc_info", "stack_info", "stacklevel", "extra")


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID to the current context and return it.

    A missing or malformed incoming ID is replaced by a fresh short one.
    """
    if not request_id or not _REQUEST_ID_PATTERN.fullmatch(request_id):
        request_id = uuid.uuid4().hex[:8]
    request_id_var.set(request_id)
    return request_id


class RequestIdFilter(logging.Filter):
    """Attach the context's request ID to each record as record.request_id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, pipeline fields promoted to the top level."""

    def __init__(self, service_name: str = "glucosnap"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "-":
            entry["request_id"] = request_id

        fields = dict(getattr(record, "fields", None) or {})
        for name in PIPELINE_FIELDS:
            if name in fields:
                entry[name] = fields.pop(name)
        if fields:
            entry["data"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Logger that takes keyword fields: logger.info("done", step="invoking")."""

    def __init__(self, name: str):
        super().__init__(logging.getLogger(name), {})

    def process(self, msg: Any, kwargs: dict) -> tuple[Any, dict]:
        call_kwargs = {key: kwargs.pop(key) for key in _LOG_CALL_KWARGS if key in kwargs}
        extra = dict(call_kwargs.get("extra") or {})
        if kwargs:
            extra["fields"] = kwargs
        call_kwargs["extra"] = extra
        return msg, call_kwargs


def setup_logging(
    level: int | str = logging.INFO,
    service_name: str = "glucosnap",
    use_json: bool = True
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Logging level (default: INFO)
        service_name: Service name for JSON log entries
        use_json: JSON lines when True, otherwise a plain text line with the request ID
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())

    if use_json:
        handler.setFormatter(JSONFormatter(service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"
        ))

    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


_http_logger = StructuredLogger("glucosnap.http")


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    error_code: Optional[str] = None
) -> None:
    """Log a finished inbound request; failures carry their error code and log at WARNING."""
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
    }
    if error_code:
        fields["code"] = error_code
        _http_logger.warning(f"{method} {path} {status_code}", **fields)
    else:
        _http_logger.info(f"{method} {path} {status_code}", **fields)

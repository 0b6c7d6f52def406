"""JSON log lines carrying the request id.

Inside a request the id lives on ``g``; CLI commands such as ``seed-demo``
bind one with :func:`bind_request_id` so their service logs stay traceable.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict

from flask import g, has_request_context, request


_REQUEST_ID: contextvars.ContextVar[str] = contextvars.ContextVar("flowbuilder_request_id", default="")

# LogRecord attributes that are not caller-supplied extras.
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


@contextlib.contextmanager
def bind_request_id(request_id: str | None):
    token = _REQUEST_ID.set(str(request_id or "").strip())
    try:
        yield current_request_id()
    finally:
        _REQUEST_ID.reset(token)


def current_request_id(default: str = "n/a") -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    return _REQUEST_ID.get() or default


def ensure_request_id() -> str:
    """Adopt the caller's ``X-Request-Id`` or mint one; echoed back by the error handlers."""
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or str(uuid.uuid4())
        g.request_id = request_id
    _REQUEST_ID.set(request_id)
    return request_id


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": str(getattr(record, "request_id", "") or "").strip() or current_request_id(),
        }
        if has_request_context():
            payload["method"] = request.method
            payload["path"] = request.path
            if request.url_rule is not None:
                payload["route"] = request.url_rule.rule

        for key, value in record.__dict__.items():
            if key in _RECORD_FIELDS or key.startswith("_") or key in payload or callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).strip().upper()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    app.logger.handlers = []
    app.logger.propagate = True

"""
JSON-lines logging for the fleet API.

Every line is one object: ``ts``, ``level``, ``logger``, ``func``, ``message``,
the structured fields passed through ``extra=`` or bound with
``FleetLogger.bind``, and, inside a Flask request, a ``request`` object with
method, path and the signed-in user and tenant.

The module must not be called ``logging.py``: it would shadow the stdlib
``logging`` module that Flask and SQLAlchemy import at startup.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

NAMESPACE = "fleet"
_CORE_KEYS = ("ts", "level", "logger", "func", "message", "request", "exc_info")


class RequestContextFilter(logging.Filter):
    """Attach the current request (if any) to the record as ``record.request``."""

    def filter(self, record: logging.LogRecord) -> bool:
        # flask is imported lazily so scripts can log before an app exists
        from flask import g, has_request_context, request

        if not has_request_context():
            record.request = None
            return True

        context: Dict[str, Any] = {"method": request.method, "path": request.path}
        # only a user Flask-Login already loaded, logging never queries the database
        user = g.get("_login_user")
        if getattr(user, "is_authenticated", False):
            context["user_id"] = user.id
            context["company_id"] = user.company_id
        record.request = context
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "func": record.funcName,
            "message": record.getMessage(),
        }

        for key, value in (getattr(record, "fields", None) or {}).items():
            # structured fields never replace the envelope
            line[f"field_{key}" if key in _CORE_KEYS else key] = value

        request_context = getattr(record, "request", None)
        if request_context:
            line["request"] = request_context
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(line, ensure_ascii=False, default=str)


class FleetLogger(logging.LoggerAdapter):
    """
    Adapter carrying bound fields.

    ``extra=`` given at the call is merged over the bound fields and stored
    as ``record.fields``, so names like ``message`` or ``args`` cannot clash
    with LogRecord attributes.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]):
        fields = dict(self.extra)
        fields.update(kwargs.pop("extra", None) or {})
        kwargs["extra"] = {"fields": fields}
        return msg, kwargs

    def bind(self, **fields: Any) -> "FleetLogger":
        return FleetLogger(self.logger, {**self.extra, **fields})


def _namespace_logger() -> logging.Logger:
    root = logging.getLogger(NAMESPACE)
    if not root.handlers:
        root.propagate = False
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        handler.addFilter(RequestContextFilter())
        root.addHandler(handler)
        root.setLevel(_resolve_level(None))
    return root


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure(level: Optional[str] = None) -> None:
    """Apply ``LOG_LEVEL`` to the whole ``fleet`` namespace; called by create_app()."""
    root = _namespace_logger()
    root.setLevel(_resolve_level(level))


def get_logger(name: str) -> FleetLogger:
    _namespace_logger()
    return FleetLogger(logging.getLogger(f"{NAMESPACE}.{name}"), {})

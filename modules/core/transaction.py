"""
Unit-of-work wrapper for service operations.

- The outermost decorated call commits once; nested calls join it.
- Any exception rolls the whole unit back.
- Serialization failures, deadlocks and a locked SQLite file are retried a
  bounded number of times. Business-rule errors are never retried.
"""

import time
from functools import wraps

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError

from app_logging import get_logger

log = get_logger(__name__)

_DEPTH_KEY = "fleet_unit_depth"
_TRANSIENT_PGCODES = {"40001", "40P01"}
_TRANSIENT_MESSAGES = ("database is locked", "deadlock", "could not serialize")


def is_transient(exc: OperationalError) -> bool:
    pgcode = getattr(getattr(exc, "orig", None), "pgcode", None)
    if pgcode in _TRANSIENT_PGCODES:
        return True
    text = str(getattr(exc, "orig", exc)).lower()
    return any(marker in text for marker in _TRANSIENT_MESSAGES)


def _retry_attempts() -> int:
    if has_app_context():
        return max(1, int(current_app.config.get("DB_RETRY_ATTEMPTS", 3)))
    return 3


def transactional(method):
    """Decorate a service method; the service must expose ``self.session``."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        session = self.session
        depth = session.info.get(_DEPTH_KEY, 0)

        if depth:
            session.info[_DEPTH_KEY] = depth + 1
            try:
                return method(self, *args, **kwargs)
            finally:
                session.info[_DEPTH_KEY] = depth

        attempts = _retry_attempts()
        for attempt in range(1, attempts + 1):
            session.info[_DEPTH_KEY] = 1
            try:
                result = method(self, *args, **kwargs)
                session.commit()
                return result
            except OperationalError as exc:
                session.rollback()
                if attempt >= attempts or not is_transient(exc):
                    raise
                log.bind(operation=method.__qualname__).warning(
                    "transient store failure, retrying", extra={"attempt": attempt})
                time.sleep(0.05 * attempt)
            except Exception:
                session.rollback()
                raise
            finally:
                session.info[_DEPTH_KEY] = 0

    return wrapper

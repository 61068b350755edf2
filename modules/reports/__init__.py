"""Reports module package: read-only summaries over the core tables."""

from flask import Blueprint

bp = Blueprint("reports", __name__, url_prefix="/reports")

from . import models  # noqa: E402  pylint: disable=wrong-import-position
from . import routes  # noqa: E402  pylint: disable=wrong-import-position

__all__ = ["bp", "models", "routes"]

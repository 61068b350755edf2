"""Maintenance module package: equipment, staff and repairs."""

from flask import Blueprint

bp = Blueprint("maintenance", __name__)

from . import models  # noqa: E402  pylint: disable=wrong-import-position
from . import routes  # noqa: E402  pylint: disable=wrong-import-position

__all__ = ["bp", "models", "routes"]

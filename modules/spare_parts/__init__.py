"""Spare parts module package: parts and storage containers."""

from flask import Blueprint

bp = Blueprint("spare_parts", __name__, url_prefix="/parts")
containers_bp = Blueprint("containers", __name__, url_prefix="/containers")

from . import models  # noqa: E402  pylint: disable=wrong-import-position
from . import routes  # noqa: E402  pylint: disable=wrong-import-position

__all__ = ["bp", "containers_bp", "models", "routes"]

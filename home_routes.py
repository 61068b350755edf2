# home_routes.py: session login and the dashboard KPIs at "/"
from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from app_logging import get_logger
from extensions import db, login_manager
from models import User
from modules.core.validation import parse_text
from modules.maintenance.models import Equipment, EquipmentStatus
from modules.maintenance.services import active_repairs_count
from modules.spare_parts.models import Part
from permissions import current_company_id
from utils import json_ok, request_json

home = Blueprint("home", __name__)
log = get_logger(__name__)


@login_manager.user_loader
def load_user(user_id):
    if not user_id:
        return None
    user = db.session.get(User, int(user_id))
    # a deactivated account loses its open sessions too
    if user is None or not user.is_active or not user.company.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(success=False, error="Authentication required", code="unauthorized"), 401


@home.route("/auth/login", methods=["POST"])
def login():
    data = request_json()
    username = parse_text(data, "username", required=True)
    password = parse_text(data, "password", required=True)
    user = User.query.filter_by(username=username).first()
    if user is None or not check_password_hash(user.password, password):
        log.warning("login failed", extra={"username": username})
        return jsonify(success=False, error="Invalid username or password", code="invalid_credentials"), 401
    if not user.company.is_active or not login_user(user):
        log.warning("login refused for inactive account", extra={"user_id": user.id})
        return jsonify(success=False, error="Account is deactivated", code="account_inactive"), 403
    return json_ok(user.to_dict())


@home.route("/auth/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return json_ok(None)


@home.route("/auth/me", methods=["GET"])
@login_required
def me():
    return json_ok(current_user.to_dict())


@home.route("/")
@login_required
def dashboard():
    company_id = current_company_id()
    threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 5))
    parts = db.session.query(Part).filter(Part.company_id == company_id)
    return json_ok({
        "parts_count": parts.count(),
        "low_stock_parts": parts.filter(Part.quantity < threshold).count(),
        "equipment_count": db.session.query(Equipment).filter(Equipment.company_id == company_id).count(),
        "equipment_in_repair": db.session.query(Equipment).filter(
            Equipment.company_id == company_id,
            Equipment.status == EquipmentStatus.IN_REPAIR.value,
        ).count(),
        "active_repairs": active_repairs_count(company_id),
    })

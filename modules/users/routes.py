"""HTTP routes for tenant user administration."""

from flask import request
from flask_login import current_user, login_required

from models import ROLES
from modules.core.validation import parse_bool, parse_choice, parse_text
from permissions import current_company_id, require_role
from utils import json_ok, page_args, paginate, request_json

from . import bp
from .services import UserService, user_stats, users_query


@bp.route("", methods=["GET"])
@require_role("admin")
def list_users():
    args = request.args
    filters = {
        "role": parse_choice(args, "role", ROLES),
        "is_active": parse_bool(args, "is_active"),
        "search": parse_text(args, "search"),
    }
    page, limit = page_args(args)
    items, pagination = paginate(users_query(current_company_id(), filters), page, limit)
    return json_ok([u.to_dict() for u in items], pagination=pagination)


@bp.route("/stats", methods=["GET"])
@require_role("admin")
def stats():
    return json_ok(user_stats(current_company_id()))


@bp.route("/<int:user_id>", methods=["GET"])
@require_role("admin")
def get_user(user_id: int):
    return json_ok(UserService().get(current_company_id(), user_id).to_dict())


@bp.route("", methods=["POST"])
@require_role("admin")
def create_user():
    user = UserService().create(current_user, request_json())
    return json_ok(user.to_dict(), 201)


@bp.route("/<int:user_id>", methods=["PATCH"])
@require_role("admin")
def update_user(user_id: int):
    return json_ok(UserService().update(current_user, user_id, request_json()).to_dict())


@bp.route("/<int:user_id>/role", methods=["PATCH"])
@require_role("admin")
def change_role(user_id: int):
    return json_ok(UserService().change_role(current_user, user_id, request_json()).to_dict())


@bp.route("/<int:user_id>/deactivate", methods=["POST"])
@require_role("admin")
def deactivate(user_id: int):
    return json_ok(UserService().set_active(current_user, user_id, False).to_dict())


@bp.route("/<int:user_id>/activate", methods=["POST"])
@require_role("admin")
def activate(user_id: int):
    return json_ok(UserService().set_active(current_user, user_id, True).to_dict())


# ---------- own account ----------
@bp.route("/me/password", methods=["PATCH"])
@login_required
def change_own_password():
    UserService().change_password(current_user, request_json())
    return json_ok(None, message="Password changed")

"""HTTP routes for equipment, staff and repairs."""

from flask import request
from flask_login import login_required

from modules.core.validation import parse_choice, parse_datetime, parse_id, parse_text
from permissions import current_company_id, current_user_id, require_role
from utils import json_ok, page_args, paginate, request_json

from . import bp
from .models import EQUIPMENT_STATUSES, REPAIR_PRIORITIES, REPAIR_STATUSES, STAFF_STATUSES
from .services import (
    EquipmentService,
    RepairService,
    StaffService,
    equipment_detail,
    equipment_query,
    equipment_stats,
    repairs_query,
    repairs_stats,
    staff_detail,
    staff_query,
    staff_stats,
)


# ---------- Equipment ----------
@bp.route("/equipment", methods=["GET"])
@login_required
def list_equipment():
    args = request.args
    filters = {
        "status": parse_choice(args, "status", EQUIPMENT_STATUSES),
        "type": parse_text(args, "type"),
        "search": parse_text(args, "search"),
    }
    page, limit = page_args(args)
    items, pagination = paginate(equipment_query(current_company_id(), filters), page, limit)
    return json_ok([e.to_dict() for e in items], pagination=pagination)


@bp.route("/equipment/stats/overview", methods=["GET"])
@login_required
def equipment_overview():
    return json_ok(equipment_stats(current_company_id()))


@bp.route("/equipment/<int:equipment_id>", methods=["GET"])
@login_required
def get_equipment(equipment_id: int):
    equipment = EquipmentService().get(current_company_id(), equipment_id)
    return json_ok(equipment_detail(equipment))


@bp.route("/equipment", methods=["POST"])
@require_role("admin")
def create_equipment():
    equipment = EquipmentService().create(current_company_id(), request_json())
    return json_ok(equipment.to_dict(), 201)


@bp.route("/equipment/<int:equipment_id>", methods=["PATCH"])
@require_role("admin")
def update_equipment(equipment_id: int):
    equipment = EquipmentService().update(current_company_id(), equipment_id, request_json())
    return json_ok(equipment.to_dict())


@bp.route("/equipment/<int:equipment_id>/meters", methods=["PATCH"])
@login_required
def update_meters(equipment_id: int):
    equipment = EquipmentService().update_meters(current_company_id(), equipment_id, request_json())
    return json_ok(equipment.to_dict())


@bp.route("/equipment/<int:equipment_id>", methods=["DELETE"])
@require_role("admin")
def delete_equipment(equipment_id: int):
    EquipmentService().delete(current_company_id(), equipment_id)
    return json_ok({"id": equipment_id})


# ---------- Staff ----------
@bp.route("/staff", methods=["GET"])
@login_required
def list_staff():
    args = request.args
    filters = {
        "status": parse_choice(args, "status", STAFF_STATUSES),
        "position": parse_text(args, "position"),
        "search": parse_text(args, "search"),
    }
    page, limit = page_args(args)
    items, pagination = paginate(staff_query(current_company_id(), filters), page, limit)
    return json_ok([s.to_dict() for s in items], pagination=pagination)


@bp.route("/staff/stats/overview", methods=["GET"])
@login_required
def staff_overview():
    return json_ok(staff_stats(current_company_id()))


@bp.route("/staff/<int:staff_id>", methods=["GET"])
@login_required
def get_staff(staff_id: int):
    return json_ok(staff_detail(StaffService().get(current_company_id(), staff_id)))


@bp.route("/staff", methods=["POST"])
@require_role("admin")
def create_staff():
    staff = StaffService().create(current_company_id(), request_json())
    return json_ok(staff.to_dict(), 201)


@bp.route("/staff/<int:staff_id>", methods=["PATCH"])
@require_role("admin")
def update_staff(staff_id: int):
    staff = StaffService().update(current_company_id(), staff_id, request_json())
    return json_ok(staff.to_dict())


@bp.route("/staff/<int:staff_id>/activate", methods=["POST"])
@require_role("admin")
def activate_staff(staff_id: int):
    return json_ok(StaffService().activate(current_company_id(), staff_id).to_dict())


@bp.route("/staff/<int:staff_id>", methods=["DELETE"])
@require_role("admin")
def deactivate_staff(staff_id: int):
    return json_ok(StaffService().deactivate(current_company_id(), staff_id).to_dict())


# ---------- Repairs ----------
@bp.route("/repairs", methods=["GET"])
@login_required
def list_repairs():
    args = request.args
    filters = {
        "status": parse_choice(args, "status", REPAIR_STATUSES),
        "priority": parse_choice(args, "priority", REPAIR_PRIORITIES),
        "equipment_id": parse_id(args, "equipment_id"),
        "date_from": parse_datetime(args, "date_from"),
        "date_to": parse_datetime(args, "date_to"),
        "search": parse_text(args, "search"),
    }
    page, limit = page_args(args)
    items, pagination = paginate(repairs_query(current_company_id(), filters), page, limit)
    return json_ok([r.to_dict() for r in items], pagination=pagination)


@bp.route("/repairs/stats/overview", methods=["GET"])
@login_required
def repairs_overview():
    return json_ok(repairs_stats(current_company_id()))


@bp.route("/repairs/<int:repair_id>", methods=["GET"])
@login_required
def get_repair(repair_id: int):
    repair = RepairService().get(current_company_id(), repair_id)
    return json_ok(repair.to_dict(with_lines=True))


@bp.route("/repairs", methods=["POST"])
@login_required
def create_repair():
    repair = RepairService().create(current_company_id(), request_json(), user_id=current_user_id())
    return json_ok(repair.to_dict(with_lines=True), 201)


@bp.route("/repairs/<int:repair_id>", methods=["PATCH"])
@login_required
def update_repair(repair_id: int):
    repair = RepairService().update(current_company_id(), repair_id, request_json())
    return json_ok(repair.to_dict(with_lines=True))


@bp.route("/repairs/<int:repair_id>/start", methods=["POST"])
@login_required
def start_repair(repair_id: int):
    repair = RepairService().start(current_company_id(), repair_id, user_id=current_user_id())
    return json_ok(repair.to_dict(with_lines=True))


@bp.route("/repairs/<int:repair_id>/parts", methods=["POST"])
@login_required
def attach_part(repair_id: int):
    line = RepairService().attach_part(current_company_id(), repair_id, request_json(), user_id=current_user_id())
    return json_ok(line.to_dict(), 201, repair=line.repair.to_dict())


@bp.route("/repairs/<int:repair_id>/parts/<int:line_id>", methods=["DELETE"])
@login_required
def detach_part(repair_id: int, line_id: int):
    repair = RepairService().detach_part(current_company_id(), repair_id, line_id, user_id=current_user_id())
    return json_ok(repair.to_dict(with_lines=True))


@bp.route("/repairs/<int:repair_id>/staff", methods=["POST"])
@login_required
def attach_staff(repair_id: int):
    line = RepairService().attach_staff(current_company_id(), repair_id, request_json(), user_id=current_user_id())
    return json_ok(line.to_dict(), 201, repair=line.repair.to_dict())


@bp.route("/repairs/<int:repair_id>/staff/<int:line_id>", methods=["DELETE"])
@login_required
def detach_staff(repair_id: int, line_id: int):
    repair = RepairService().detach_staff(current_company_id(), repair_id, line_id)
    return json_ok(repair.to_dict(with_lines=True))


@bp.route("/repairs/<int:repair_id>/complete", methods=["POST"])
@login_required
def complete_repair(repair_id: int):
    repair = RepairService().complete(current_company_id(), repair_id, request_json(), user_id=current_user_id())
    return json_ok(repair.to_dict(with_lines=True))


@bp.route("/repairs/<int:repair_id>/cancel", methods=["POST"])
@login_required
def cancel_repair(repair_id: int):
    repair = RepairService().cancel(current_company_id(), repair_id, request_json())
    return json_ok(repair.to_dict(with_lines=True))


@bp.route("/repairs/<int:repair_id>", methods=["DELETE"])
@login_required
def delete_repair(repair_id: int):
    RepairService().delete(current_company_id(), repair_id)
    return json_ok({"id": repair_id})

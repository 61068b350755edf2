"""HTTP routes for the spare parts domain."""

from flask import current_app, request
from flask_login import login_required

from modules.core.validation import parse_bool, parse_choice, parse_id, parse_text
from modules.inventory.models import InventoryTransaction
from modules.inventory.services import InventoryLedger
from permissions import current_company_id, current_user_id, require_role
from utils import handle_file_upload, json_ok, page_args, paginate, request_json

from . import bp, containers_bp
from .models import Part
from .services import (
    SORT_FIELDS,
    ContainerService,
    PartService,
    container_detail,
    containers_overview,
    parts_query,
    parts_stats,
    read_import_file,
)


# ---------- Parts: read ----------
@bp.route("", methods=["GET"])
@login_required
def list_parts():
    args = request.args
    filters = {
        "search": parse_text(args, "search"),
        "type": parse_text(args, "type"),
        "container_id": parse_id(args, "container_id"),
        "low_stock": parse_bool(args, "low_stock", default=False),
        "sort_by": parse_choice(args, "sort_by", SORT_FIELDS, default="name"),
        "sort_order": parse_choice(args, "sort_order", ("asc", "desc"), default="asc"),
    }
    page, limit = page_args(args)
    items, pagination = paginate(parts_query(current_company_id(), filters), page, limit)
    return json_ok([p.to_dict() for p in items], pagination=pagination)


@bp.route("/stats/overview", methods=["GET"])
@login_required
def stats_overview():
    return json_ok(parts_stats(current_company_id()))


@bp.route("/search/barcode/<barcode>", methods=["GET"])
@login_required
def search_barcode(barcode: str):
    parts = (Part.query
             .filter(Part.company_id == current_company_id(), Part.barcode == barcode)
             .order_by(Part.name.asc())
             .all())
    return json_ok([p.to_dict() for p in parts])


@bp.route("/<int:part_id>", methods=["GET"])
@login_required
def get_part(part_id: int):
    part = PartService().get(current_company_id(), part_id)
    recent = (InventoryTransaction.query
              .filter_by(part_id=part.id)
              .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
              .limit(20)
              .all())
    data = part.to_dict()
    data["transactions"] = [t.to_dict() for t in recent]
    return json_ok(data)


@bp.route("/<int:part_id>/ledger", methods=["GET"])
@login_required
def part_ledger(part_id: int):
    return json_ok(InventoryLedger().ledger_balance(current_company_id(), part_id))


# ---------- Parts: write ----------
@bp.route("", methods=["POST"])
@require_role("admin")
def create_part():
    part = PartService().create(current_company_id(), request_json(), user_id=current_user_id())
    return json_ok(part.to_dict(), 201)


@bp.route("/<int:part_id>", methods=["PATCH"])
@require_role("admin")
def update_part(part_id: int):
    part = PartService().update(current_company_id(), part_id, request_json())
    return json_ok(part.to_dict())


@bp.route("/<int:part_id>/quantity", methods=["PATCH"])
@login_required
def change_quantity(part_id: int):
    result = PartService().change_quantity(current_company_id(), part_id, request_json(),
                                           user_id=current_user_id())
    return json_ok(result)


@bp.route("/<int:part_id>", methods=["DELETE"])
@require_role("admin")
def delete_part(part_id: int):
    PartService().delete(current_company_id(), part_id)
    return json_ok({"id": part_id})


@bp.route("/import", methods=["POST"])
@require_role("admin")
def import_parts():
    rows = read_import_file(request.files.get("file"))
    result = PartService().import_rows(current_company_id(), rows, user_id=current_user_id())
    return json_ok(result, 201)


@bp.route("/<int:part_id>/photos", methods=["POST"])
@require_role("admin")
def upload_photo(part_id: int):
    service = PartService()
    company_id = current_company_id()
    service.get(company_id, part_id)
    path = handle_file_upload(request.files.get("photo"), current_app.config["UPLOAD_FOLDER"],
                              prefix=f"part{part_id}_")
    part = service.add_photo(company_id, part_id, path)
    return json_ok(part.to_dict(), 201)


# ---------- Containers ----------
@containers_bp.route("", methods=["GET"])
@login_required
def list_containers():
    return json_ok(containers_overview(current_company_id()))


@containers_bp.route("/<int:container_id>", methods=["GET"])
@login_required
def get_container(container_id: int):
    container = ContainerService().get(current_company_id(), container_id)
    return json_ok(container_detail(container))


@containers_bp.route("", methods=["POST"])
@require_role("admin")
def create_container():
    container = ContainerService().create(current_company_id(), request_json())
    return json_ok(container.to_dict(), 201)


@containers_bp.route("/<int:container_id>", methods=["PATCH"])
@require_role("admin")
def update_container(container_id: int):
    container = ContainerService().update(current_company_id(), container_id, request_json())
    return json_ok(container.to_dict())


@containers_bp.route("/<int:container_id>", methods=["DELETE"])
@require_role("admin")
def delete_container(container_id: int):
    released = ContainerService().delete(current_company_id(), container_id)
    return json_ok({"id": container_id, "released_parts": released})

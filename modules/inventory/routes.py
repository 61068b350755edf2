"""HTTP routes for the transaction ledger."""

from flask import request
from flask_login import login_required

from modules.core import NotFound
from modules.core.validation import parse_choice, parse_datetime, parse_id, parse_int, parse_text
from permissions import current_company_id, current_user_id
from utils import json_ok, page_args, paginate, request_json

from . import bp
from .models import ARRIVAL, TRANSACTION_TYPES, InventoryTransaction
from .services import PERIODS, InventoryLedger, transaction_stats, transactions_query


# ---------- List ----------
@bp.route("", methods=["GET"])
@login_required
def list_transactions():
    args = request.args
    filters = {
        "type": parse_choice(args, "type", TRANSACTION_TYPES),
        "part_id": parse_id(args, "part_id"),
        "equipment_id": parse_id(args, "equipment_id"),
        "repair_id": parse_id(args, "repair_id"),
        "user_id": parse_id(args, "user_id"),
        "date_from": parse_datetime(args, "date_from"),
        "date_to": parse_datetime(args, "date_to"),
        "search": parse_text(args, "search"),
    }
    page, limit = page_args(args)
    items, pagination = paginate(transactions_query(current_company_id(), filters), page, limit)
    return json_ok([t.to_dict() for t in items], pagination=pagination)


@bp.route("/<int:transaction_id>", methods=["GET"])
@login_required
def get_transaction(transaction_id: int):
    entry = InventoryTransaction.query.filter_by(id=transaction_id, company_id=current_company_id()).first()
    if entry is None:
        raise NotFound("transaction", transaction_id)
    return json_ok(entry.to_dict())


# ---------- Arrival / expense ----------
@bp.route("", methods=["POST"])
@login_required
def create_transaction():
    data = request_json()
    kind = parse_choice(data, "type", TRANSACTION_TYPES, required=True)
    part_id = parse_id(data, "part_id", required=True)
    quantity = parse_int(data, "quantity", required=True, minimum=1)
    description = parse_text(data, "description", required=True)
    equipment_id = parse_id(data, "equipment_id")

    ledger = InventoryLedger()
    operation = ledger.receive_part if kind == ARRIVAL else ledger.consume_part
    entry = operation(current_company_id(), part_id, quantity, description,
                      equipment_id=equipment_id, user_id=current_user_id())
    return json_ok(entry.to_dict(), 201, new_quantity=entry.part.quantity)


@bp.route("/batch", methods=["POST"])
@login_required
def create_batch():
    data = request_json()
    entries = InventoryLedger().apply_batch(current_company_id(), data.get("transactions"),
                                            user_id=current_user_id())
    return json_ok([e.to_dict() for e in entries], 201, count=len(entries))


# ---------- Stats ----------
@bp.route("/stats/overview", methods=["GET"])
@login_required
def stats_overview():
    period = parse_choice(request.args, "period", list(PERIODS), default="30d")
    return json_ok(transaction_stats(current_company_id(), period))

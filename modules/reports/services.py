"""
Report generation.

Generators only read parts, equipment, repairs, staff and the ledger; the
single write is the ReportHistory row recording who asked for what.
"""

import csv
import io
from collections import defaultdict
from datetime import datetime

from flask import current_app
from openpyxl import Workbook
from openpyxl.styles import Font

from app_logging import get_logger
from extensions import db
from modules.core import InvalidInput, transactional
from modules.core.tenancy import scoped_get
from modules.core.validation import parse_bool, parse_choice, parse_datetime, parse_id, parse_text
from modules.inventory.models import ARRIVAL, EXPENSE, TRANSACTION_TYPES, InventoryTransaction
from modules.maintenance.models import (
    EQUIPMENT_STATUSES,
    REPAIR_STATUSES,
    Equipment,
    Repair,
    RepairStaff,
    RepairStatus,
    Staff,
    StaffStatus,
)
from modules.spare_parts.models import Part
from utils import iso, money

from .models import REPORT_FORMATS, REPORT_TYPES, ReportHistory

log = get_logger(__name__)

TITLES = {
    "parts_inventory": "Parts inventory",
    "equipment_status": "Equipment status",
    "repair_history": "Repair history",
    "staff_workload": "Staff workload",
    "transactions": "Stock transactions",
    "financial": "Financial summary",
}


def _period(query, column, filters):
    start = parse_datetime(filters, "start_date")
    end = parse_datetime(filters, "end_date")
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


# ---------- generators ----------
def parts_inventory_report(company_id: int, filters: dict) -> dict:
    threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 5))
    query = Part.query.filter(Part.company_id == company_id)
    container_id = parse_id(filters, "container_id")
    if container_id is not None:
        query = query.filter(Part.container_id == container_id)
    part_type = parse_text(filters, "part_type")
    if part_type:
        query = query.filter(Part.type == part_type)
    if parse_bool(filters, "low_stock_only", default=False):
        query = query.filter(Part.quantity < threshold)
    parts = query.order_by(Part.name.asc()).all()

    items = [{
        "id": p.id,
        "name": p.name,
        "article": p.article,
        "type": p.type,
        "quantity": p.quantity,
        "price": money(p.price),
        "total_value": float(p.quantity * (p.price or 0)),
        "container_name": p.container.name if p.container else None,
        "supplier": p.supplier,
    } for p in parts]
    return {
        "items": items,
        "summary": {
            "total_parts": len(items),
            "total_quantity": sum(i["quantity"] for i in items),
            "total_value": sum(i["total_value"] for i in items),
            "out_of_stock": sum(1 for i in items if i["quantity"] == 0),
            "low_stock": sum(1 for i in items if 0 < i["quantity"] < threshold),
        },
    }


def equipment_status_report(company_id: int, filters: dict) -> dict:
    query = Equipment.query.filter(Equipment.company_id == company_id)
    equipment_type = parse_text(filters, "equipment_type")
    if equipment_type:
        query = query.filter(Equipment.type == equipment_type)
    status = parse_choice(filters, "status", EQUIPMENT_STATUSES)
    if status:
        query = query.filter(Equipment.status == status)
    equipment = query.order_by(Equipment.type.asc(), Equipment.model.asc()).all()

    items = []
    for e in equipment:
        completed = [r for r in e.repairs if r.status == RepairStatus.COMPLETED.value]
        items.append({
            "id": e.id,
            "type": e.type,
            "model": e.model,
            "serial_number": e.serial_number,
            "status": e.status,
            "engine_hours": money(e.engine_hours),
            "mileage": money(e.mileage),
            "total_repairs": len(e.repairs),
            "active_repairs": sum(1 for r in e.repairs if not r.is_terminal),
            "repair_costs": float(sum((r.total_cost or 0 for r in completed), 0)),
        })
    by_status = {s: sum(1 for i in items if i["status"] == s) for s in EQUIPMENT_STATUSES}
    return {"items": items, "summary": dict(total_equipment=len(items), **by_status)}


def repair_history_report(company_id: int, filters: dict) -> dict:
    query = Repair.query.filter(Repair.company_id == company_id)
    equipment_id = parse_id(filters, "equipment_id")
    if equipment_id is not None:
        query = query.filter(Repair.equipment_id == equipment_id)
    status = parse_choice(filters, "status", REPAIR_STATUSES)
    if status:
        query = query.filter(Repair.status == status)
    repairs = _period(query, Repair.start_date, filters).order_by(Repair.created_at.desc()).all()

    items = [r.to_dict(with_lines=True) for r in repairs]
    completed = [r for r in repairs if r.status == RepairStatus.COMPLETED.value]
    return {
        "items": items,
        "summary": {
            "total_repairs": len(repairs),
            "completed_repairs": len(completed),
            "total_parts_cost": float(sum((r.parts_cost or 0 for r in completed), 0)),
            "total_labor_cost": float(sum((r.labor_cost or 0 for r in completed), 0)),
            "total_cost": float(sum((r.total_cost or 0 for r in completed), 0)),
        },
    }


def staff_workload_report(company_id: int, filters: dict) -> dict:
    query = Staff.query.filter(Staff.company_id == company_id, Staff.status == StaffStatus.ACTIVE.value)
    staff_id = parse_id(filters, "staff_id")
    if staff_id is not None:
        query = query.filter(Staff.id == staff_id)
    members = query.order_by(Staff.name.asc()).all()

    items = []
    for member in members:
        lines = _period(
            RepairStaff.query.join(Repair).filter(RepairStaff.staff_id == member.id),
            Repair.start_date, filters,
        ).all()
        items.append({
            "id": member.id,
            "name": member.name,
            "position": member.position,
            "hourly_rate": money(member.hourly_rate),
            "total_repairs": len({line.repair_id for line in lines}),
            "total_hours": float(sum((line.hours or 0 for line in lines), 0)),
            "total_earnings": float(sum((line.labor_cost or 0 for line in lines), 0)),
        })
    return {
        "items": items,
        "summary": {
            "staff_count": len(items),
            "total_hours": sum(i["total_hours"] for i in items),
            "total_earnings": sum(i["total_earnings"] for i in items),
        },
    }


def transactions_report(company_id: int, filters: dict) -> dict:
    query = InventoryTransaction.query.filter(InventoryTransaction.company_id == company_id)
    kind = parse_choice(filters, "type", TRANSACTION_TYPES)
    if kind:
        query = query.filter(InventoryTransaction.type == kind)
    for key in ("part_id", "equipment_id", "user_id"):
        value = parse_id(filters, key)
        if value is not None:
            query = query.filter(getattr(InventoryTransaction, key) == value)
    rows = _period(query, InventoryTransaction.created_at, filters).order_by(
        InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc()).all()

    items = [t.to_dict() for t in rows]
    return {
        "items": items,
        "summary": {
            "total_transactions": len(rows),
            "arrivals": sum(1 for t in rows if t.type == ARRIVAL),
            "expenses": sum(1 for t in rows if t.type == EXPENSE),
            "arrival_quantity": sum(t.quantity for t in rows if t.type == ARRIVAL),
            "expense_quantity": sum(t.quantity for t in rows if t.type == EXPENSE),
        },
    }


def financial_report(company_id: int, filters: dict) -> dict:
    repairs = _period(
        Repair.query.filter(Repair.company_id == company_id, Repair.status == RepairStatus.COMPLETED.value),
        Repair.end_date, filters,
    ).all()
    arrivals = _period(
        InventoryTransaction.query.filter(InventoryTransaction.company_id == company_id,
                                          InventoryTransaction.type == ARRIVAL),
        InventoryTransaction.created_at, filters,
    ).all()
    parts = Part.query.filter(Part.company_id == company_id).all()

    per_equipment = defaultdict(lambda: {"repairs": 0, "total_cost": 0.0})
    for r in repairs:
        key = (r.equipment_id, r.equipment.type, r.equipment.model)
        per_equipment[key]["repairs"] += 1
        per_equipment[key]["total_cost"] += float(r.total_cost or 0)
    top_equipment = sorted(
        ({"equipment_id": k[0], "type": k[1], "model": k[2], **v} for k, v in per_equipment.items()),
        key=lambda row: row["total_cost"], reverse=True,
    )[:10]

    purchases = sum(float(t.quantity * (t.part.price or 0)) for t in arrivals if t.part is not None)
    return {
        "items": top_equipment,
        "summary": {
            "completed_repairs": len(repairs),
            "repair_parts_cost": float(sum((r.parts_cost or 0 for r in repairs), 0)),
            "repair_labor_cost": float(sum((r.labor_cost or 0 for r in repairs), 0)),
            "repair_total_cost": float(sum((r.total_cost or 0 for r in repairs), 0)),
            "purchases_value": purchases,
            "inventory_value": float(sum((p.quantity * (p.price or 0) for p in parts), 0)),
        },
    }


GENERATORS = {
    "parts_inventory": parts_inventory_report,
    "equipment_status": equipment_status_report,
    "repair_history": repair_history_report,
    "staff_workload": staff_workload_report,
    "transactions": transactions_report,
    "financial": financial_report,
}


# ---------- output formats ----------
def _columns(items: list) -> list:
    columns = []
    for item in items:
        for key, value in item.items():
            if key not in columns and not isinstance(value, (list, dict)):
                columns.append(key)
    return columns


def render_csv(report: dict) -> bytes:
    items = report["data"]["items"]
    columns = _columns(items)
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(columns)
    for item in items:
        writer.writerow(["" if item.get(c) is None else item.get(c) for c in columns])
    return ("\ufeff" + out.getvalue()).encode("utf-8")


def render_xlsx(report: dict) -> bytes:
    items = report["data"]["items"]
    columns = _columns(items)
    wb = Workbook()
    ws = wb.active
    ws.title = "Report"
    ws.append(columns)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for item in items:
        ws.append([item.get(c) for c in columns])

    summary = wb.create_sheet("Summary")
    summary.append([report["title"]])
    summary.append(["Generated", report["generated_at"]])
    for key, value in report["data"]["summary"].items():
        summary.append([key, value])

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


class ReportService:
    def __init__(self, session=None):
        self.session = session or db.session

    @transactional
    def generate(self, company_id: int, data: dict, user_id=None) -> dict:
        report_type = parse_choice(data, "report_type", REPORT_TYPES, required=True)
        fmt = parse_choice(data, "format", REPORT_FORMATS, default="json")
        filters = data.get("filters") or {}
        if not isinstance(filters, dict):
            raise InvalidInput("filters", "must be an object")

        try:
            payload = GENERATORS[report_type](company_id, filters)
        except InvalidInput as exc:
            raise InvalidInput(f"filters.{exc.field}", exc.details.get("reason", exc.message)) from None

        record = ReportHistory(
            company_id=company_id,
            user_id=user_id,
            report_type=report_type,
            title=TITLES[report_type],
            filters=filters,
            format=fmt,
            data=payload,
            generated_at=datetime.utcnow(),
        )
        self.session.add(record)
        self.session.flush()
        log.info("report generated", extra={"report_id": record.id, "report_type": report_type, "format": fmt})
        return {
            "report_id": record.id,
            "title": record.title,
            "type": report_type,
            "format": fmt,
            "generated_at": iso(record.generated_at),
            "data": payload,
        }

    def get(self, company_id: int, report_id: int) -> ReportHistory:
        return scoped_get(self.session, ReportHistory, company_id, report_id, "report")

    @transactional
    def delete(self, company_id: int, report_id: int) -> None:
        self.session.delete(self.get(company_id, report_id))


def history_query(company_id: int, filters: dict):
    query = ReportHistory.query.filter(ReportHistory.company_id == company_id)
    if filters.get("report_type"):
        query = query.filter(ReportHistory.report_type == filters["report_type"])
    if filters.get("user_id") is not None:
        query = query.filter(ReportHistory.user_id == filters["user_id"])
    return query.order_by(ReportHistory.generated_at.desc(), ReportHistory.id.desc())

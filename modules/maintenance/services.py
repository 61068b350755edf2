"""
Maintenance services: equipment, staff and the repair state machine.

Repair transitions
- planned -> in_progress (start): claims the equipment (status in_repair).
- in_progress -> completed (complete): re-derives costs, releases the equipment.
- planned | in_progress -> cancelled (cancel): releases the equipment, lines stay.
- planned -> deleted (delete): releases the equipment; a planned repair has no ledger entries.

Releasing sets the equipment back to operational unless another repair on it
is still in progress.

Part lines move stock through the inventory ledger and are only accepted
while the repair is in progress. Staff lines are accepted in any
non-terminal state. Totals are recomputed from the lines on every change.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_

from app_logging import get_logger
from extensions import db
from modules.core import Conflict, InvalidInput, InvalidStateTransition, NotFound, transactional
from modules.core.tenancy import scoped_get
from modules.core.validation import (
    parse_bool,
    parse_choice,
    parse_datetime,
    parse_decimal,
    parse_id,
    parse_int,
    parse_text,
    reject_fields,
)
from modules.inventory.services import InventoryLedger
from utils import round_money

from .models import (
    EQUIPMENT_STATUSES,
    MANUAL_EQUIPMENT_STATUSES,
    REPAIR_PRIORITIES,
    STAFF_STATUSES,
    TERMINAL_REPAIR_STATUSES,
    Equipment,
    EquipmentStatus,
    Repair,
    RepairPart,
    RepairStaff,
    RepairStatus,
    Staff,
    StaffStatus,
)

log = get_logger(__name__)


def _first_present(data: dict, *names: str) -> str:
    """Name of the first key present in ``data`` (aliases like quantity_used/quantity)."""
    for name in names:
        if name in data:
            return name
    return names[0]


def _in_progress_repairs(session, equipment_id: int, exclude_id=None):
    query = session.query(Repair).filter(
        Repair.equipment_id == equipment_id,
        Repair.status == RepairStatus.IN_PROGRESS.value,
    )
    if exclude_id is not None:
        query = query.filter(Repair.id != exclude_id)
    return query


# ========== EQUIPMENT ==========
class EquipmentService:
    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, company_id: int, equipment_id: int, for_update: bool = False) -> Equipment:
        return scoped_get(self.session, Equipment, company_id, equipment_id, "equipment", for_update=for_update)

    def _check_serial(self, company_id: int, serial, exclude_id=None):
        if not serial:
            return
        query = self.session.query(Equipment).filter(
            Equipment.company_id == company_id, Equipment.serial_number == serial)
        if exclude_id is not None:
            query = query.filter(Equipment.id != exclude_id)
        if query.first() is not None:
            raise Conflict("Equipment with this serial number already exists", field="serial_number",
                           details={"serial_number": serial})

    def _fields(self, data: dict, creating: bool) -> dict:
        parsers = {
            "type": lambda: parse_text(data, "type", required=True, max_length=120),
            "model": lambda: parse_text(data, "model", required=True, max_length=120),
            "serial_number": lambda: parse_text(data, "serial_number", max_length=120),
            "license_plate": lambda: parse_text(data, "license_plate", max_length=32),
            "year": lambda: parse_int(data, "year", minimum=1900),
            "engine_hours": lambda: parse_decimal(data, "engine_hours"),
            "mileage": lambda: parse_decimal(data, "mileage"),
            "description": lambda: parse_text(data, "description"),
        }
        return {name: parse() for name, parse in parsers.items() if creating or name in data}

    @transactional
    def create(self, company_id: int, data: dict) -> Equipment:
        fields = self._fields(data, creating=True)
        status = parse_choice(data, "status", MANUAL_EQUIPMENT_STATUSES,
                              default=EquipmentStatus.OPERATIONAL.value)
        self._check_serial(company_id, fields["serial_number"])
        photos = data.get("photos") or []
        equipment = Equipment(company_id=company_id, status=status,
                              photos=[str(p) for p in (photos if isinstance(photos, list) else [photos])],
                              **fields)
        for counter in ("engine_hours", "mileage"):
            if getattr(equipment, counter) is None:
                setattr(equipment, counter, Decimal("0"))
        self.session.add(equipment)
        self.session.flush()
        log.info("equipment created", extra={"equipment_id": equipment.id})
        return equipment

    @transactional
    def update(self, company_id: int, equipment_id: int, data: dict) -> Equipment:
        equipment = self.get(company_id, equipment_id, for_update=True)
        fields = self._fields(data, creating=False)

        if "status" in data:
            status = parse_choice(data, "status", EQUIPMENT_STATUSES, required=True)
            if status not in MANUAL_EQUIPMENT_STATUSES:
                raise InvalidInput("status", "in_repair is set by starting a repair", status)
            if _in_progress_repairs(self.session, equipment.id).count():
                raise Conflict("Equipment status is managed by the repair in progress", field="status",
                               details={"status": equipment.status})
            fields["status"] = status

        if "serial_number" in fields:
            self._check_serial(company_id, fields["serial_number"], exclude_id=equipment.id)
        if "photos" in data:
            photos = data.get("photos") or []
            fields["photos"] = [str(p) for p in (photos if isinstance(photos, list) else [photos])]

        for name, value in fields.items():
            setattr(equipment, name, value)
        self.session.flush()
        return equipment

    @transactional
    def update_meters(self, company_id: int, equipment_id: int, data: dict) -> Equipment:
        """Engine hours and mileage only move forward."""
        equipment = self.get(company_id, equipment_id, for_update=True)
        engine_hours = parse_decimal(data, "engine_hours")
        mileage = parse_decimal(data, "mileage")
        if engine_hours is None and mileage is None:
            raise InvalidInput("engine_hours", "engine_hours or mileage is required")
        if engine_hours is not None:
            if engine_hours < (equipment.engine_hours or 0):
                raise InvalidInput("engine_hours", "cannot be lower than the current reading", str(engine_hours))
            equipment.engine_hours = engine_hours
        if mileage is not None:
            if mileage < (equipment.mileage or 0):
                raise InvalidInput("mileage", "cannot be lower than the current reading", str(mileage))
            equipment.mileage = mileage
        self.session.flush()
        return equipment

    @transactional
    def delete(self, company_id: int, equipment_id: int) -> None:
        equipment = self.get(company_id, equipment_id)
        repairs = self.session.query(Repair).filter(Repair.equipment_id == equipment.id).count()
        if repairs:
            raise Conflict("Equipment has repair history and cannot be deleted",
                           details={"equipment_id": equipment.id, "repairs": repairs})
        self.session.delete(equipment)
        log.info("equipment deleted", extra={"equipment_id": equipment_id})


def equipment_query(company_id: int, filters: dict):
    query = Equipment.query.filter(Equipment.company_id == company_id)
    if filters.get("status"):
        query = query.filter(Equipment.status == filters["status"])
    if filters.get("type"):
        query = query.filter(Equipment.type == filters["type"])
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        query = query.filter(or_(Equipment.model.ilike(pattern), Equipment.serial_number.ilike(pattern),
                                 Equipment.license_plate.ilike(pattern), Equipment.type.ilike(pattern)))
    return query.order_by(Equipment.type.asc(), Equipment.model.asc(), Equipment.id.asc())


def equipment_detail(equipment: Equipment) -> dict:
    repairs = sorted(equipment.repairs, key=lambda r: r.created_at or datetime.min, reverse=True)
    completed = [r for r in repairs if r.status == RepairStatus.COMPLETED.value]
    data = equipment.to_dict()
    data["active_repairs"] = [r.to_dict() for r in repairs if not r.is_terminal]
    data["repair_history"] = [r.to_dict() for r in repairs[:20]]
    data["stats"] = {
        "total_repairs": len(repairs),
        "completed_repairs": len(completed),
        "total_repair_cost": float(sum((r.total_cost or 0 for r in completed), 0)),
        "total_parts_cost": float(sum((r.parts_cost or 0 for r in completed), 0)),
        "total_labor_cost": float(sum((r.labor_cost or 0 for r in completed), 0)),
    }
    return data


def equipment_stats(company_id: int) -> dict:
    items = Equipment.query.filter(Equipment.company_id == company_id).all()
    by_type = defaultdict(int)
    for item in items:
        by_type[item.type] += 1
    return {
        "overview": {
            "total_equipment": len(items),
            "operational": sum(1 for e in items if e.status == EquipmentStatus.OPERATIONAL.value),
            "in_repair": sum(1 for e in items if e.status == EquipmentStatus.IN_REPAIR.value),
            "broken": sum(1 for e in items if e.status == EquipmentStatus.BROKEN.value),
            "unique_types": len(by_type),
        },
        "type_stats": [{"type": key, "count": value} for key, value in sorted(by_type.items())],
    }


# ========== STAFF ==========
class StaffService:
    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, company_id: int, staff_id: int) -> Staff:
        return scoped_get(self.session, Staff, company_id, staff_id, "staff")

    def _check_email(self, company_id: int, email, exclude_id=None):
        if not email:
            return
        query = self.session.query(Staff).filter(Staff.company_id == company_id, Staff.email == email)
        if exclude_id is not None:
            query = query.filter(Staff.id != exclude_id)
        if query.first() is not None:
            raise Conflict("A staff member with this email already exists", field="email",
                           details={"email": email})

    @staticmethod
    def _fields(data: dict, creating: bool) -> dict:
        parsers = {
            "name": lambda: parse_text(data, "name", required=True, min_length=2, max_length=150),
            "position": lambda: parse_text(data, "position", required=True, max_length=120),
            "hourly_rate": lambda: parse_decimal(data, "hourly_rate"),
            "phone": lambda: parse_text(data, "phone", max_length=32),
            "email": lambda: parse_text(data, "email", max_length=150),
            "hire_date": lambda: parse_datetime(data, "hire_date"),
            "notes": lambda: parse_text(data, "notes"),
        }
        fields = {name: parse() for name, parse in parsers.items() if creating or name in data}
        if fields.get("email") and "@" not in fields["email"]:
            raise InvalidInput("email", "must be a valid email address", fields["email"])
        return fields

    @transactional
    def create(self, company_id: int, data: dict) -> Staff:
        fields = self._fields(data, creating=True)
        self._check_email(company_id, fields["email"])
        staff = Staff(company_id=company_id, status=StaffStatus.ACTIVE.value, **fields)
        self.session.add(staff)
        self.session.flush()
        return staff

    @transactional
    def update(self, company_id: int, staff_id: int, data: dict) -> Staff:
        staff = self.get(company_id, staff_id)
        fields = self._fields(data, creating=False)
        if "email" in fields:
            self._check_email(company_id, fields["email"], exclude_id=staff.id)
        if "status" in data:
            fields["status"] = parse_choice(data, "status", STAFF_STATUSES, required=True)
        for name, value in fields.items():
            setattr(staff, name, value)
        self.session.flush()
        return staff

    @transactional
    def deactivate(self, company_id: int, staff_id: int) -> Staff:
        """Staff rows are never deleted; repair history keeps pointing at them."""
        staff = self.get(company_id, staff_id)
        if not staff.is_active:
            raise Conflict("Staff member is already inactive", field="status", details={"status": staff.status})
        staff.status = StaffStatus.INACTIVE.value
        log.info("staff deactivated", extra={"staff_id": staff.id})
        return staff

    @transactional
    def activate(self, company_id: int, staff_id: int) -> Staff:
        staff = self.get(company_id, staff_id)
        if staff.is_active:
            raise Conflict("Staff member is already active", field="status", details={"status": staff.status})
        staff.status = StaffStatus.ACTIVE.value
        return staff


def staff_query(company_id: int, filters: dict):
    query = Staff.query.filter(Staff.company_id == company_id)
    if filters.get("status"):
        query = query.filter(Staff.status == filters["status"])
    if filters.get("position"):
        query = query.filter(Staff.position == filters["position"])
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        query = query.filter(or_(Staff.name.ilike(pattern), Staff.email.ilike(pattern), Staff.phone.ilike(pattern)))
    return query.order_by(Staff.name.asc(), Staff.id.asc())


def staff_workload(staff: Staff) -> dict:
    lines = staff.assignments
    repairs = {line.repair_id for line in lines}
    return {
        "total_repairs": len(repairs),
        "active_repairs": len({line.repair_id for line in lines if not line.repair.is_terminal}),
        "total_hours": float(sum((line.hours or 0 for line in lines), 0)),
        "total_earnings": float(sum((line.labor_cost or 0 for line in lines), 0)),
    }


def staff_detail(staff: Staff) -> dict:
    data = staff.to_dict()
    data["stats"] = staff_workload(staff)
    recent = sorted(staff.assignments, key=lambda line: line.created_at or datetime.min, reverse=True)[:10]
    data["recent_repairs"] = [
        dict(line.to_dict(), repair_id=line.repair_id, repair_status=line.repair.status,
             repair_description=line.repair.description)
        for line in recent
    ]
    return data


def staff_stats(company_id: int) -> dict:
    members = Staff.query.filter(Staff.company_id == company_id).all()
    rates = [m.hourly_rate for m in members if m.hourly_rate is not None]
    positions = defaultdict(int)
    for member in members:
        positions[member.position] += 1
    return {
        "overview": {
            "total_staff": len(members),
            "active_staff": sum(1 for m in members if m.is_active),
            "inactive_staff": sum(1 for m in members if not m.is_active),
            "avg_hourly_rate": float(sum(rates) / len(rates)) if rates else None,
            "unique_positions": len(positions),
        },
        "position_stats": [{"position": key, "count": value} for key, value in sorted(positions.items())],
    }


# ========== REPAIRS ==========
class RepairService:
    def __init__(self, session=None):
        self.session = session or db.session
        self.ledger = InventoryLedger(self.session)

    def get(self, company_id: int, repair_id: int, for_update: bool = False) -> Repair:
        return scoped_get(self.session, Repair, company_id, repair_id, "repair", for_update=for_update)

    # --- guards ---
    @staticmethod
    def _require_open(repair: Repair, action: str) -> None:
        if repair.is_terminal:
            raise InvalidStateTransition(f"Repair is {repair.status}, it can no longer be changed",
                                         status=repair.status, action=action)

    @classmethod
    def _require_in_progress(cls, repair: Repair, action: str) -> None:
        cls._require_open(repair, action)
        if repair.status != RepairStatus.IN_PROGRESS.value:
            raise InvalidStateTransition("Repair has not been started yet", status=repair.status, action=action)

    def _claim_equipment(self, repair: Repair) -> None:
        equipment = scoped_get(self.session, Equipment, repair.company_id, repair.equipment_id,
                               "equipment", for_update=True)
        busy = _in_progress_repairs(self.session, equipment.id, exclude_id=repair.id).first()
        if busy is not None:
            raise Conflict("Equipment is already under repair", field="equipment_id",
                           details={"equipment_id": equipment.id, "repair_id": busy.id})
        equipment.status = EquipmentStatus.IN_REPAIR.value

    def _release_equipment(self, repair: Repair) -> None:
        equipment = repair.equipment
        if _in_progress_repairs(self.session, equipment.id, exclude_id=repair.id).count() == 0:
            equipment.status = EquipmentStatus.OPERATIONAL.value

    # --- lifecycle ---
    @transactional
    def create(self, company_id: int, data: dict, user_id=None) -> Repair:
        equipment_id = parse_id(data, "equipment_id", required=True)
        scoped_get(self.session, Equipment, company_id, equipment_id, "equipment")
        repair = Repair(
            company_id=company_id,
            equipment_id=equipment_id,
            description=parse_text(data, "description", required=True, min_length=3),
            priority=parse_choice(data, "priority", REPAIR_PRIORITIES, default="medium"),
            status=RepairStatus.PLANNED.value,
            planned_start_date=parse_datetime(data, "planned_start_date"),
            estimated_hours=parse_decimal(data, "estimated_hours"),
            notes=parse_text(data, "notes"),
            created_by=user_id,
            parts_cost=Decimal("0"),
            labor_cost=Decimal("0"),
            total_cost=Decimal("0"),
        )
        start = parse_bool(data, "start", default=False) or parse_choice(
            data, "status", (RepairStatus.PLANNED.value, RepairStatus.IN_PROGRESS.value),
            default=RepairStatus.PLANNED.value) == RepairStatus.IN_PROGRESS.value
        self.session.add(repair)
        self.session.flush()
        if start:
            self.start(company_id, repair.id, user_id=user_id)
        log.info("repair created", extra={"repair_id": repair.id, "status": repair.status})
        return repair

    @transactional
    def update(self, company_id: int, repair_id: int, data: dict) -> Repair:
        reject_fields(data, ("status",), "use the start, complete or cancel actions")
        reject_fields(data, ("parts_cost", "labor_cost", "total_cost"), "costs are derived from the repair lines")
        reject_fields(data, ("equipment_id",), "cannot be changed after creation")
        repair = self.get(company_id, repair_id)
        self._require_open(repair, "update")

        if "description" in data:
            repair.description = parse_text(data, "description", required=True, min_length=3)
        if "priority" in data:
            repair.priority = parse_choice(data, "priority", REPAIR_PRIORITIES, required=True)
        if "planned_start_date" in data:
            repair.planned_start_date = parse_datetime(data, "planned_start_date")
        if "estimated_hours" in data:
            repair.estimated_hours = parse_decimal(data, "estimated_hours")
        if "notes" in data:
            repair.notes = parse_text(data, "notes")
        self.session.flush()
        return repair

    @transactional
    def start(self, company_id: int, repair_id: int, user_id=None) -> Repair:
        repair = self.get(company_id, repair_id, for_update=True)
        if repair.status != RepairStatus.PLANNED.value:
            raise InvalidStateTransition("Only a planned repair can be started", status=repair.status,
                                         action="start")
        self._claim_equipment(repair)
        repair.status = RepairStatus.IN_PROGRESS.value
        repair.start_date = datetime.utcnow()
        self.session.flush()
        log.info("repair started", extra={"repair_id": repair.id, "equipment_id": repair.equipment_id,
                                          "user_id": user_id})
        return repair

    @transactional
    def attach_part(self, company_id: int, repair_id: int, data: dict, user_id=None) -> RepairPart:
        repair = self.get(company_id, repair_id, for_update=True)
        self._require_in_progress(repair, "attach_part")
        part_id = parse_id(data, "part_id", required=True)
        quantity = parse_int(data, _first_present(data, "quantity_used", "quantity"), required=True, minimum=1)

        part = self.ledger.lock_part(company_id, part_id)
        entry = self.ledger.consume_part(
            company_id, part.id, quantity, f"Used in repair #{repair.id}",
            equipment_id=repair.equipment_id, repair_id=repair.id, user_id=user_id,
        )
        unit_price = part.price if part.price is not None else Decimal("0")
        line = RepairPart(
            part_id=part.id,
            part_name=part.name,
            part_article=part.article,
            quantity=quantity,
            unit_price=unit_price,
            total_price=round_money(unit_price * quantity),
            description=parse_text(data, "description"),
            added_by=user_id,
        )
        repair.parts.append(line)
        repair.recompute_totals()
        self.session.flush()
        log.info("part attached to repair", extra={"repair_id": repair.id, "part_id": part.id,
                                                   "quantity": quantity, "transaction_id": entry.id})
        return line

    @transactional
    def detach_part(self, company_id: int, repair_id: int, line_id: int, user_id=None) -> Repair:
        repair = self.get(company_id, repair_id, for_update=True)
        self._require_in_progress(repair, "detach_part")
        line = next((item for item in repair.parts if item.id == line_id), None)
        if line is None:
            raise NotFound("repair part", line_id)

        if line.part_id is not None:
            self.ledger.return_part(company_id, line.part_id, line.quantity, f"Returned from repair #{repair.id}",
                                    equipment_id=repair.equipment_id, repair_id=repair.id, user_id=user_id)
        repair.parts.remove(line)
        repair.recompute_totals()
        self.session.flush()
        return repair

    @transactional
    def attach_staff(self, company_id: int, repair_id: int, data: dict, user_id=None) -> RepairStaff:
        repair = self.get(company_id, repair_id, for_update=True)
        self._require_open(repair, "attach_staff")
        staff_id = parse_id(data, "staff_id", required=True)
        hours = parse_decimal(data, _first_present(data, "hours_worked", "hours"), required=True)

        staff = scoped_get(self.session, Staff, company_id, staff_id, "staff")
        if not staff.is_active:
            raise Conflict("Staff member is inactive", field="staff_id",
                           details={"staff_id": staff.id, "status": staff.status})
        if any(item.staff_id == staff.id for item in repair.staff):
            raise Conflict("Staff member is already assigned to this repair", field="staff_id",
                           details={"staff_id": staff.id, "repair_id": repair.id})

        rate = staff.hourly_rate if staff.hourly_rate is not None else Decimal("0")
        line = RepairStaff(
            staff_id=staff.id,
            staff_name=staff.name,
            staff_position=staff.position,
            hours=hours,
            hourly_rate=rate,
            labor_cost=round_money(hours * rate),
            description=parse_text(data, "description"),
            assigned_by=user_id,
        )
        repair.staff.append(line)
        repair.recompute_totals()
        self.session.flush()
        return line

    @transactional
    def detach_staff(self, company_id: int, repair_id: int, line_id: int) -> Repair:
        repair = self.get(company_id, repair_id, for_update=True)
        self._require_open(repair, "detach_staff")
        line = next((item for item in repair.staff if item.id == line_id), None)
        if line is None:
            raise NotFound("repair staff", line_id)
        repair.staff.remove(line)
        repair.recompute_totals()
        self.session.flush()
        return repair

    @transactional
    def complete(self, company_id: int, repair_id: int, data: dict, user_id=None) -> Repair:
        repair = self.get(company_id, repair_id, for_update=True)
        if repair.status == RepairStatus.COMPLETED.value:
            raise InvalidStateTransition("Repair is already completed", status=repair.status, action="complete")
        if repair.status != RepairStatus.IN_PROGRESS.value:
            raise InvalidStateTransition("Only a repair in progress can be completed", status=repair.status,
                                         action="complete")

        actual_hours = parse_decimal(data, "actual_hours")
        labor_override = parse_decimal(data, "labor_cost")
        engine_hours = parse_decimal(data, "engine_hours")
        mileage = parse_decimal(data, "mileage")

        repair.recompute_totals(labor_override=labor_override)
        repair.status = RepairStatus.COMPLETED.value
        repair.end_date = datetime.utcnow()
        repair.actual_hours = actual_hours
        repair.completion_notes = parse_text(data, "notes")
        repair.completion_engine_hours = engine_hours
        repair.completion_mileage = mileage
        repair.completed_by = user_id

        equipment = repair.equipment
        if engine_hours is not None:
            equipment.engine_hours = engine_hours
        if mileage is not None:
            equipment.mileage = mileage
        self._release_equipment(repair)
        self.session.flush()
        log.info("repair completed", extra={"repair_id": repair.id, "total_cost": str(repair.total_cost)})
        return repair

    @transactional
    def cancel(self, company_id: int, repair_id: int, data=None) -> Repair:
        repair = self.get(company_id, repair_id, for_update=True)
        self._require_open(repair, "cancel")
        repair.status = RepairStatus.CANCELLED.value
        repair.end_date = datetime.utcnow()
        reason = parse_text(data or {}, "reason")
        if reason:
            repair.completion_notes = reason
        repair.recompute_totals()
        self._release_equipment(repair)
        self.session.flush()
        log.info("repair cancelled", extra={"repair_id": repair.id})
        return repair

    @transactional
    def delete(self, company_id: int, repair_id: int) -> None:
        repair = self.get(company_id, repair_id, for_update=True)
        if repair.status != RepairStatus.PLANNED.value:
            raise InvalidStateTransition("Only a planned repair can be deleted", status=repair.status,
                                         action="delete")
        self._release_equipment(repair)
        self.session.delete(repair)
        log.info("repair deleted", extra={"repair_id": repair_id})


def repairs_query(company_id: int, filters: dict):
    query = Repair.query.filter(Repair.company_id == company_id)
    if filters.get("status"):
        query = query.filter(Repair.status == filters["status"])
    if filters.get("priority"):
        query = query.filter(Repair.priority == filters["priority"])
    if filters.get("equipment_id") is not None:
        query = query.filter(Repair.equipment_id == filters["equipment_id"])
    if filters.get("date_from") is not None:
        query = query.filter(Repair.created_at >= filters["date_from"])
    if filters.get("date_to") is not None:
        query = query.filter(Repair.created_at <= filters["date_to"])
    if filters.get("search"):
        query = query.filter(Repair.description.ilike(f"%{filters['search']}%"))
    return query.order_by(Repair.created_at.desc(), Repair.id.desc())


def repairs_stats(company_id: int) -> dict:
    repairs = Repair.query.filter(Repair.company_id == company_id).all()
    completed = [r for r in repairs if r.status == RepairStatus.COMPLETED.value]
    durations = [(r.end_date - r.start_date).days for r in completed if r.end_date and r.start_date]
    total = sum((r.total_cost or 0 for r in completed), 0)

    monthly = defaultdict(lambda: {"total_repairs": 0, "completed_repairs": 0, "total_cost": 0.0})
    for repair in repairs:
        if repair.start_date is None:
            continue
        bucket = monthly[repair.start_date.strftime("%Y-%m")]
        bucket["total_repairs"] += 1
        if repair.status == RepairStatus.COMPLETED.value:
            bucket["completed_repairs"] += 1
            bucket["total_cost"] += float(repair.total_cost or 0)

    return {
        "overview": {
            "total_repairs": len(repairs),
            **{status.value: sum(1 for r in repairs if r.status == status.value) for status in RepairStatus},
            "avg_repair_cost": float(total / len(completed)) if completed else None,
            "total_repair_costs": float(total),
            "avg_repair_days": sum(durations) / len(durations) if durations else None,
        },
        "monthly_stats": [dict(month=key, **value) for key, value in sorted(monthly.items(), reverse=True)][:12],
    }


def active_repairs_count(company_id: int) -> int:
    return (
        db.session.query(func.count(Repair.id))
        .filter(Repair.company_id == company_id, Repair.status.notin_(TERMINAL_REPAIR_STATUSES))
        .scalar()
    )

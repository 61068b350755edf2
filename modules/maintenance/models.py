# Maintenance models: equipment, staff and the repair aggregate.

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, UniqueConstraint

from extensions import db
from utils import as_decimal, iso, money, round_money


# ========== EQUIPMENT ==========
class EquipmentStatus(str, Enum):
    OPERATIONAL = "operational"
    IN_REPAIR = "in_repair"
    BROKEN = "broken"


EQUIPMENT_STATUSES = tuple(s.value for s in EquipmentStatus)
# statuses a client may set by hand; in_repair belongs to the repair lifecycle
MANUAL_EQUIPMENT_STATUSES = (EquipmentStatus.OPERATIONAL.value, EquipmentStatus.BROKEN.value)


class Equipment(db.Model):
    __tablename__ = "equipment"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    type = db.Column(db.String(120), nullable=False, index=True)   # tractor, truck, excavator
    model = db.Column(db.String(120), nullable=False)
    serial_number = db.Column(db.String(120), index=True)
    license_plate = db.Column(db.String(32))
    year = db.Column(db.Integer)
    status = db.Column(db.String(32), nullable=False, default=EquipmentStatus.OPERATIONAL.value, index=True)
    engine_hours = db.Column(db.Numeric(10, 2), default=0)
    mileage = db.Column(db.Numeric(12, 2), default=0)
    description = db.Column(db.Text)
    photos = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    repairs = db.relationship("Repair", back_populates="equipment")

    __table_args__ = (
        CheckConstraint("status IN ('operational', 'in_repair', 'broken')", name="ck_equipment_status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "model": self.model,
            "serial_number": self.serial_number,
            "license_plate": self.license_plate,
            "year": self.year,
            "status": self.status,
            "engine_hours": money(self.engine_hours),
            "mileage": money(self.mileage),
            "description": self.description,
            "photos": list(self.photos or []),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Equipment {self.type} {self.model}>"


# ========== STAFF ==========
class StaffStatus(str, Enum):
    """Lifecycle of an employee record. Records are never removed, only deactivated."""

    ACTIVE = "active"
    INACTIVE = "inactive"


STAFF_STATUSES = tuple(s.value for s in StaffStatus)


class Staff(db.Model):
    __tablename__ = "staff"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    position = db.Column(db.String(120), nullable=False)
    hourly_rate = db.Column(db.Numeric(8, 2))
    phone = db.Column(db.String(32))
    email = db.Column(db.String(150))
    hire_date = db.Column(db.DateTime)
    notes = db.Column(db.Text)
    status = db.Column(db.String(16), nullable=False, default=StaffStatus.ACTIVE.value, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assignments = db.relationship("RepairStaff", back_populates="staff")

    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_staff_company_email"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == StaffStatus.ACTIVE.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "hourly_rate": money(self.hourly_rate),
            "phone": self.phone,
            "email": self.email,
            "hire_date": iso(self.hire_date),
            "notes": self.notes,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }


# ========== REPAIRS ==========
class RepairStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


REPAIR_STATUSES = tuple(s.value for s in RepairStatus)
TERMINAL_REPAIR_STATUSES = (RepairStatus.COMPLETED.value, RepairStatus.CANCELLED.value)
REPAIR_PRIORITIES = ("low", "medium", "high", "critical")


class Repair(db.Model):
    """
    Repair aggregate root: owns its part and staff lines.

    Costs are never edited directly; recompute_totals() re-derives them
    from the lines after every mutation.
    """

    __tablename__ = "repairs"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipment.id"), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(16), nullable=False, default="medium")
    status = db.Column(db.String(16), nullable=False, default=RepairStatus.PLANNED.value, index=True)

    planned_start_date = db.Column(db.DateTime)
    start_date = db.Column(db.DateTime, index=True)
    end_date = db.Column(db.DateTime, index=True)
    estimated_hours = db.Column(db.Numeric(8, 2))
    actual_hours = db.Column(db.Numeric(8, 2))

    parts_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    labor_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    notes = db.Column(db.Text)
    completion_notes = db.Column(db.Text)
    completion_engine_hours = db.Column(db.Numeric(10, 2))
    completion_mileage = db.Column(db.Numeric(12, 2))

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    equipment = db.relationship("Equipment", back_populates="repairs")
    parts = db.relationship("RepairPart", back_populates="repair",
                            cascade="all, delete-orphan", order_by="RepairPart.id")
    staff = db.relationship("RepairStaff", back_populates="repair",
                            cascade="all, delete-orphan", order_by="RepairStaff.id")

    __table_args__ = (
        CheckConstraint("status IN ('planned', 'in_progress', 'completed', 'cancelled')",
                        name="ck_repair_status"),
        CheckConstraint("priority IN ('low', 'medium', 'high', 'critical')", name="ck_repair_priority"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REPAIR_STATUSES

    def derived_parts_cost(self) -> Decimal:
        return sum((line.line_total() for line in self.parts), Decimal("0"))

    def derived_labor_cost(self) -> Decimal:
        return sum((line.line_cost() for line in self.staff), Decimal("0"))

    def recompute_totals(self, labor_override: Decimal = None) -> None:
        self.parts_cost = self.derived_parts_cost()
        self.labor_cost = labor_override if labor_override is not None else self.derived_labor_cost()
        self.total_cost = as_decimal(self.parts_cost) + as_decimal(self.labor_cost)

    def to_dict(self, with_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "equipment_type": self.equipment.type if self.equipment else None,
            "equipment_model": self.equipment.model if self.equipment else None,
            "equipment_serial": self.equipment.serial_number if self.equipment else None,
            "equipment_status": self.equipment.status if self.equipment else None,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "planned_start_date": iso(self.planned_start_date),
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "estimated_hours": money(self.estimated_hours),
            "actual_hours": money(self.actual_hours),
            "parts_cost": money(self.parts_cost),
            "labor_cost": money(self.labor_cost),
            "total_cost": money(self.total_cost),
            "notes": self.notes,
            "completion_notes": self.completion_notes,
            "completion_engine_hours": money(self.completion_engine_hours),
            "completion_mileage": money(self.completion_mileage),
            "created_at": iso(self.created_at),
        }
        if with_lines:
            data["parts"] = [line.to_dict() for line in self.parts]
            data["staff"] = [line.to_dict() for line in self.staff]
        return data


class RepairPart(db.Model):
    """Part consumed by a repair; price is a snapshot taken when the line was added."""

    __tablename__ = "repair_parts"

    id = db.Column(db.Integer, primary_key=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id", ondelete="SET NULL"), index=True)
    part_name = db.Column(db.String(150), nullable=False)
    part_article = db.Column(db.String(100))
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    description = db.Column(db.Text)
    added_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    repair = db.relationship("Repair", back_populates="parts")
    part = db.relationship("Part")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_repair_part_quantity_positive"),
    )

    def line_total(self) -> Decimal:
        return round_money(as_decimal(self.quantity) * as_decimal(self.unit_price))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "part_id": self.part_id,
            "part_name": self.part_name,
            "part_article": self.part_article,
            "quantity": self.quantity,
            "unit_price": money(self.unit_price),
            "total_price": money(self.total_price),
            "description": self.description,
            "created_at": iso(self.created_at),
        }


class RepairStaff(db.Model):
    """Staff hours booked on a repair; hourly rate is a snapshot."""

    __tablename__ = "repair_staff"

    id = db.Column(db.Integer, primary_key=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)
    staff_name = db.Column(db.String(150), nullable=False)
    staff_position = db.Column(db.String(120))
    hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    hourly_rate = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    labor_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    description = db.Column(db.Text)
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    repair = db.relationship("Repair", back_populates="staff")
    staff = db.relationship("Staff", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("repair_id", "staff_id", name="uq_repair_staff_assignment"),
    )

    def line_cost(self) -> Decimal:
        return round_money(as_decimal(self.hours) * as_decimal(self.hourly_rate))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "staff_position": self.staff_position,
            "hours": money(self.hours),
            "hourly_rate": money(self.hourly_rate),
            "labor_cost": money(self.labor_cost),
            "description": self.description,
            "created_at": iso(self.created_at),
        }

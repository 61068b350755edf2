"""
Inventory ledger: the only code path that changes ``Part.quantity``.

Every change locks the part row, moves the quantity with a guarded UPDATE
(the row never goes below zero) and appends one ``InventoryTransaction`` in
the same unit of work. The record type is derived from the direction of the change, callers never pass it.
"""

from datetime import datetime, timedelta

from sqlalchemy import case, func, select, update

from app_logging import get_logger
from extensions import db
from modules.core import Conflict, InsufficientStock, InvalidInput, transactional
from modules.core.tenancy import resolve_optional, scoped_get
from modules.core.validation import parse_choice, parse_id, parse_int, parse_text

from .models import ARRIVAL, EXPENSE, TRANSACTION_TYPES, InventoryTransaction

log = get_logger(__name__)

MAX_BATCH_SIZE = 100
PERIODS = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}


class InventoryLedger:
    """Stock movements for one tenant-scoped session."""

    def __init__(self, session=None):
        self.session = session or db.session

    # --- helpers ---
    def lock_part(self, company_id: int, part_id: int):
        # local import: the spare_parts package imports this module at load time
        from modules.spare_parts.models import Part

        return scoped_get(self.session, Part, company_id, part_id, "part", for_update=True)

    def _check_equipment(self, company_id: int, equipment_id):
        from modules.maintenance.models import Equipment

        resolve_optional(self.session, Equipment, company_id, equipment_id, "equipment")

    def _write(self, part, delta: int, description, *, expected_quantity=None, equipment_id=None,
               repair_id=None, user_id=None) -> InventoryTransaction:
        """
        Move ``part.quantity`` by ``delta`` with one guarded UPDATE.

        The row only changes if the result stays non-negative and, when
        ``expected_quantity`` is given, if nobody moved the stock since it was read.
        """
        from modules.spare_parts.models import Part

        if delta == 0:
            raise Conflict("Quantity is unchanged, nothing to record", field="quantity",
                           details={"quantity": part.quantity})

        stmt = update(Part).where(Part.id == part.id, Part.quantity + delta >= 0)
        if expected_quantity is not None:
            stmt = stmt.where(Part.quantity == expected_quantity)
        result = self.session.execute(
            stmt.values(quantity=Part.quantity + delta).execution_options(synchronize_session=False)
        )
        self.session.refresh(part, attribute_names=["quantity"])
        if result.rowcount != 1:
            if delta < 0 and part.quantity + delta < 0:
                raise InsufficientStock(part.id, -delta, part.quantity)
            raise Conflict("Stock changed while the request was processed, retry with the current quantity",
                           field="quantity", details={"expected": expected_quantity, "quantity": part.quantity})

        entry = InventoryTransaction(
            company_id=part.company_id,
            type=ARRIVAL if delta > 0 else EXPENSE,
            part=part,
            part_name=part.name,
            quantity=abs(delta),
            description=description,
            equipment_id=equipment_id,
            repair_id=repair_id,
            user_id=user_id,
            created_at=datetime.utcnow(),
        )
        self.session.add(entry)
        self.session.flush()

        log.info("stock change", extra={
            "part_id": part.id,
            "type": entry.type,
            "quantity": entry.quantity,
            "old_quantity": part.quantity - delta,
            "new_quantity": part.quantity,
            "repair_id": repair_id,
        })
        return entry

    # --- operations ---
    @transactional
    def apply_stock_change(self, company_id: int, part_id: int, new_quantity, description=None, *,
                           equipment_id=None, repair_id=None, user_id=None) -> InventoryTransaction:
        """Set the part quantity to ``new_quantity`` and log the difference."""
        new_quantity = parse_int({"quantity": new_quantity}, "quantity", required=True)
        self._check_equipment(company_id, equipment_id)
        part = self.lock_part(company_id, part_id)
        old_quantity = part.quantity or 0
        return self._write(part, new_quantity - old_quantity, description, expected_quantity=old_quantity,
                           equipment_id=equipment_id, repair_id=repair_id, user_id=user_id)

    @transactional
    def consume_part(self, company_id: int, part_id: int, quantity, reason=None, *,
                     equipment_id=None, repair_id=None, user_id=None) -> InventoryTransaction:
        quantity = parse_int({"quantity": quantity}, "quantity", required=True, minimum=1)
        self._check_equipment(company_id, equipment_id)
        part = self.lock_part(company_id, part_id)
        if quantity > part.quantity:
            raise InsufficientStock(part.id, quantity, part.quantity)
        return self._write(part, -quantity, reason, equipment_id=equipment_id,
                           repair_id=repair_id, user_id=user_id)

    @transactional
    def receive_part(self, company_id: int, part_id: int, quantity, reason=None, *,
                     equipment_id=None, repair_id=None, user_id=None) -> InventoryTransaction:
        quantity = parse_int({"quantity": quantity}, "quantity", required=True, minimum=1)
        self._check_equipment(company_id, equipment_id)
        part = self.lock_part(company_id, part_id)
        return self._write(part, quantity, reason, equipment_id=equipment_id,
                           repair_id=repair_id, user_id=user_id)

    def return_part(self, company_id: int, part_id: int, quantity, reason=None, **links) -> InventoryTransaction:
        """Inverse of consume_part, used when a part line leaves a repair."""
        return self.receive_part(company_id, part_id, quantity, reason or "Returned to stock", **links)

    @transactional
    def apply_batch(self, company_id: int, items, user_id=None) -> list:
        """Apply a list of arrivals/expenses; one failure rejects the whole batch."""
        if not isinstance(items, list) or not items:
            raise InvalidInput("transactions", "must be a non-empty list")
        if len(items) > MAX_BATCH_SIZE:
            raise InvalidInput("transactions", f"at most {MAX_BATCH_SIZE} items per batch", len(items))

        entries = []
        for index, item in enumerate(items):
            try:
                if not isinstance(item, dict):
                    raise InvalidInput("item", "must be an object")
                kind = parse_choice(item, "type", TRANSACTION_TYPES, required=True)
                part_id = parse_id(item, "part_id", required=True)
                quantity = parse_int(item, "quantity", required=True, minimum=1)
                description = parse_text(item, "description", required=True)
                equipment_id = parse_id(item, "equipment_id")
            except InvalidInput as exc:
                raise InvalidInput(f"transactions[{index}].{exc.field}", exc.details.get("reason", exc.message)) from None

            operation = self.receive_part if kind == ARRIVAL else self.consume_part
            entries.append(operation(company_id, part_id, quantity, description,
                                     equipment_id=equipment_id, user_id=user_id))
        return entries

    def ledger_balance(self, company_id: int, part_id: int) -> dict:
        """Reconcile the stored quantity against the ledger history."""
        from modules.spare_parts.models import Part

        part = scoped_get(self.session, Part, company_id, part_id, "part")

        arrivals, expenses, count = self.session.execute(
            select(
                func.coalesce(func.sum(case((InventoryTransaction.type == ARRIVAL, InventoryTransaction.quantity), else_=0)), 0),
                func.coalesce(func.sum(case((InventoryTransaction.type == EXPENSE, InventoryTransaction.quantity), else_=0)), 0),
                func.count(InventoryTransaction.id),
            ).where(InventoryTransaction.part_id == part.id)
        ).one()
        balance = int(arrivals) - int(expenses)
        return {
            "part_id": part.id,
            "quantity": part.quantity,
            "arrivals": int(arrivals),
            "expenses": int(expenses),
            "transactions": int(count),
            "balance": balance,
            "consistent": balance == part.quantity,
        }


# ========== READ SIDE ==========
def transactions_query(company_id: int, filters: dict):
    query = InventoryTransaction.query.filter(InventoryTransaction.company_id == company_id)
    if filters.get("type"):
        query = query.filter(InventoryTransaction.type == filters["type"])
    for key in ("part_id", "equipment_id", "repair_id", "user_id"):
        if filters.get(key) is not None:
            query = query.filter(getattr(InventoryTransaction, key) == filters[key])
    if filters.get("date_from") is not None:
        query = query.filter(InventoryTransaction.created_at >= filters["date_from"])
    if filters.get("date_to") is not None:
        query = query.filter(InventoryTransaction.created_at <= filters["date_to"])
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        query = query.filter(
            InventoryTransaction.part_name.ilike(pattern) | InventoryTransaction.description.ilike(pattern)
        )
    return query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())


def transaction_stats(company_id: int, period: str = "30d", now=None) -> dict:
    now = now or datetime.utcnow()
    since = now - PERIODS[period]
    base = InventoryTransaction.query.filter(
        InventoryTransaction.company_id == company_id,
        InventoryTransaction.created_at >= since,
    )
    rows = base.all()

    arrivals = [t for t in rows if t.type == ARRIVAL]
    expenses = [t for t in rows if t.type == EXPENSE]
    overview = {
        "total_transactions": len(rows),
        "arrivals": len(arrivals),
        "expenses": len(expenses),
        "total_arrivals_quantity": sum(t.quantity for t in arrivals),
        "total_expenses_quantity": sum(t.quantity for t in expenses),
        "unique_parts": len({t.part_id for t in rows}),
        "equipment_used": len({t.equipment_id for t in rows if t.equipment_id is not None}),
    }

    daily = {}
    for t in rows:
        day = daily.setdefault(t.created_at.date().isoformat(), {"total": 0, "arrivals": 0, "expenses": 0})
        day["total"] += 1
        day["arrivals" if t.type == ARRIVAL else "expenses"] += 1
    daily_stats = [dict(date=key, **value) for key, value in sorted(daily.items(), reverse=True)][:30]

    per_part = {}
    for t in rows:
        entry = per_part.setdefault(t.part_id, {
            "part_id": t.part_id,
            "name": t.part_name,
            "article": t.part.article if t.part else None,
            "transaction_count": 0,
            "total_quantity": 0,
        })
        entry["transaction_count"] += 1
        entry["total_quantity"] += t.quantity
    top_parts = sorted(per_part.values(), key=lambda e: e["transaction_count"], reverse=True)[:5]

    return {"period": period, "overview": overview, "daily_stats": daily_stats, "top_parts": top_parts}

"""Ledger rows: one immutable record per stock change."""

from datetime import datetime

from sqlalchemy import CheckConstraint, event

from extensions import db
from utils import iso

ARRIVAL = "arrival"
EXPENSE = "expense"
TRANSACTION_TYPES = (ARRIVAL, EXPENSE)


class InventoryTransaction(db.Model):
    """
    Append-only ledger entry.

    ``quantity`` is always positive, the direction is carried by ``type``.
    For every part: quantity == sum(arrivals) - sum(expenses).
    """

    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id", ondelete="CASCADE"), nullable=False, index=True)
    part_name = db.Column(db.String(150), nullable=False)  # snapshot at write time
    quantity = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipment.id", ondelete="SET NULL"), index=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id", ondelete="SET NULL"), index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    part = db.relationship("Part", back_populates="transactions")
    user = db.relationship("User")

    __table_args__ = (
        CheckConstraint("type IN ('arrival', 'expense')", name="ck_transaction_type"),
        CheckConstraint("quantity > 0", name="ck_transaction_quantity_positive"),
    )

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == ARRIVAL else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "part_id": self.part_id,
            "part_name": self.part_name,
            "part_article": self.part.article if self.part else None,
            "quantity": self.quantity,
            "description": self.description,
            "equipment_id": self.equipment_id,
            "repair_id": self.repair_id,
            "user_id": self.user_id,
            "user_name": (self.user.full_name or self.user.username) if self.user else None,
            "created_at": iso(self.created_at),
        }


@event.listens_for(InventoryTransaction, "before_update")
def _ledger_rows_are_immutable(mapper, connection, target):
    raise RuntimeError(f"ledger row {target.id} is append-only and cannot be modified")

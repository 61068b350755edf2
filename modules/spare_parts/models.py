"""SQLAlchemy models for the spare parts domain."""

from datetime import datetime

from sqlalchemy import CheckConstraint, UniqueConstraint

from extensions import db
from utils import iso, money


class Container(db.Model):
    """Named storage location (shelf, box, van)."""

    __tablename__ = "containers"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    location = db.Column(db.String(150))
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parts = db.relationship("Part", back_populates="container", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_container_company_name"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "description": self.description,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Container {self.name}>"


class Part(db.Model):
    """
    A stocked item.

    ``quantity`` is written only by the inventory ledger so that the
    transaction history always reconciles with it.
    """

    __tablename__ = "parts"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False, index=True)
    article = db.Column(db.String(100), index=True)
    barcode = db.Column(db.String(100), index=True)
    type = db.Column(db.String(100), index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Numeric(12, 2))
    container_id = db.Column(db.Integer, db.ForeignKey("containers.id", ondelete="SET NULL"), index=True)
    supplier = db.Column(db.String(150))
    brand = db.Column(db.String(100))
    weight = db.Column(db.Numeric(8, 2))  # kg
    warranty_months = db.Column(db.Integer)
    description = db.Column(db.Text)
    photos = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    container = db.relationship("Container", back_populates="parts")
    transactions = db.relationship("InventoryTransaction", back_populates="part",
                                   cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_part_quantity_non_negative"),
        UniqueConstraint("company_id", "article", name="uq_part_company_article"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "article": self.article,
            "barcode": self.barcode,
            "type": self.type,
            "quantity": self.quantity,
            "price": money(self.price),
            "container_id": self.container_id,
            "container_name": self.container.name if self.container else None,
            "container_location": self.container.location if self.container else None,
            "supplier": self.supplier,
            "brand": self.brand,
            "weight": money(self.weight),
            "warranty_months": self.warranty_months,
            "description": self.description,
            "photos": list(self.photos or []),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Part {self.article or self.id}: {self.name}>"

"""Generated report log."""

from datetime import datetime

from extensions import db
from utils import iso

REPORT_TYPES = (
    "parts_inventory",
    "equipment_status",
    "repair_history",
    "staff_workload",
    "transactions",
    "financial",
)
REPORT_FORMATS = ("json", "csv", "xlsx")


class ReportHistory(db.Model):
    __tablename__ = "report_history"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), index=True)
    report_type = db.Column(db.String(50), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    filters = db.Column(db.JSON, default=dict)
    format = db.Column(db.String(10), nullable=False, default="json")
    data = db.Column(db.JSON)
    generated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = db.relationship("User")

    def to_dict(self, with_data: bool = False) -> dict:
        payload = {
            "id": self.id,
            "report_type": self.report_type,
            "title": self.title,
            "filters": self.filters or {},
            "format": self.format,
            "user_id": self.user_id,
            "user_name": (self.user.full_name or self.user.username) if self.user else None,
            "generated_at": iso(self.generated_at),
        }
        if with_data:
            payload["data"] = self.data
        return payload

"""Parts and containers: master data around the inventory ledger."""

import csv
import io
from zipfile import BadZipFile

from flask import current_app
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import func, or_

from app_logging import get_logger
from extensions import db
from modules.core import Conflict, InvalidInput, transactional
from modules.core.tenancy import resolve_optional, scoped_get
from modules.core.validation import parse_decimal, parse_id, parse_int, parse_text, reject_fields
from modules.inventory.services import InventoryLedger
from modules.maintenance.models import TERMINAL_REPAIR_STATUSES, Repair, RepairPart

from .models import Container, Part

log = get_logger(__name__)

SORT_FIELDS = ("name", "article", "type", "quantity", "price", "created_at", "updated_at")


def low_stock_threshold() -> int:
    return int(current_app.config.get("LOW_STOCK_THRESHOLD", 5))


def _part_fields(data: dict, *, creating: bool) -> dict:
    """Parse the descriptive part fields present in ``data``."""
    parsers = {
        "name": lambda: parse_text(data, "name", required=creating, max_length=150),
        "article": lambda: parse_text(data, "article", max_length=100),
        "barcode": lambda: parse_text(data, "barcode", max_length=100),
        "type": lambda: parse_text(data, "type", max_length=100),
        "price": lambda: parse_decimal(data, "price"),
        "container_id": lambda: parse_id(data, "container_id"),
        "supplier": lambda: parse_text(data, "supplier", max_length=150),
        "brand": lambda: parse_text(data, "brand", max_length=100),
        "weight": lambda: parse_decimal(data, "weight"),
        "warranty_months": lambda: parse_int(data, "warranty_months"),
        "description": lambda: parse_text(data, "description"),
    }
    fields = {}
    for name, parse in parsers.items():
        if creating or name in data:
            fields[name] = parse()
    if not creating and "name" in fields and fields["name"] is None:
        fields["name"] = parse_text(data, "name", required=True)
    return fields


class PartService:
    def __init__(self, session=None):
        self.session = session or db.session
        self.ledger = InventoryLedger(self.session)

    def get(self, company_id: int, part_id: int) -> Part:
        return scoped_get(self.session, Part, company_id, part_id, "part")

    def _check_article(self, company_id: int, article, exclude_id=None):
        if not article:
            return
        query = self.session.query(Part).filter(Part.company_id == company_id, Part.article == article)
        if exclude_id is not None:
            query = query.filter(Part.id != exclude_id)
        if query.first() is not None:
            raise Conflict("A part with this article already exists", field="article",
                           details={"article": article})

    @transactional
    def create(self, company_id: int, data: dict, user_id=None) -> Part:
        reject_fields(data, ("company_id",), "is set from the signed-in user")
        fields = _part_fields(data, creating=True)
        quantity = parse_int(data, "quantity", default=0)
        photos = data.get("photos") or []
        if not isinstance(photos, list):
            photos = [photos]

        self._check_article(company_id, fields["article"])
        resolve_optional(self.session, Container, company_id, fields["container_id"], "container")

        part = Part(company_id=company_id, quantity=0, photos=[str(p) for p in photos], **fields)
        self.session.add(part)
        self.session.flush()

        if quantity > 0:
            self.ledger.apply_stock_change(company_id, part.id, quantity, "Initial arrival", user_id=user_id)

        log.info("part created", extra={"part_id": part.id, "quantity": quantity})
        return part

    @transactional
    def update(self, company_id: int, part_id: int, data: dict) -> Part:
        reject_fields(data, ("quantity",), "use the quantity endpoint to change stock")
        part = self.get(company_id, part_id)
        fields = _part_fields(data, creating=False)

        if "article" in fields:
            self._check_article(company_id, fields["article"], exclude_id=part.id)
        if "container_id" in fields:
            resolve_optional(self.session, Container, company_id, fields["container_id"], "container")

        for name, value in fields.items():
            setattr(part, name, value)
        self.session.flush()
        return part

    @transactional
    def change_quantity(self, company_id: int, part_id: int, data: dict, user_id=None) -> dict:
        new_quantity = parse_int(data, "quantity", required=True)
        reason = parse_text(data, "reason") or parse_text(data, "description") or "Quantity adjustment"
        equipment_id = parse_id(data, "equipment_id")

        part = self.ledger.lock_part(company_id, part_id)
        old_quantity = part.quantity
        entry = self.ledger.apply_stock_change(company_id, part_id, new_quantity, reason,
                                               equipment_id=equipment_id, user_id=user_id)
        return {
            "part": part.to_dict(),
            "transaction": entry.to_dict(),
            "old_quantity": old_quantity,
            "new_quantity": new_quantity,
            "difference": new_quantity - old_quantity,
        }

    @transactional
    def delete(self, company_id: int, part_id: int) -> None:
        part = self.get(company_id, part_id)
        active = (
            self.session.query(RepairPart).join(Repair)
            .filter(RepairPart.part_id == part.id, Repair.status.notin_(TERMINAL_REPAIR_STATUSES))
            .count()
        )
        if active:
            raise Conflict("Part is used in active repairs and cannot be deleted",
                           details={"part_id": part.id, "active_repairs": active})

        # repair lines keep their name/price snapshot
        self.session.query(RepairPart).filter(RepairPart.part_id == part.id).update(
            {RepairPart.part_id: None}, synchronize_session=False)
        self.session.delete(part)
        log.info("part deleted", extra={"part_id": part_id})

    @transactional
    def import_rows(self, company_id: int, rows, user_id=None) -> dict:
        """Create parts from spreadsheet rows; rows whose article already exists are skipped."""
        added, skipped = [], []
        for index, row in enumerate(rows, start=2):
            if not any(value not in (None, "") for value in row.values()):
                continue
            article = parse_text(row, "article")
            if article and self.session.query(Part).filter_by(company_id=company_id, article=article).first():
                skipped.append(article)
                continue
            try:
                added.append(self.create(company_id, row, user_id=user_id))
            except InvalidInput as exc:
                raise InvalidInput(f"rows[{index}].{exc.field}", exc.details.get("reason", exc.message)) from None
        log.info("parts imported", extra={"added": len(added), "skipped": len(skipped)})
        return {"added": len(added), "skipped": skipped, "parts": [p.to_dict() for p in added]}

    @transactional
    def add_photo(self, company_id: int, part_id: int, path: str) -> Part:
        part = self.get(company_id, part_id)
        part.photos = list(part.photos or []) + [path]
        return part


IMPORT_COLUMNS = ("name", "article", "barcode", "type", "quantity", "price", "supplier", "brand", "description")


def _cell(key, value):
    if value is None or key in ("quantity", "price"):
        return value
    return str(value)


def _read_xlsx(stream) -> list:
    try:
        wb = load_workbook(stream, read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError):
        raise InvalidInput("file", "could not read the file, expected an .xlsx workbook") from None
    try:
        rows = wb.active.iter_rows(values_only=True)
        header = [str(cell).strip().lower() if cell is not None else "" for cell in next(rows, ())]
        return [
            {key: _cell(key, value) for key, value in zip(header, row) if key in IMPORT_COLUMNS}
            for row in rows
        ]
    finally:
        wb.close()


def _read_csv(stream) -> list:
    try:
        reader = csv.DictReader(io.StringIO(stream.read().decode("utf-8-sig"), newline=None))
        return [
            {key.strip().lower(): value for key, value in row.items() if key and key.strip().lower() in IMPORT_COLUMNS}
            for row in reader
        ]
    except UnicodeDecodeError:
        raise InvalidInput("file", "could not read the file, csv must be UTF-8") from None
    except csv.Error as exc:
        raise InvalidInput("file", f"could not read the file: {exc}") from None


def read_import_file(file) -> list:
    """Rows of an uploaded .xlsx or .csv file as dicts keyed by the header row."""
    if not file or not file.filename:
        raise InvalidInput("file", "file is required")
    filename = file.filename.lower()
    if filename.endswith(".xlsx"):
        return _read_xlsx(file.stream)
    if filename.endswith(".csv"):
        return _read_csv(file.stream)
    raise InvalidInput("file", "unsupported file type, upload .xlsx or .csv", file.filename)


# ---------- read side ----------
def parts_query(company_id: int, filters: dict):
    query = Part.query.filter(Part.company_id == company_id)
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        query = query.filter(or_(Part.name.ilike(pattern), Part.article.ilike(pattern), Part.barcode.ilike(pattern)))
    if filters.get("type"):
        query = query.filter(Part.type == filters["type"])
    if filters.get("container_id") is not None:
        query = query.filter(Part.container_id == filters["container_id"])
    if filters.get("low_stock"):
        query = query.filter(Part.quantity < low_stock_threshold())

    column = getattr(Part, filters.get("sort_by") or "name")
    order = column.desc() if filters.get("sort_order") == "desc" else column.asc()
    return query.order_by(order, Part.id.asc())


def parts_stats(company_id: int) -> dict:
    threshold = low_stock_threshold()
    parts = Part.query.filter(Part.company_id == company_id).all()
    overview = {
        "total_parts": len(parts),
        "out_of_stock": sum(1 for p in parts if p.quantity == 0),
        "low_stock": sum(1 for p in parts if 0 < p.quantity < threshold),
        "in_stock": sum(1 for p in parts if p.quantity >= threshold),
        "total_quantity": sum(p.quantity for p in parts),
        "total_value": float(sum((p.quantity * (p.price or 0) for p in parts), 0)),
        "unique_types": len({p.type for p in parts if p.type}),
        "used_containers": len({p.container_id for p in parts if p.container_id}),
    }
    expensive = sorted((p for p in parts if p.price is not None), key=lambda p: p.price, reverse=True)[:5]
    low = sorted((p for p in parts if p.quantity > 0), key=lambda p: p.quantity)[:5]
    return {
        "overview": overview,
        "expensive_parts": [{"id": p.id, "name": p.name, "price": float(p.price), "quantity": p.quantity}
                            for p in expensive],
        "low_stock_parts": [{"id": p.id, "name": p.name, "quantity": p.quantity, "type": p.type} for p in low],
    }


# ========== CONTAINERS ==========
class ContainerService:
    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, company_id: int, container_id: int) -> Container:
        return scoped_get(self.session, Container, company_id, container_id, "container")

    def _check_name(self, company_id: int, name: str, exclude_id=None):
        query = self.session.query(Container).filter(Container.company_id == company_id, Container.name == name)
        if exclude_id is not None:
            query = query.filter(Container.id != exclude_id)
        if query.first() is not None:
            raise Conflict("A container with this name already exists", field="name", details={"name": name})

    @transactional
    def create(self, company_id: int, data: dict) -> Container:
        name = parse_text(data, "name", required=True, max_length=150)
        self._check_name(company_id, name)
        container = Container(
            company_id=company_id,
            name=name,
            location=parse_text(data, "location", max_length=150),
            description=parse_text(data, "description"),
        )
        self.session.add(container)
        self.session.flush()
        return container

    @transactional
    def update(self, company_id: int, container_id: int, data: dict) -> Container:
        container = self.get(company_id, container_id)
        if "name" in data:
            name = parse_text(data, "name", required=True, max_length=150)
            self._check_name(company_id, name, exclude_id=container.id)
            container.name = name
        if "location" in data:
            container.location = parse_text(data, "location", max_length=150)
        if "description" in data:
            container.description = parse_text(data, "description")
        self.session.flush()
        return container

    @transactional
    def delete(self, company_id: int, container_id: int) -> int:
        """Delete the container; its parts stay in stock without a location."""
        container = self.get(company_id, container_id)
        released = self.session.query(Part).filter(Part.container_id == container.id).update(
            {Part.container_id: None}, synchronize_session="fetch")
        self.session.delete(container)
        log.info("container deleted", extra={"container_id": container_id, "released_parts": released})
        return released


def containers_overview(company_id: int) -> list:
    rows = (
        db.session.query(Container, func.count(Part.id), func.coalesce(func.sum(Part.quantity), 0))
        .outerjoin(Part, Part.container_id == Container.id)
        .filter(Container.company_id == company_id)
        .group_by(Container.id)
        .order_by(Container.name.asc())
        .all()
    )
    result = []
    for container, parts_count, total_quantity in rows:
        data = container.to_dict()
        data["parts_count"] = int(parts_count)
        data["total_quantity"] = int(total_quantity)
        result.append(data)
    return result


def container_detail(container: Container) -> dict:
    parts = sorted(container.parts, key=lambda p: p.name)
    data = container.to_dict()
    data["parts"] = [p.to_dict() for p in parts]
    data["stats"] = {
        "parts_count": len(parts),
        "total_quantity": sum(p.quantity for p in parts),
        "total_value": float(sum((p.quantity * (p.price or 0) for p in parts), 0)),
        "low_stock": sum(1 for p in parts if p.quantity < low_stock_threshold()),
    }
    return data

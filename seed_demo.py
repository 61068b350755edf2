# seed_demo.py
from extensions import db
from models import Company
from modules.maintenance.models import Equipment, Staff
from modules.maintenance.services import EquipmentService, StaffService
from modules.spare_parts.models import Container, Part
from modules.spare_parts.services import ContainerService, PartService


def run(company_name="Demo Fleet"):
    company = Company.query.filter_by(name=company_name).first()
    if not company:
        company = Company(name=company_name)
        db.session.add(company)
        db.session.commit()

    container = Container.query.filter_by(company_id=company.id, name="Shelf A1").first()
    if not container:
        container = ContainerService().create(company.id, {"name": "Shelf A1", "location": "Main warehouse"})

    if not Part.query.filter_by(company_id=company.id, article="FX-100").first():
        # initial stock goes through the ledger as an "Initial arrival"
        PartService().create(company.id, {
            "name": "Filter X",
            "article": "FX-100",
            "type": "filter",
            "quantity": 10,
            "price": "100.00",
            "container_id": container.id,
        })

    if not Equipment.query.filter_by(company_id=company.id, serial_number="TR-0001").first():
        EquipmentService().create(company.id, {
            "type": "tractor",
            "model": "MTZ-82",
            "serial_number": "TR-0001",
            "engine_hours": 1200,
        })

    if not Staff.query.filter_by(company_id=company.id, email="ivan@example.com").first():
        StaffService().create(company.id, {
            "name": "Ivan Petrov",
            "position": "Mechanic",
            "hourly_rate": 50,
            "email": "ivan@example.com",
        })

    print(f"Seed OK: {company_name}: Shelf A1, Filter X x10, tractor TR-0001, mechanic.")
    return company


if __name__ == "__main__":
    from app import create_app

    with create_app().app_context():
        run()

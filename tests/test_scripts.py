from werkzeug.security import check_password_hash

from create_user import create_user
from models import Company, User
from modules.inventory.models import InventoryTransaction
from modules.maintenance.models import Equipment, Staff
from modules.spare_parts.models import Part
import seed_demo


def test_create_user_creates_company_once(app_ctx):
    first = create_user("Acme Fleet", "alice", "pw", "admin", full_name="Alice")
    assert first.company.name == "Acme Fleet"
    assert check_password_hash(first.password, "pw")

    second = create_user("Acme Fleet", "bob", "pw", "user")
    assert second.company_id == first.company_id
    assert Company.query.count() == 1

    assert create_user("Acme Fleet", "alice", "other", "root") is None
    assert User.query.count() == 2


def test_seed_demo_is_idempotent(app_ctx):
    company = seed_demo.run()
    seed_demo.run()

    part = Part.query.filter_by(company_id=company.id, article="FX-100").one()
    assert part.quantity == 10
    assert InventoryTransaction.query.filter_by(part_id=part.id).count() == 1
    assert Equipment.query.filter_by(company_id=company.id).count() == 1
    assert Staff.query.filter_by(company_id=company.id).count() == 1

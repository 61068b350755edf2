import threading
import time

import pytest

from app import create_app
from extensions import db
from models import Company
from modules.core import Conflict, InsufficientStock
from modules.inventory.models import InventoryTransaction
from modules.inventory.services import InventoryLedger
from modules.spare_parts.models import Part
from modules.spare_parts.services import PartService


@pytest.fixture()
def file_app(tmp_path):
    """The race needs real connections, so this app runs on a database file."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"check_same_thread": False, "timeout": 30}},
        "SECRET_KEY": "test-secret",
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "LOG_LEVEL": "WARNING",
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def test_parallel_consumption_never_overdraws(file_app, monkeypatch):
    with file_app.app_context():
        company = Company(name="Race Fleet")
        db.session.add(company)
        db.session.commit()
        company_id = company.id
        part_id = PartService().create(company_id, {"name": "Filter X", "article": "FX-1", "quantity": 5}).id
        db.session.remove()

    # hold the row a little between the stock check and the write
    original_lock = InventoryLedger.lock_part

    def slow_lock(self, company_id, part_id):
        part = original_lock(self, company_id, part_id)
        time.sleep(0.02)
        return part

    monkeypatch.setattr(InventoryLedger, "lock_part", slow_lock)

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []

    def consume():
        with file_app.app_context():
            barrier.wait()
            try:
                InventoryLedger().consume_part(company_id, part_id, 1, "race")
                outcomes.append("ok")
            except InsufficientStock:
                outcomes.append("short")
            finally:
                db.session.remove()

    threads = [threading.Thread(target=consume) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ["ok"] * 5 + ["short"] * 3

    with file_app.app_context():
        assert db.session.get(Part, part_id).quantity == 0
        balance = InventoryLedger().ledger_balance(company_id, part_id)
        assert balance["consistent"] is True
        assert balance["expenses"] == 5


def test_guarded_write_refuses_to_overdraw(app_ctx, company):
    part = PartService().create(company.id, {"name": "Belt", "article": "B-1", "quantity": 2})
    ledger = InventoryLedger()

    # skip consume_part's own check and go straight to the write
    with pytest.raises(InsufficientStock) as exc:
        ledger._write(part, -3, "overdraw")
    assert exc.value.available == 2

    db.session.rollback()
    assert db.session.get(Part, part.id).quantity == 2
    assert InventoryTransaction.query.filter_by(part_id=part.id).count() == 1


def test_stock_change_refuses_a_stale_quantity(app_ctx, company):
    part = PartService().create(company.id, {"name": "Belt", "article": "B-1", "quantity": 2})
    ledger = InventoryLedger()

    with pytest.raises(Conflict) as exc:
        ledger._write(part, 5, "stale", expected_quantity=7)
    assert exc.value.details == {"expected": 7, "quantity": 2}

    db.session.rollback()
    assert db.session.get(Part, part.id).quantity == 2

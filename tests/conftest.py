# tests/conftest.py
import os
import sys
from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

# so that "from app import create_app" works when running from the repo root
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app import create_app  # noqa: E402
from extensions import db  # noqa: E402
from models import Company, User  # noqa: E402


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SECRET_KEY": "test-secret",
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "LOG_LEVEL": "WARNING",
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(app):
    """Service-level tests run inside one application context."""
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


def _make_company(app, name):
    with app.app_context():
        company = Company(name=name)
        db.session.add(company)
        db.session.commit()
        return SimpleNamespace(id=company.id, name=company.name)


def _make_user(app, company_id, username, role):
    with app.app_context():
        user = User(company_id=company_id, username=username, role=role,
                    password=generate_password_hash("secret"), full_name=username.title())
        db.session.add(user)
        db.session.commit()
        return SimpleNamespace(id=user.id, username=user.username, role=user.role, company_id=company_id)


@pytest.fixture()
def company(app):
    return _make_company(app, "Acme Fleet")


@pytest.fixture()
def other_company(app):
    return _make_company(app, "Other Fleet")


@pytest.fixture()
def root_user(app, company):
    return _make_user(app, company.id, "root", "root")


@pytest.fixture()
def make_user(app, company):
    def factory(username, role="user", company_id=None):
        return _make_user(app, company_id or company.id, username, role)
    return factory


def _authenticate(client, user_id: int) -> None:
    with client.session_transaction() as s:
        s["_user_id"] = str(user_id)
        s["_fresh"] = True


@pytest.fixture()
def auth_client(client, root_user):
    _authenticate(client, root_user.id)
    return client

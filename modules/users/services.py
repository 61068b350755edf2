"""
User accounts inside one tenant.

Admins manage the accounts of their own company. Only root hands out the
root role or touches a root account, and nobody changes their own role or
deactivates themselves. Users are never deleted: ledger rows and repair
lines keep pointing at them.
"""

from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from app_logging import get_logger
from extensions import db
from models import ROLES, User
from modules.core import Conflict, InvalidInput, transactional
from modules.core.tenancy import scoped_get
from modules.core.validation import parse_choice, parse_text, reject_fields

log = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


def _parse_password(data: dict, field: str) -> str:
    return parse_text(data, field, required=True, min_length=MIN_PASSWORD_LENGTH, max_length=128)


class UserService:
    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, company_id: int, user_id: int) -> User:
        return scoped_get(self.session, User, company_id, user_id, "user")

    def _guard(self, actor, target: User, action: str) -> None:
        if target.id == actor.id:
            raise Conflict(f"You cannot {action} your own account", details={"user_id": target.id})
        if target.role == "root" and actor.role != "root":
            raise Conflict(f"Only root can {action} a root account", details={"user_id": target.id})

    @staticmethod
    def _grantable_role(actor, data: dict, *, required: bool) -> str:
        role = parse_choice(data, "role", ROLES, required=required, default="user")
        if role == "root" and actor.role != "root":
            raise InvalidInput("role", "only root can grant the root role", role)
        return role

    @transactional
    def create(self, actor, data: dict) -> User:
        reject_fields(data, ("company_id", "is_active"), "is set by the server")
        username = parse_text(data, "username", required=True, min_length=3, max_length=150)
        password = _parse_password(data, "password")
        role = self._grantable_role(actor, data, required=False)
        full_name = parse_text(data, "full_name", max_length=150)

        if self.session.query(User).filter(User.username == username).first() is not None:
            raise Conflict("A user with this username already exists", field="username",
                           details={"username": username})

        user = User(company_id=actor.company_id, username=username, role=role, full_name=full_name,
                    password=generate_password_hash(password), is_active=True)
        self.session.add(user)
        self.session.flush()
        log.info("user created", extra={"user_id": user.id, "role": role, "created_by": actor.id})
        return user

    @transactional
    def update(self, actor, user_id: int, data: dict) -> User:
        """Profile fields only; role and activity have their own operations."""
        reject_fields(data, ("role", "is_active", "password", "company_id"), "cannot be changed here")
        user = self.get(actor.company_id, user_id)
        if "full_name" in data:
            user.full_name = parse_text(data, "full_name", max_length=150)
        self.session.flush()
        return user

    @transactional
    def change_role(self, actor, user_id: int, data: dict) -> User:
        user = self.get(actor.company_id, user_id)
        role = self._grantable_role(actor, data, required=True)
        self._guard(actor, user, "change the role of")
        if user.role == role:
            raise Conflict("User already has this role", field="role", details={"role": role})
        old_role, user.role = user.role, role
        log.info("user role changed", extra={"user_id": user.id, "old_role": old_role, "role": role,
                                             "changed_by": actor.id})
        return user

    @transactional
    def set_active(self, actor, user_id: int, active: bool) -> User:
        user = self.get(actor.company_id, user_id)
        self._guard(actor, user, "activate" if active else "deactivate")
        if user.is_active == active:
            state = "active" if active else "inactive"
            raise Conflict(f"User is already {state}", field="is_active", details={"is_active": active})
        user.is_active = active
        log.info("user activated" if active else "user deactivated",
                 extra={"user_id": user.id, "changed_by": actor.id})
        return user

    @transactional
    def change_password(self, user: User, data: dict) -> User:
        current = parse_text(data, "current_password", required=True)
        new = _parse_password(data, "new_password")
        if not check_password_hash(user.password, current):
            raise InvalidInput("current_password", "is incorrect")
        if current == new:
            raise InvalidInput("new_password", "must differ from the current password")
        user.password = generate_password_hash(new)
        log.info("password changed", extra={"user_id": user.id})
        return user


# ---------- read side ----------
def users_query(company_id: int, filters: dict):
    query = User.query.filter(User.company_id == company_id)
    if filters.get("role"):
        query = query.filter(User.role == filters["role"])
    if filters.get("is_active") is not None:
        query = query.filter(User.is_active == filters["is_active"])
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        query = query.filter(User.username.ilike(pattern) | User.full_name.ilike(pattern))
    return query.order_by(User.created_at.desc(), User.id.desc())


def user_stats(company_id: int) -> dict:
    rows = (
        db.session.query(User.role, User.is_active, func.count(User.id))
        .filter(User.company_id == company_id)
        .group_by(User.role, User.is_active)
        .all()
    )
    by_role = {role: 0 for role in ROLES}
    active = inactive = 0
    for role, is_active, count in rows:
        by_role[role] = by_role.get(role, 0) + count
        if is_active:
            active += count
        else:
            inactive += count
    return {"total": active + inactive, "active": active, "inactive": inactive, "by_role": by_role}

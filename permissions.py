# permissions.py
"""
RBAC and tenant scope for the JSON API.

- role_required([...]): main route decorator (root always passes).
- require_role(*roles): same thing with positional roles.
- current_company_id(): tenant of the signed-in user; every query is scoped by it.

Roles:
- user   - stock movements, repair work (attach/detach parts and staff, complete)
- admin  - as user + creating, editing and deleting master data (parts, containers, equipment, staff)
- root   - full access across the tenant
"""

from functools import wraps
from typing import Iterable, Set

from flask import abort
from flask_login import current_user, login_required


def role_required(allowed_roles: Iterable[str]):
    """
    Restrict a view to the given roles.

        @role_required(["admin", "root"])
        def view(): ...

    Anonymous -> 401, authenticated without the role -> 403.
    """
    if isinstance(allowed_roles, str):
        allowed: Set[str] = {allowed_roles}
    else:
        allowed = set(allowed_roles or [])

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            role = getattr(current_user, "role", None)
            if role == "root" or role in allowed:
                return view_func(*args, **kwargs)
            abort(403)

        return wrapped
    return decorator


def require_role(*roles: str):
    """Positional form of role_required: ``@require_role("admin", "root")``."""
    return role_required(list(roles))


def current_company_id() -> int:
    company_id = getattr(current_user, "company_id", None)
    if company_id is None:
        abort(401)
    return company_id


def current_user_id():
    return getattr(current_user, "id", None)


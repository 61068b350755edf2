"""Tenant-scoped lookups: a row of another company is reported as missing."""

from sqlalchemy import select

from .errors import NotFound


def scoped_get(session, model, company_id: int, entity_id, entity: str, *, for_update: bool = False):
    stmt = select(model).where(model.id == entity_id, model.company_id == company_id)
    if for_update:
        # a locked read must not be answered from the identity map
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFound(entity, entity_id)
    return row


def resolve_optional(session, model, company_id: int, entity_id, entity: str):
    """Like scoped_get, but ``None`` passes through."""
    if entity_id is None:
        return None
    return scoped_get(session, model, company_id, entity_id, entity)

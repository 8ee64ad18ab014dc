"""
Account scoping helpers.

WHY: Every ledger, approval and report query must be filtered by the acting
account. Loading a record owned by another account is a security defect, so
it is refused with Unauthorized and logged.

USAGE:
    from bizdesk.services.tenant_service import get_owned, scoped_query

    product = get_owned(Product, product_id, scope, lock=True)
    products = scoped_query(Product, scope).all()
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, Unauthorized
from ..extensions import db
from ..scope import Scope, require_scope
from .concurrency import lock_for_update


def scoped_query(model, scope: Scope):
    """Query for `model` restricted to the scope's account."""
    require_scope(scope)
    return db.session.query(model).filter(model.account_id == scope.account_id)


def get_owned(model, record_id, scope: Scope, *, lock: bool = False, label: str | None = None):
    """
    Load a record by id and verify it belongs to the scope's account.

    Raises:
        NotFoundError: no such record
        Unauthorized: the record belongs to a different account
    """
    require_scope(scope)
    label = label or model.__name__
    if record_id is None:
        raise NotFoundError(f"{label} not found")

    query = db.session.query(model).filter(model.id == record_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()

    if record is None:
        raise NotFoundError(f"{label} {record_id} not found")

    if record.account_id != scope.account_id:
        current_app.logger.warning(
            "Cross-account access denied: account=%s actor=%s %s=%s owner=%s",
            scope.account_id, scope.actor, label, record_id, record.account_id,
        )
        raise Unauthorized(f"{label} {record_id} is not accessible from this account")

    return record

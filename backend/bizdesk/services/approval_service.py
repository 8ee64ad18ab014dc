# Overview: Dual-control decisions on pending product edits, deletions and damage reports.

"""
BizDesk Approval Workflow

================================================================================
PURPOSE: Gate product edits, product deletions and damage write-offs behind a
second-party decision, and apply each approved effect exactly once.
================================================================================

STATE MACHINE (StockMovement.status):
    pending -> completed   (approved; effect applied)
    pending -> rejected    (no effect)

DamageRecord.damage_approval mirrors it: pending -> approved | rejected.

RULES (NON-NEGOTIABLE):
1. Only 'pending' records can be decided.
2. 'completed' / 'approved' / 'rejected' are terminal; nothing re-opens them.
3. A second approval attempt fails loudly with InvalidStateError. Approvals
   are deliberately not idempotent: a silent no-op could hide a client that
   believes it applied a quantity delta twice.
4. Effect and status change are written in one transaction; the movement and
   product rows are locked (version_id) so two concurrent approvals cannot
   both apply.
5. With REQUIRE_SECOND_PARTY_APPROVAL, the requester cannot approve their own
   request. They may still reject (withdraw) it.
================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, Unauthorized
from ..extensions import db
from ..models import (
    DamageMovement,
    DamageRecord,
    Product,
    ProductDeleteMovement,
    ProductEditMovement,
    StockMovement,
)
from ..models.ledger import (
    DAMAGE_APPROVED,
    DAMAGE_PENDING,
    DAMAGE_REJECTED,
    MOVEMENT_COMPLETED,
    MOVEMENT_PENDING,
    MOVEMENT_REJECTED,
    MOVEMENT_VARIANTS,
)
from ..scope import Scope, require_scope
from ..validation import optional_text, require_id, require_text
from .concurrency import run_with_retry
from .ledger_service import apply_quantity_delta, load_live_product, parse_edit_value
from .tenant_service import get_owned, scoped_query
from bizdesk.time_utils import utcnow

# Fields whose change requires per-kg prices and profits to be recomputed
PRICING_FIELDS = {"box_to_kg_ratio", "cost_per_box", "price_per_box"}


def ensure_second_party(scope: Scope, requested_by: str | None, what: str) -> None:
    if not current_app.config.get("REQUIRE_SECOND_PARTY_APPROVAL", True):
        return
    if requested_by is None or scope.actor is None:
        return
    if requested_by == scope.actor:
        current_app.logger.warning(
            "Self-approval refused: account=%s actor=%s %s",
            scope.account_id, scope.actor, what,
        )
        raise Unauthorized(f"{what} must be approved by someone other than the requester")


def _load_pending_movement(scope: Scope, movement_id: int, expected: type) -> StockMovement:
    movement = get_owned(StockMovement, movement_id, scope, lock=True, label="Movement")

    if not isinstance(movement, expected):
        raise InvalidStateError(
            f"Movement {movement_id} is a '{movement.movement_type}' movement, "
            f"expected '{expected.MOVEMENT_TYPE or 'gated'}'"
        )
    if movement.status != MOVEMENT_PENDING:
        raise InvalidStateError(
            f"Cannot decide movement {movement_id}: current status is '{movement.status}', must be 'pending'"
        )
    return movement


def _check_product_matches(movement: StockMovement, product_id: int | None) -> None:
    if product_id is not None and movement.product_id != product_id:
        raise InvalidStateError(
            f"Movement {movement.id} belongs to product {movement.product_id}, not {product_id}"
        )


# =============================================================================
# EFFECTS (one per gated movement kind)
# =============================================================================

def _apply_edit(scope: Scope, movement: ProductEditMovement, now) -> None:
    product = load_live_product(scope, movement.product_id, lock=True)

    field = movement.field_changed
    value = parse_edit_value(field, movement.new_value)
    setattr(product, field, value)
    if field in PRICING_FIELDS:
        product.recompute_derived()

    current_app.logger.info(
        "Edit applied: account=%s product=%s field=%s %r -> %r movement=%s approver=%s",
        scope.account_id, product.id, field, movement.old_value, movement.new_value,
        movement.id, scope.actor,
    )


def _apply_delete(scope: Scope, movement: ProductDeleteMovement, now) -> None:
    product = load_live_product(scope, movement.product_id, lock=True)
    product.deleted_at = now

    # Requests against a deleted product can never be applied; close them.
    others = scoped_query(StockMovement, scope).filter(
        StockMovement.product_id == product.id,
        StockMovement.status == MOVEMENT_PENDING,
        StockMovement.id != movement.id,
    ).all()
    for other in others:
        other.mark_decided(MOVEMENT_REJECTED, actor=scope.actor, at=now, rejection_reason="product deleted")
        if isinstance(other, DamageMovement) and other.damage is not None:
            _close_damage(other.damage, DAMAGE_REJECTED, scope, now, "product deleted")

    current_app.logger.info(
        "Product deleted: account=%s product=%s movement=%s approver=%s closed_requests=%s",
        scope.account_id, product.id, movement.id, scope.actor, len(others),
    )


def _apply_damage(scope: Scope, movement: DamageMovement, now) -> None:
    damage = movement.damage
    if damage is None or damage.damage_approval != DAMAGE_PENDING:
        raise InvalidStateError(f"Damage for movement {movement.id} is not pending")

    product = load_live_product(scope, damage.product_id, lock=True)
    boxes, kg = damage.quantities()
    apply_quantity_delta(product, -boxes, -kg, context="damage approval")
    _close_damage(damage, DAMAGE_APPROVED, scope, now)

    current_app.logger.info(
        "Damage approved: account=%s product=%s damage=%s boxes=%s kg=%s approver=%s",
        scope.account_id, product.id, damage.id, boxes, kg, scope.actor,
    )


def _close_damage(damage: DamageRecord, approval: str, scope: Scope, now, rejection_reason: str | None = None) -> None:
    damage.damage_approval = approval
    damage.approved_by = scope.actor
    damage.approved_at = now
    if rejection_reason is not None:
        damage.rejection_reason = rejection_reason


# Every gated movement kind must have exactly one effect.
_EFFECTS = {
    ProductEditMovement.MOVEMENT_TYPE: _apply_edit,
    ProductDeleteMovement.MOVEMENT_TYPE: _apply_delete,
    DamageMovement.MOVEMENT_TYPE: _apply_damage,
}
_GATED_TYPES = {t for t, cls in MOVEMENT_VARIANTS.items() if not cls.APPLIES_IMMEDIATELY}
if set(_EFFECTS) != _GATED_TYPES:
    raise RuntimeError(
        f"every gated movement type needs an approval effect: missing {sorted(_GATED_TYPES - set(_EFFECTS))}"
    )


# =============================================================================
# GENERIC DECISIONS
# =============================================================================

def approve_movement(
    scope: Scope,
    movement_id: int,
    *,
    expected: type = StockMovement,
    product_id: int | None = None,
) -> StockMovement:
    """
    Approve a pending gated movement and apply its effect (pending -> completed).

    Raises:
        NotFoundError: movement or product missing
        Unauthorized: foreign account, or self-approval under second-party control
        InvalidStateError: movement not pending, wrong kind, or wrong product
        IntegrityFault: applying the effect would drive stock negative
    """
    require_scope(scope)

    def _op():
        movement = _load_pending_movement(scope, movement_id, expected)
        _check_product_matches(movement, product_id)

        effect = _EFFECTS.get(movement.movement_type)
        if effect is None:
            # restock/correction are born completed; reaching here means bad data
            raise InvalidStateError(f"Movement {movement_id} does not require approval")

        ensure_second_party(scope, movement.performed_by, f"{movement.movement_type} request {movement_id}")

        now = utcnow()
        effect(scope, movement, now)
        movement.mark_decided(MOVEMENT_COMPLETED, actor=scope.actor, at=now)

        db.session.commit()
        return movement

    return run_with_retry(_op)


def reject_movement(
    scope: Scope,
    movement_id: int,
    rejection_reason: str | None = None,
    *,
    expected: type = StockMovement,
) -> StockMovement:
    """Reject a pending gated movement (pending -> rejected). Product untouched."""
    require_scope(scope)
    rejection_reason = optional_text(rejection_reason, "rejection_reason")

    def _op():
        movement = _load_pending_movement(scope, movement_id, expected)
        if movement.movement_type not in _EFFECTS:
            raise InvalidStateError(f"Movement {movement_id} does not require approval")

        now = utcnow()
        movement.mark_decided(MOVEMENT_REJECTED, actor=scope.actor, at=now, rejection_reason=rejection_reason)
        if isinstance(movement, DamageMovement) and movement.damage is not None:
            if movement.damage.damage_approval != DAMAGE_PENDING:
                raise InvalidStateError(f"Damage for movement {movement_id} is not pending")
            _close_damage(movement.damage, DAMAGE_REJECTED, scope, now, rejection_reason)

        db.session.commit()
        current_app.logger.info(
            "Request rejected: account=%s movement=%s type=%s product=%s actor=%s reason=%r",
            scope.account_id, movement.id, movement.movement_type, movement.product_id,
            scope.actor, rejection_reason,
        )
        return movement

    return run_with_retry(_op)


# =============================================================================
# PRODUCT EDITS
# =============================================================================

def approve_edit(scope: Scope, movement_id: int, product_id: int) -> StockMovement:
    """Write the requested new_value into the product field; movement -> completed."""
    product_id = require_id(product_id, "product_id")
    return approve_movement(scope, movement_id, expected=ProductEditMovement, product_id=product_id)


def reject_edit(scope: Scope, movement_id: int, rejection_reason) -> StockMovement:
    rejection_reason = require_text(rejection_reason, "rejection_reason")
    return reject_movement(scope, movement_id, rejection_reason, expected=ProductEditMovement)


# =============================================================================
# PRODUCT DELETIONS
# =============================================================================

def approve_deletion(scope: Scope, movement_id: int, product_id: int) -> StockMovement:
    """
    Remove the product (soft delete via deleted_at); movement -> completed.

    Irreversible: there is no un-delete transition. Other pending requests on
    the product are rejected in the same transaction.
    """
    product_id = require_id(product_id, "product_id")
    return approve_movement(scope, movement_id, expected=ProductDeleteMovement, product_id=product_id)


def reject_deletion(scope: Scope, movement_id: int, rejection_reason=None) -> StockMovement:
    return reject_movement(scope, movement_id, rejection_reason, expected=ProductDeleteMovement)


# =============================================================================
# DAMAGE
# =============================================================================

def _damage_movement_id(scope: Scope, damage_id: int) -> int:
    damage = get_owned(DamageRecord, damage_id, scope, label="Damage")
    if damage.damage_approval != DAMAGE_PENDING:
        raise InvalidStateError(
            f"Cannot decide damage {damage_id}: current status is '{damage.damage_approval}', must be 'pending'"
        )
    movement = damage.movement
    if movement is None:
        raise NotFoundError(f"Movement for damage {damage_id} not found")
    return movement.id


def approve_damage(scope: Scope, damage_id: int) -> DamageRecord:
    """
    Decrement the product by the damaged boxes/kg and mark the damage approved.

    If the decrement would make either quantity negative, IntegrityFault is
    raised and nothing is written: it means the snapshot and the ledger have
    diverged.
    """
    require_scope(scope)
    movement_id = _damage_movement_id(scope, damage_id)
    movement = approve_movement(scope, movement_id, expected=DamageMovement)
    return movement.damage


def reject_damage(scope: Scope, damage_id: int, rejection_reason=None) -> DamageRecord:
    require_scope(scope)
    movement_id = _damage_movement_id(scope, damage_id)
    movement = reject_movement(scope, movement_id, rejection_reason, expected=DamageMovement)
    return movement.damage


# =============================================================================
# QUEUE
# =============================================================================

def list_pending(scope: Scope) -> dict:
    """Everything awaiting a decision for the scope's account, oldest first."""
    movements = scoped_query(StockMovement, scope).filter(
        StockMovement.status == MOVEMENT_PENDING,
    ).order_by(StockMovement.created_at.asc(), StockMovement.id.asc()).all()

    damages = scoped_query(DamageRecord, scope).filter(
        DamageRecord.damage_approval == DAMAGE_PENDING,
    ).order_by(DamageRecord.recorded_at.asc(), DamageRecord.id.asc()).all()

    product_ids = {m.product_id for m in movements} | {d.product_id for d in damages}
    names = {}
    if product_ids:
        names = dict(
            scoped_query(Product, scope)
            .filter(Product.id.in_(product_ids))
            .with_entities(Product.id, Product.name)
            .all()
        )

    return {
        "movements": [dict(m.to_dict(), product_name=names.get(m.product_id)) for m in movements],
        "damages": [dict(d.to_dict(), product_name=names.get(d.product_id)) for d in damages],
        "count": len(movements),
    }

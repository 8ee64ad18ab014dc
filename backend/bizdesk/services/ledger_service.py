# Overview: Stock ledger operations; the only code path that changes product quantities.

# backend/bizdesk/services/ledger_service.py

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import IntegrityFault, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    CorrectionMovement,
    DamageMovement,
    DamageRecord,
    Product,
    ProductDeleteMovement,
    ProductEditMovement,
    RestockMovement,
    RestockRecord,
    StockMovement,
)
from ..models.ledger import (
    DAMAGE_PENDING,
    MOVEMENT_COMPLETED,
    MOVEMENT_PENDING,
    MOVEMENT_STATUSES,
    MOVEMENT_TYPES,
)
from ..numbers import ZERO, money, qty, unit_price
from ..scope import Scope, require_scope
from ..validation import (
    optional_text,
    parse_amount,
    parse_datetime,
    require_nonzero_pair,
    require_positive_pair,
    require_text,
)
from .concurrency import run_with_retry
from .tenant_service import get_owned, scoped_query
from bizdesk.time_utils import utcnow
"""
Stock Ledger Invariants & Time Semantics (authoritative)

Canonical time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- Inputs accept ISO-8601 with 'Z' or offsets, dates, or datetimes.

Snapshot model:
- Product.quantity_box / quantity_kg are a stored snapshot.
- The snapshot changes here (restock, correction), in approval_service
  (approved damage, approved edit) and in sales_service (recorded sales,
  approved sale edits and deletes). Ledger and approval changes each have a
  StockMovement; sale changes are explained by the Sale and SaleAudit rows.

Direct vs gated movements:
- restock, correction: applied immediately, movement born 'completed'.
- damage, product_edit, product_delete: movement born 'pending'; nothing is
  applied until a second party approves.

Transactions:
- Inputs are validated before any write.
- Each public operation is one transaction run through run_with_retry; the
  product row is locked (SELECT ... FOR UPDATE / version_id) so concurrent
  restocks, corrections and damage approvals cannot lose updates.
"""


# Fields a product_edit request may change, with their parsers.
def _parse_name(value) -> str:
    return require_text(value, "name", max_length=255)


def _parse_ratio(value) -> Decimal:
    ratio = parse_amount(value, "box_to_kg_ratio")
    if ratio <= ZERO:
        raise ValidationError("box_to_kg_ratio must be > 0")
    return qty(ratio)


def _parse_cost(value) -> Decimal:
    return unit_price(parse_amount(value, "cost_per_box"))


def _parse_price(value) -> Decimal:
    return unit_price(parse_amount(value, "price_per_box"))


EDITABLE_FIELDS = {
    "name": _parse_name,
    "box_to_kg_ratio": _parse_ratio,
    "cost_per_box": _parse_cost,
    "price_per_box": _parse_price,
}


def parse_edit_value(field: str, value):
    parser = EDITABLE_FIELDS.get(field)
    if parser is None:
        raise ValidationError(
            f"Field not editable: {field}. Must be one of: {', '.join(sorted(EDITABLE_FIELDS))}"
        )
    return parser(value)


def format_value(value) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def load_live_product(scope: Scope, product_id: int, *, lock: bool = False) -> Product:
    product = get_owned(Product, product_id, scope, lock=lock, label="Product")
    if product.is_deleted:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def append_movement(movement: StockMovement) -> StockMovement:
    """
    Append-only insert of a ledger entry.

    - Validates the variant's required fields.
    - No updates of existing movements here; decisions go through
      StockMovement.mark_decided().
    """
    movement.check_required_fields()
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def apply_quantity_delta(product: Product, box_delta: Decimal, kg_delta: Decimal, *, context: str) -> None:
    """
    Change the product snapshot by the given deltas.

    A result below zero means the snapshot and the ledger disagree; it is
    reported as IntegrityFault rather than clamped.
    """
    new_box = Decimal(product.quantity_box) + box_delta
    new_kg = Decimal(product.quantity_kg) + kg_delta
    if new_box < ZERO or new_kg < ZERO:
        current_app.logger.error(
            "Integrity fault on %s: account=%s product=%s boxes=%s%+f kg=%s%+f",
            context, product.account_id, product.id,
            product.quantity_box, box_delta, product.quantity_kg, kg_delta,
        )
        raise IntegrityFault(
            f"{context} would drive stock negative for product {product.id} "
            f"(boxes {product.quantity_box} -> {new_box}, kg {product.quantity_kg} -> {new_kg})"
        )
    product.quantity_box = qty(new_box)
    product.quantity_kg = qty(new_kg)


# =============================================================================
# DIRECT MOVEMENTS
# =============================================================================

def record_restock(
    scope: Scope,
    product_id: int,
    boxes,
    kg,
    delivery_date=None,
    expiry_date=None,
    note=None,
) -> RestockRecord:
    """
    Add delivered stock to a product.

    total_cost uses the product's CURRENT cost fields:
        boxes * cost_per_box + kg * cost_per_kg

    Creates the RestockRecord and a completed RestockMovement and increments
    the product in the same transaction. A new expiry_date replaces the
    product's expiry and days_left is recomputed.
    """
    require_scope(scope)
    boxes, kg = require_positive_pair(boxes, kg)
    delivery_dt = parse_datetime(delivery_date, "delivery_date")
    expiry_dt = parse_datetime(expiry_date, "expiry_date")
    note = optional_text(note, "note", max_length=255)

    def _op():
        product = load_live_product(scope, product_id, lock=True)

        total_cost = money(boxes * Decimal(product.cost_per_box) + kg * Decimal(product.cost_per_kg))

        record = RestockRecord(
            account_id=scope.account_id,
            product_id=product.id,
            boxes_added=qty(boxes),
            kg_added=qty(kg),
            total_cost=total_cost,
            delivery_date=delivery_dt,
            expiry_date=expiry_dt,
            note=note,
            status=MOVEMENT_COMPLETED,
            performed_by=scope.actor,
        )
        db.session.add(record)
        db.session.flush()

        append_movement(RestockMovement(
            account_id=scope.account_id,
            product_id=product.id,
            box_change=qty(boxes),
            kg_change=qty(kg),
            reason=note,
            status=MOVEMENT_COMPLETED,
            performed_by=scope.actor,
            decided_at=utcnow(),
            restock_id=record.id,
        ))

        apply_quantity_delta(product, boxes, kg, context="restock")
        if expiry_dt is not None:
            product.expiry_date = expiry_dt
            product.refresh_days_left()

        db.session.commit()
        current_app.logger.info(
            "Restock recorded: account=%s product=%s boxes=%s kg=%s cost=%s actor=%s",
            scope.account_id, product.id, boxes, kg, total_cost, scope.actor,
        )
        return record

    return run_with_retry(_op)


def record_correction(
    scope: Scope,
    product_id: int,
    box_adjustment,
    kg_adjustment,
    reason,
) -> CorrectionMovement:
    """
    Audit record of an admin stock correction, applied immediately.

    Adjustments are signed. No approval gate: the correction documents an
    action that has already been decided.
    """
    require_scope(scope)
    box_delta, kg_delta = require_nonzero_pair(
        box_adjustment, kg_adjustment, box_field="box_adjustment", kg_field="kg_adjustment"
    )
    reason = require_text(reason, "reason")

    def _op():
        product = load_live_product(scope, product_id, lock=True)

        movement = append_movement(CorrectionMovement(
            account_id=scope.account_id,
            product_id=product.id,
            box_change=qty(box_delta),
            kg_change=qty(kg_delta),
            reason=reason,
            status=MOVEMENT_COMPLETED,
            performed_by=scope.actor,
            decided_at=utcnow(),
        ))
        apply_quantity_delta(product, box_delta, kg_delta, context="correction")

        db.session.commit()
        current_app.logger.info(
            "Correction recorded: account=%s product=%s boxes=%+f kg=%+f actor=%s",
            scope.account_id, product.id, box_delta, kg_delta, scope.actor,
        )
        return movement

    return run_with_retry(_op)


# =============================================================================
# GATED MOVEMENTS (pending until approval_service decides)
# =============================================================================

def record_damage(scope: Scope, product_id: int, boxes, kg, reason) -> DamageRecord:
    """
    Report damaged stock.

    loss_value = boxes * cost_per_box + kg * cost_per_kg is recorded now;
    quantities are NOT decremented until approve_damage().
    """
    require_scope(scope)
    boxes, kg = require_positive_pair(boxes, kg)
    reason = require_text(reason, "reason")

    def _op():
        product = load_live_product(scope, product_id)

        loss_value = money(boxes * Decimal(product.cost_per_box) + kg * Decimal(product.cost_per_kg))

        damage = DamageRecord(
            account_id=scope.account_id,
            product_id=product.id,
            damaged_boxes=qty(boxes),
            damaged_kg=qty(kg),
            reason=reason,
            loss_value=loss_value,
            damage_approval=DAMAGE_PENDING,
            reported_by=scope.actor,
        )
        db.session.add(damage)
        db.session.flush()

        append_movement(DamageMovement(
            account_id=scope.account_id,
            product_id=product.id,
            box_change=-qty(boxes),
            kg_change=-qty(kg),
            reason=reason,
            status=MOVEMENT_PENDING,
            performed_by=scope.actor,
            damage_id=damage.id,
        ))

        db.session.commit()
        current_app.logger.info(
            "Damage reported: account=%s product=%s damage=%s boxes=%s kg=%s loss=%s actor=%s",
            scope.account_id, product.id, damage.id, boxes, kg, loss_value, scope.actor,
        )
        return damage

    return run_with_retry(_op)


def request_edit(scope: Scope, product_id: int, changes: dict, reason) -> list[ProductEditMovement]:
    """
    Request changes to a live product's attributes.

    One pending product_edit movement is created per field whose new value
    differs from the current one, so each change can be approved or rejected
    on its own. Fields equal to the current value are skipped; if nothing
    differs the request is rejected.
    """
    require_scope(scope)
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("changes are required")
    reason = require_text(reason, "reason")
    parsed = {field: parse_edit_value(field, value) for field, value in changes.items()}

    def _op():
        product = load_live_product(scope, product_id)

        movements = []
        for field in sorted(parsed):
            new_value = parsed[field]
            current = getattr(product, field)
            if isinstance(new_value, Decimal):
                unchanged = current is not None and Decimal(current) == new_value
            else:
                unchanged = current == new_value
            if unchanged:
                continue

            movements.append(append_movement(ProductEditMovement(
                account_id=scope.account_id,
                product_id=product.id,
                box_change=ZERO,
                kg_change=ZERO,
                field_changed=field,
                old_value=format_value(current) if current is not None else "",
                new_value=format_value(new_value),
                reason=reason,
                status=MOVEMENT_PENDING,
                performed_by=scope.actor,
            )))

        if not movements:
            raise ValidationError("No changes detected")

        db.session.commit()
        current_app.logger.info(
            "Edit requested: account=%s product=%s fields=%s actor=%s",
            scope.account_id, product.id, [m.field_changed for m in movements], scope.actor,
        )
        return movements

    return run_with_retry(_op)


def request_delete(scope: Scope, product_id: int, reason) -> ProductDeleteMovement:
    """
    Request deletion of a live product.

    The product stays visible and usable until approve_deletion().
    old_value records the box count being written off; new_value is 0.
    """
    require_scope(scope)
    reason = require_text(reason, "reason")

    def _op():
        product = load_live_product(scope, product_id)

        movement = append_movement(ProductDeleteMovement(
            account_id=scope.account_id,
            product_id=product.id,
            box_change=-Decimal(product.quantity_box),
            kg_change=-Decimal(product.quantity_kg),
            old_value=format_value(Decimal(product.quantity_box)),
            new_value="0",
            reason=reason,
            status=MOVEMENT_PENDING,
            performed_by=scope.actor,
        ))

        db.session.commit()
        current_app.logger.info(
            "Deletion requested: account=%s product=%s movement=%s actor=%s",
            scope.account_id, product.id, movement.id, scope.actor,
        )
        return movement

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def list_movements(
    scope: Scope,
    *,
    product_id: int | None = None,
    status: str | None = None,
    movement_type: str | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    if status is not None and status not in MOVEMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(MOVEMENT_STATUSES))}")
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movement_type must be one of: {', '.join(sorted(MOVEMENT_TYPES))}")
    if limit is None:
        limit = int(current_app.config.get("MOVEMENT_LIST_LIMIT", 200))

    q = scoped_query(StockMovement, scope)
    if product_id is not None:
        get_owned(Product, product_id, scope, label="Product")
        q = q.filter(StockMovement.product_id == product_id)
    if status is not None:
        q = q.filter(StockMovement.status == status)
    if movement_type is not None:
        q = q.filter(StockMovement.movement_type == movement_type)

    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()


def list_restocks(scope: Scope, *, product_id: int | None = None) -> list[RestockRecord]:
    q = scoped_query(RestockRecord, scope)
    if product_id is not None:
        q = q.filter(RestockRecord.product_id == product_id)
    return q.order_by(RestockRecord.recorded_at.desc(), RestockRecord.id.desc()).all()


def list_damages(
    scope: Scope,
    *,
    product_id: int | None = None,
    approval: str | None = None,
) -> list[DamageRecord]:
    q = scoped_query(DamageRecord, scope)
    if product_id is not None:
        q = q.filter(DamageRecord.product_id == product_id)
    if approval is not None:
        q = q.filter(DamageRecord.damage_approval == approval)
    return q.order_by(DamageRecord.recorded_at.desc(), DamageRecord.id.desc()).all()


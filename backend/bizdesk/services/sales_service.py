# Overview: Sales, debtor payments and the sale edit/delete audit workflow.

"""
Sales Service

WHY: A sale is what takes stock out of the business and puts money (or a
debt) in. Prices and per-unit profits are snapshotted from the product when
the sale is recorded so later price edits never rewrite history.

DESIGN PRINCIPLES:
- Recording a sale decrements product stock under lock, in one transaction.
- Payment state is derived: pending (nothing paid), partial, completed.
- Debtor payments are allocated to the client's oldest unpaid sale first and
  recorded as append-only SalePayment rows.
- Changing or removing a recorded sale is a request (SaleAudit) that a second
  party approves, mirroring product edits/deletions in approval_service.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleAudit, SalePayment
from ..models.sales import (
    AUDIT_APPROVED,
    AUDIT_DELETE,
    AUDIT_EDIT,
    AUDIT_PENDING,
    AUDIT_REJECTED,
    PAYMENT_COMPLETED,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
)
from ..numbers import ZERO, dsum, money, qty, unit_price
from ..scope import Scope, require_scope
from ..validation import (
    optional_text,
    parse_amount,
    parse_datetime,
    parse_optional_amount,
    require_positive_pair,
    require_text,
)
from .approval_service import ensure_second_party
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import apply_quantity_delta, load_live_product
from .tenant_service import get_owned, scoped_query
from bizdesk.time_utils import utcnow

AUDIT_STATUSES = {AUDIT_PENDING, AUDIT_APPROVED, AUDIT_REJECTED}


def payment_status_for(total: Decimal, paid: Decimal) -> str:
    if paid >= total:
        return PAYMENT_COMPLETED
    if paid <= ZERO:
        return PAYMENT_PENDING
    return PAYMENT_PARTIAL


def _check_stock(product: Product, boxes: Decimal, kg: Decimal) -> None:
    if boxes > Decimal(product.quantity_box) or kg > Decimal(product.quantity_kg):
        raise ValidationError(
            f"Insufficient stock for product {product.id}: "
            f"requested {boxes} boxes / {kg} kg, available {product.quantity_box} boxes / {product.quantity_kg} kg"
        )


def _settle(sale: Sale) -> None:
    """Recompute total, remaining balance and status from quantities and snapshot prices."""
    total = money(
        Decimal(sale.boxes_quantity) * Decimal(sale.box_price)
        + Decimal(sale.kg_quantity) * Decimal(sale.kg_price)
    )
    paid = Decimal(sale.amount_paid)
    if paid > total:
        raise ValidationError(f"amount_paid {paid} exceeds sale total {total}")
    sale.total_amount = total
    sale.remaining_amount = money(total - paid)
    sale.payment_status = payment_status_for(total, paid)


# =============================================================================
# SALES
# =============================================================================

def record_sale(
    scope: Scope,
    product_id: int,
    client_id,
    client_name,
    boxes,
    kg,
    amount_paid=0,
    payment_method=None,
    *,
    phone_number=None,
    notes=None,
    sold_at=None,
) -> Sale:
    """
    Sell boxes and/or kg of one product to a client.

    total_amount = boxes * price_per_box + kg * price_per_kg

    Raises:
        ValidationError: bad input, amount_paid above total, insufficient stock
        NotFoundError: product missing or deleted
    """
    require_scope(scope)
    boxes, kg = require_positive_pair(boxes, kg)
    client_id = require_text(client_id, "client_id", max_length=64)
    client_name = require_text(client_name, "client_name", max_length=255)
    paid = parse_optional_amount(amount_paid, "amount_paid")
    payment_method = optional_text(payment_method, "payment_method", max_length=64)
    phone_number = optional_text(phone_number, "phone_number", max_length=64)
    notes = optional_text(notes, "notes", max_length=5000)
    sold_at = parse_datetime(sold_at, "sold_at")

    def _op():
        product = load_live_product(scope, product_id, lock=True)
        _check_stock(product, boxes, kg)

        sale = Sale(
            account_id=scope.account_id,
            product_id=product.id,
            client_id=client_id,
            client_name=client_name,
            phone_number=phone_number,
            boxes_quantity=qty(boxes),
            kg_quantity=qty(kg),
            box_price=unit_price(product.price_per_box),
            kg_price=unit_price(product.price_per_kg),
            profit_per_box=unit_price(product.profit_per_box),
            profit_per_kg=unit_price(product.profit_per_kg),
            amount_paid=money(paid),
            payment_method=payment_method,
            notes=notes,
            sold_by=scope.actor,
            sold_at=sold_at or utcnow(),
        )
        _settle(sale)

        apply_quantity_delta(product, -boxes, -kg, context="sale")
        db.session.add(sale)
        db.session.commit()

        current_app.logger.info(
            "Sale recorded: account=%s sale=%s product=%s client=%s boxes=%s kg=%s total=%s paid=%s",
            scope.account_id, sale.id, product.id, client_id, boxes, kg, sale.total_amount, sale.amount_paid,
        )
        return sale

    return run_with_retry(_op)


def get_sale(scope: Scope, sale_id: int) -> Sale:
    return get_owned(Sale, sale_id, scope, label="Sale")


def list_sales(
    scope: Scope,
    *,
    client_id: str | None = None,
    payment_status: str | None = None,
    start=None,
    end=None,
) -> list[Sale]:
    start_dt = parse_datetime(start, "start")
    end_dt = parse_datetime(end, "end")

    q = scoped_query(Sale, scope)
    if client_id is not None:
        q = q.filter(Sale.client_id == client_id)
    if payment_status is not None:
        q = q.filter(Sale.payment_status == payment_status)
    if start_dt is not None:
        q = q.filter(Sale.sold_at >= start_dt)
    if end_dt is not None:
        q = q.filter(Sale.sold_at <= end_dt)
    return q.order_by(Sale.sold_at.desc(), Sale.id.desc()).all()


# =============================================================================
# DEBTOR PAYMENTS
# =============================================================================

def process_debtor_payment(scope: Scope, client_id, amount, payment_method=None) -> list[SalePayment]:
    """
    Apply money received from a debtor across their unpaid sales.

    Allocation is oldest sale first; each sale touched gets one SalePayment.
    A sale whose remaining balance reaches zero becomes 'completed'.

    Raises:
        ValidationError: amount <= 0, or more than the client owes
        NotFoundError: the client owes nothing
    """
    require_scope(scope)
    client_id = require_text(client_id, "client_id", max_length=64)
    amount = money(parse_amount(amount, "amount"))
    if amount <= ZERO:
        raise ValidationError("amount must be > 0")
    payment_method = optional_text(payment_method, "payment_method", max_length=64)

    def _op():
        sales = lock_for_update(
            scoped_query(Sale, scope).filter(
                Sale.client_id == client_id,
                Sale.payment_status != PAYMENT_COMPLETED,
            ).order_by(Sale.sold_at.asc(), Sale.id.asc())
        ).all()

        if not sales:
            raise NotFoundError(f"No outstanding balance for client {client_id}")

        owed = dsum(s.remaining_amount for s in sales)
        if amount > owed:
            raise ValidationError(f"Payment {amount} exceeds amount owed {owed}")

        now = utcnow()
        left = amount
        payments = []
        for sale in sales:
            if left <= ZERO:
                break
            share = min(left, Decimal(sale.remaining_amount))
            if share <= ZERO:
                continue

            sale.amount_paid = money(Decimal(sale.amount_paid) + share)
            sale.remaining_amount = money(Decimal(sale.remaining_amount) - share)
            sale.payment_status = payment_status_for(Decimal(sale.total_amount), Decimal(sale.amount_paid))
            if payment_method is not None:
                sale.payment_method = payment_method

            payment = SalePayment(
                account_id=scope.account_id,
                sale_id=sale.id,
                client_id=client_id,
                amount=share,
                payment_method=payment_method,
                received_by=scope.actor,
                paid_at=now,
            )
            db.session.add(payment)
            payments.append(payment)
            left -= share

        db.session.commit()
        current_app.logger.info(
            "Debtor payment: account=%s client=%s amount=%s sales=%s actor=%s",
            scope.account_id, client_id, amount, [p.sale_id for p in payments], scope.actor,
        )
        return payments

    return run_with_retry(_op)


def list_sale_payments(scope: Scope, *, client_id: str | None = None) -> list[SalePayment]:
    q = scoped_query(SalePayment, scope)
    if client_id is not None:
        q = q.filter(SalePayment.client_id == client_id)
    return q.order_by(SalePayment.paid_at.desc(), SalePayment.id.desc()).all()


# =============================================================================
# SALE AUDITS (edit / delete requests)
# =============================================================================

def _ensure_no_pending_audit(scope: Scope, sale_id: int) -> None:
    pending = scoped_query(SaleAudit, scope).filter(
        SaleAudit.sale_id == sale_id,
        SaleAudit.approval_status == AUDIT_PENDING,
    ).first()
    if pending is not None:
        raise ConflictError(f"Sale {sale_id} already has a pending {pending.audit_type} request")


def request_sale_edit(scope: Scope, sale_id: int, boxes, kg, reason) -> SaleAudit:
    """Request new quantities for a recorded sale. Nothing changes until approval."""
    require_scope(scope)
    boxes, kg = require_positive_pair(boxes, kg)
    reason = require_text(reason, "reason")

    sale = get_owned(Sale, sale_id, scope, label="Sale")
    if Decimal(sale.boxes_quantity) == boxes and Decimal(sale.kg_quantity) == kg:
        raise ValidationError("No changes detected")
    _ensure_no_pending_audit(scope, sale.id)

    audit = SaleAudit(
        account_id=scope.account_id,
        sale_id=sale.id,
        audit_type=AUDIT_EDIT,
        boxes_before=sale.boxes_quantity,
        boxes_after=qty(boxes),
        kg_before=sale.kg_quantity,
        kg_after=qty(kg),
        reason=reason,
        approval_status=AUDIT_PENDING,
        requested_by=scope.actor,
    )
    db.session.add(audit)
    db.session.commit()
    current_app.logger.info(
        "Sale edit requested: account=%s sale=%s audit=%s actor=%s",
        scope.account_id, sale.id, audit.id, scope.actor,
    )
    return audit


def request_sale_delete(scope: Scope, sale_id: int, reason) -> SaleAudit:
    """Request removal of a recorded sale; approval restores its stock."""
    require_scope(scope)
    reason = require_text(reason, "reason")

    sale = get_owned(Sale, sale_id, scope, label="Sale")
    _ensure_no_pending_audit(scope, sale.id)

    audit = SaleAudit(
        account_id=scope.account_id,
        sale_id=sale.id,
        audit_type=AUDIT_DELETE,
        boxes_before=sale.boxes_quantity,
        boxes_after=ZERO,
        kg_before=sale.kg_quantity,
        kg_after=ZERO,
        reason=reason,
        approval_status=AUDIT_PENDING,
        requested_by=scope.actor,
    )
    db.session.add(audit)
    db.session.commit()
    current_app.logger.info(
        "Sale deletion requested: account=%s sale=%s audit=%s actor=%s",
        scope.account_id, sale.id, audit.id, scope.actor,
    )
    return audit


def _load_pending_audit(scope: Scope, audit_id: int) -> SaleAudit:
    audit = get_owned(SaleAudit, audit_id, scope, lock=True, label="Sale audit")
    if audit.approval_status != AUDIT_PENDING:
        raise InvalidStateError(
            f"Cannot decide sale audit {audit_id}: current status is '{audit.approval_status}', must be 'pending'"
        )
    return audit


def approve_sale_audit(scope: Scope, audit_id: int) -> SaleAudit:
    """
    Apply a pending sale edit or deletion.

    edit:   product stock moves by the quantity difference; totals, balance and
            payment status are recomputed at the sale's snapshot prices.
    delete: the sale's quantities go back into stock and the sale row is
            removed. SalePayment rows are kept as history.

    A deleted product keeps its quantities untouched.
    """
    require_scope(scope)

    def _op():
        audit = _load_pending_audit(scope, audit_id)
        ensure_second_party(scope, audit.requested_by, f"sale audit {audit_id}")

        sale = get_owned(Sale, audit.sale_id, scope, lock=True, label="Sale")
        product = get_owned(Product, sale.product_id, scope, lock=True, label="Product")

        if audit.audit_type == AUDIT_EDIT:
            new_boxes = Decimal(audit.boxes_after)
            new_kg = Decimal(audit.kg_after)
            box_delta = Decimal(sale.boxes_quantity) - new_boxes
            kg_delta = Decimal(sale.kg_quantity) - new_kg
            if not product.is_deleted:
                _check_stock(product, max(-box_delta, ZERO), max(-kg_delta, ZERO))
                apply_quantity_delta(product, box_delta, kg_delta, context="sale edit")
            sale.boxes_quantity = qty(new_boxes)
            sale.kg_quantity = qty(new_kg)
            _settle(sale)
        elif audit.audit_type == AUDIT_DELETE:
            if not product.is_deleted:
                apply_quantity_delta(
                    product, Decimal(sale.boxes_quantity), Decimal(sale.kg_quantity), context="sale deletion"
                )
            db.session.delete(sale)
        else:
            raise InvalidStateError(f"Unknown sale audit type '{audit.audit_type}'")

        audit.approval_status = AUDIT_APPROVED
        audit.decided_by = scope.actor
        audit.decided_at = utcnow()

        db.session.commit()
        current_app.logger.info(
            "Sale audit approved: account=%s audit=%s type=%s sale=%s approver=%s",
            scope.account_id, audit.id, audit.audit_type, audit.sale_id, scope.actor,
        )
        return audit

    return run_with_retry(_op)


def reject_sale_audit(scope: Scope, audit_id: int, rejection_reason=None) -> SaleAudit:
    require_scope(scope)
    rejection_reason = optional_text(rejection_reason, "rejection_reason")

    def _op():
        audit = _load_pending_audit(scope, audit_id)
        audit.approval_status = AUDIT_REJECTED
        audit.decided_by = scope.actor
        audit.decided_at = utcnow()
        audit.rejection_reason = rejection_reason
        db.session.commit()
        current_app.logger.info(
            "Sale audit rejected: account=%s audit=%s sale=%s actor=%s reason=%r",
            scope.account_id, audit.id, audit.sale_id, scope.actor, rejection_reason,
        )
        return audit

    return run_with_retry(_op)


def list_sale_audits(scope: Scope, *, status: str | None = None) -> list[SaleAudit]:
    if status is not None and status not in AUDIT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(AUDIT_STATUSES))}")
    q = scoped_query(SaleAudit, scope)
    if status is not None:
        q = q.filter(SaleAudit.approval_status == status)
    return q.order_by(SaleAudit.created_at.desc(), SaleAudit.id.desc()).all()

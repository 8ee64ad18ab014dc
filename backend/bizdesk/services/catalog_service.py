# backend/bizdesk/services/catalog_service.py
"""
Catalog Service: product categories and product master data.

MULTI-TENANT: Every operation takes an explicit Scope; categories and
products are filtered by scope.account_id.

Products are created directly (no movement). After creation, quantities are
changed by the stock ledger and by sales, and attributes only by approved
edits; see ledger_service.py, sales_service.py and approval_service.py.
"""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, ProductCategory
from ..numbers import ZERO, qty, unit_price
from ..scope import Scope, require_scope
from ..validation import (
    enforce_rules_product,
    optional_text,
    parse_amount,
    parse_datetime,
    parse_optional_amount,
    require_text,
)
from .tenant_service import get_owned, scoped_query
from bizdesk.time_utils import utcnow


# =============================================================================
# CATEGORIES
# =============================================================================

def create_category(scope: Scope, name) -> ProductCategory:
    require_scope(scope)
    name = require_text(name, "name", max_length=120)

    existing = scoped_query(ProductCategory, scope).filter(ProductCategory.name == name).first()
    if existing is not None:
        raise ConflictError("Category already exists")

    category = ProductCategory(account_id=scope.account_id, name=name)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    return category


def list_categories(scope: Scope) -> list[ProductCategory]:
    return scoped_query(ProductCategory, scope).order_by(ProductCategory.name.asc()).all()


def rename_category(scope: Scope, category_id: int, name) -> ProductCategory:
    category = get_owned(ProductCategory, category_id, scope, label="Category")
    name = require_text(name, "name", max_length=120)

    clash = scoped_query(ProductCategory, scope).filter(
        ProductCategory.name == name,
        ProductCategory.id != category.id,
    ).first()
    if clash is not None:
        raise ConflictError("Category already exists")

    category.name = name
    db.session.commit()
    return category


def delete_category(scope: Scope, category_id: int) -> int:
    """Delete a category; its products are detached, not deleted."""
    category = get_owned(ProductCategory, category_id, scope, label="Category")

    scoped_query(Product, scope).filter(Product.category_id == category.id).update(
        {Product.category_id: None}, synchronize_session="fetch"
    )
    db.session.delete(category)
    db.session.commit()
    return category_id


# =============================================================================
# PRODUCTS
# =============================================================================

def create_product(
    scope: Scope,
    *,
    name,
    box_to_kg_ratio,
    cost_per_box=0,
    price_per_box=0,
    quantity_box=0,
    quantity_kg=None,
    category_id: int | None = None,
    sku=None,
    description=None,
    low_stock_threshold=None,
    expiry_date=None,
) -> Product:
    """
    Create a product with its opening stock.

    quantity_kg defaults to quantity_box * box_to_kg_ratio (the steady state).
    Per-kg prices and profits are derived from the per-box values.
    """
    require_scope(scope)

    fields = {
        "name": require_text(name, "name", max_length=255),
        "box_to_kg_ratio": parse_amount(box_to_kg_ratio, "box_to_kg_ratio"),
        "cost_per_box": parse_amount(cost_per_box, "cost_per_box"),
        "price_per_box": parse_amount(price_per_box, "price_per_box"),
        "quantity_box": parse_amount(quantity_box, "quantity_box"),
        "low_stock_threshold": (
            None if low_stock_threshold is None
            else parse_amount(low_stock_threshold, "low_stock_threshold")
        ),
    }
    enforce_rules_product(fields)

    if quantity_kg is None:
        fields["quantity_kg"] = fields["quantity_box"] * fields["box_to_kg_ratio"]
    else:
        fields["quantity_kg"] = parse_amount(quantity_kg, "quantity_kg")

    if category_id is not None:
        get_owned(ProductCategory, category_id, scope, label="Category")

    product = Product(
        account_id=scope.account_id,
        category_id=category_id,
        name=fields["name"],
        sku=optional_text(sku, "sku", max_length=64),
        description=optional_text(description, "description", max_length=5000),
        quantity_box=qty(fields["quantity_box"]),
        quantity_kg=qty(fields["quantity_kg"]),
        box_to_kg_ratio=qty(fields["box_to_kg_ratio"]),
        cost_per_box=unit_price(fields["cost_per_box"]),
        price_per_box=unit_price(fields["price_per_box"]),
        low_stock_threshold=fields["low_stock_threshold"],
        expiry_date=parse_datetime(expiry_date, "expiry_date"),
    )
    product.recompute_derived()
    product.refresh_days_left()

    db.session.add(product)
    db.session.commit()

    current_app.logger.info(
        "Product created: account=%s product=%s name=%r boxes=%s kg=%s",
        scope.account_id, product.id, product.name, product.quantity_box, product.quantity_kg,
    )
    return product


def get_product(scope: Scope, product_id: int, *, include_deleted: bool = False) -> Product:
    product = get_owned(Product, product_id, scope, label="Product")
    if product.is_deleted and not include_deleted:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    scope: Scope,
    *,
    category_id: int | None = None,
    include_deleted: bool = False,
) -> list[Product]:
    q = scoped_query(Product, scope)
    if not include_deleted:
        q = q.filter(Product.deleted_at.is_(None))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def list_low_stock(scope: Scope) -> list[Product]:
    """Live products whose box count is at or below their threshold."""
    default_threshold = Decimal(current_app.config.get("LOW_STOCK_THRESHOLD_DEFAULT", 5))
    return [p for p in list_products(scope) if p.is_low_stock(default_threshold)]


def list_expiring(scope: Scope, within_days: int | None = None) -> list[Product]:
    """
    Live products expiring within `within_days` (default EXPIRY_WARNING_DAYS),
    soonest first. Already-expired products are included.
    """
    if within_days is None:
        within_days = int(current_app.config.get("EXPIRY_WARNING_DAYS", 30))
    if within_days < 0:
        raise ValidationError("within_days must be >= 0")

    horizon = utcnow() + timedelta(days=within_days)
    return (
        scoped_query(Product, scope)
        .filter(
            Product.deleted_at.is_(None),
            Product.expiry_date.isnot(None),
            Product.expiry_date <= horizon,
        )
        .order_by(Product.expiry_date.asc(), Product.id.asc())
        .all()
    )


def refresh_days_left(scope: Scope | None = None) -> int:
    """
    Recompute the stored days_left for products with an expiry date.

    With scope=None all accounts are refreshed (CLI maintenance use).
    Returns the number of products whose value changed.
    """
    if scope is None:
        q = db.session.query(Product)
    else:
        q = scoped_query(Product, scope)

    now = utcnow()
    changed = 0
    for product in q.filter(Product.expiry_date.isnot(None), Product.deleted_at.is_(None)).all():
        before = product.days_left
        product.refresh_days_left(now)
        if product.days_left != before:
            changed += 1
    db.session.commit()
    return changed


def stock_value(product: Product) -> Decimal:
    """Current stock valued at cost_per_box (kg mirrors boxes in the steady state)."""
    return Decimal(product.quantity_box) * Decimal(product.cost_per_box or ZERO)

# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

# backend/bizdesk/routes/products.py
"""
Product catalog routes.

MULTI-TENANT: All operations are scoped to the caller's account.
The scope is derived from g.scope (set by @require_scope).

Products are created here directly. Changing a product afterwards goes
through /api/inventory (edit/delete requests) and /api/approvals.
"""
from flask import Blueprint, request, g, current_app

from ..errors import BizDeskError
from ..models import Product
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload, ValidationError
from ..decorators import require_scope

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "sku",
        "description",
        "category_id",
        "box_to_kg_ratio",
        "cost_per_box",
        "price_per_box",
        "quantity_box",
        "quantity_kg",
        "low_stock_threshold",
        "expiry_date",
    },
    required_on_create={"name", "box_to_kg_ratio"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


@products_bp.get("")
@require_scope
def list_products():
    """
    List live products.

    Query params:
    - category_id: int (optional)
    - include_deleted: "true" to include soft-deleted products
    """
    products = catalog_service.list_products(
        g.scope,
        category_id=request.args.get("category_id", type=int),
        include_deleted=_flag("include_deleted"),
    )
    return {"products": [p.to_dict() for p in products]}


@products_bp.post("")
@require_scope
def create_product_route():
    """Create a product with its opening stock."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(g.scope, **patch)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}, 201


@products_bp.get("/<int:product_id>")
@require_scope
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(
            g.scope, product_id, include_deleted=_flag("include_deleted")
        )
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"product": product.to_dict()}


@products_bp.get("/low-stock")
@require_scope
def low_stock_route():
    products = catalog_service.list_low_stock(g.scope)
    return {"products": [p.to_dict() for p in products]}


@products_bp.get("/expiring")
@require_scope
def expiring_route():
    """
    Products expiring soon, soonest first.

    Query params:
    - within_days: int (optional, default EXPIRY_WARNING_DAYS)
    """
    try:
        products = catalog_service.list_expiring(
            g.scope, within_days=request.args.get("within_days", type=int)
        )
    except ValidationError as e:
        return e.to_dict(), e.status_code
    return {"products": [p.to_dict() for p in products]}


# =============================================================================
# CATEGORIES
# =============================================================================

@categories_bp.get("")
@require_scope
def list_categories_route():
    categories = catalog_service.list_categories(g.scope)
    return {"categories": [c.to_dict() for c in categories]}


@categories_bp.post("")
@require_scope
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        category = catalog_service.create_category(g.scope, payload.get("name"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"category": category.to_dict()}, 201


@categories_bp.patch("/<int:category_id>")
@require_scope
def rename_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        category = catalog_service.rename_category(g.scope, category_id, payload.get("name"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"category": category.to_dict()}


@categories_bp.delete("/<int:category_id>")
@require_scope
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(g.scope, category_id)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"deleted": category_id}

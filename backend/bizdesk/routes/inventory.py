# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/bizdesk/routes/inventory.py
"""
Stock ledger routes.

- POST /api/inventory/products/:id/restock          - applied immediately
- POST /api/inventory/products/:id/corrections      - applied immediately
- POST /api/inventory/products/:id/damages          - pending until approved
- POST /api/inventory/products/:id/edit-requests    - pending until approved
- POST /api/inventory/products/:id/delete-requests  - pending until approved
- GET  /api/inventory/movements | /restocks | /damages

SECURITY: performed_by is taken from the X-Actor header via g.scope, NOT
from the request body.
"""

from flask import Blueprint, request, g, current_app

from ..errors import BizDeskError
from ..services import ledger_service
from ..decorators import require_scope


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@inventory_bp.post("/products/<int:product_id>/restock")
@require_scope
def restock_route(product_id: int):
    """
    Record delivered stock.

    Request body:
        {"boxes": 5, "kg": 0, "delivery_date": "...", "expiry_date": "...", "note": "..."}
    """
    data = _payload()
    try:
        record = ledger_service.record_restock(
            g.scope,
            product_id,
            data.get("boxes"),
            data.get("kg"),
            delivery_date=data.get("delivery_date"),
            expiry_date=data.get("expiry_date"),
            note=data.get("note"),
        )
        return {"restock": record.to_dict()}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record restock")
        return {"error": "Internal server error"}, 500


@inventory_bp.post("/products/<int:product_id>/corrections")
@require_scope
def correction_route(product_id: int):
    """
    Record a signed stock correction.

    Request body:
        {"box_adjustment": -2, "kg_adjustment": 0, "reason": "count mismatch"}
    """
    data = _payload()
    try:
        movement = ledger_service.record_correction(
            g.scope,
            product_id,
            data.get("box_adjustment"),
            data.get("kg_adjustment"),
            data.get("reason"),
        )
        return {"movement": movement.to_dict()}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record correction")
        return {"error": "Internal server error"}, 500


@inventory_bp.post("/products/<int:product_id>/damages")
@require_scope
def damage_route(product_id: int):
    """Report damaged stock. Quantities change only when the damage is approved."""
    data = _payload()
    try:
        damage = ledger_service.record_damage(
            g.scope,
            product_id,
            data.get("boxes"),
            data.get("kg"),
            data.get("reason"),
        )
        return {"damage": damage.to_dict()}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record damage")
        return {"error": "Internal server error"}, 500


@inventory_bp.post("/products/<int:product_id>/edit-requests")
@require_scope
def edit_request_route(product_id: int):
    """
    Request attribute changes; one pending movement per changed field.

    Request body:
        {"changes": {"price_per_box": 80}, "reason": "supplier price increase"}
    """
    data = _payload()
    try:
        movements = ledger_service.request_edit(
            g.scope, product_id, data.get("changes"), data.get("reason")
        )
        return {"movements": [m.to_dict() for m in movements]}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to request product edit")
        return {"error": "Internal server error"}, 500


@inventory_bp.post("/products/<int:product_id>/delete-requests")
@require_scope
def delete_request_route(product_id: int):
    data = _payload()
    try:
        movement = ledger_service.request_delete(g.scope, product_id, data.get("reason"))
        return {"movement": movement.to_dict()}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to request product deletion")
        return {"error": "Internal server error"}, 500


@inventory_bp.get("/movements")
@require_scope
def list_movements_route():
    """
    Query params:
    - product_id: int (optional)
    - status: pending | completed | rejected (optional)
    - movement_type: restock | correction | damage | product_edit | product_delete (optional)
    - limit: int (optional, default MOVEMENT_LIST_LIMIT)
    """
    try:
        movements = ledger_service.list_movements(
            g.scope,
            product_id=request.args.get("product_id", type=int),
            status=request.args.get("status"),
            movement_type=request.args.get("movement_type"),
            limit=request.args.get("limit", type=int),
        )
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"movements": [m.to_dict() for m in movements]}


@inventory_bp.get("/restocks")
@require_scope
def list_restocks_route():
    records = ledger_service.list_restocks(g.scope, product_id=request.args.get("product_id", type=int))
    return {"restocks": [r.to_dict() for r in records]}


@inventory_bp.get("/damages")
@require_scope
def list_damages_route():
    damages = ledger_service.list_damages(
        g.scope,
        product_id=request.args.get("product_id", type=int),
        approval=request.args.get("approval"),
    )
    return {"damages": [d.to_dict() for d in damages]}

# backend/bizdesk/routes/approvals.py
"""
Approval Workflow API Routes

These routes decide pending requests created through /api/inventory:
- GET  /api/approvals/pending                   - everything awaiting a decision
- POST /api/approvals/edits/:movement_id/approve       (pending -> completed)
- POST /api/approvals/edits/:movement_id/reject        (pending -> rejected)
- POST /api/approvals/deletions/:movement_id/approve   (pending -> completed)
- POST /api/approvals/deletions/:movement_id/reject    (pending -> rejected)
- POST /api/approvals/damages/:damage_id/approve       (pending -> approved)
- POST /api/approvals/damages/:damage_id/reject        (pending -> rejected)

SECURITY:
- decided_by / approved_by come from the X-Actor header (g.scope), NOT from
  the request body, so the audit trail cannot be spoofed.
- With REQUIRE_SECOND_PARTY_APPROVAL the requester cannot approve their own
  request (403).

Error responses:
    401: No account scope
    403: Foreign account, or self-approval
    404: Movement / product / damage not found
    409: Not pending, wrong movement kind, or product mismatch
    500: Integrity fault (stock would go negative)
"""

from flask import Blueprint, request, g, current_app

from ..errors import BizDeskError
from ..services import approval_service
from ..decorators import require_scope


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@approvals_bp.get("/pending")
@require_scope
def pending_route():
    return approval_service.list_pending(g.scope)


@approvals_bp.post("/edits/<int:movement_id>/approve")
@require_scope
def approve_edit_route(movement_id: int):
    """
    Apply a pending product edit.

    Request body:
        {"product_id": 12}
    """
    data = _payload()
    try:
        movement = approval_service.approve_edit(g.scope, movement_id, data.get("product_id"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve edit")
        return {"error": "Internal server error"}, 500
    return {"movement": movement.to_dict(), "message": f"Edit {movement_id} approved"}


@approvals_bp.post("/edits/<int:movement_id>/reject")
@require_scope
def reject_edit_route(movement_id: int):
    data = _payload()
    try:
        movement = approval_service.reject_edit(g.scope, movement_id, data.get("rejection_reason"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject edit")
        return {"error": "Internal server error"}, 500
    return {"movement": movement.to_dict(), "message": f"Edit {movement_id} rejected"}


@approvals_bp.post("/deletions/<int:movement_id>/approve")
@require_scope
def approve_deletion_route(movement_id: int):
    """
    Delete the product. Irreversible.

    Request body:
        {"product_id": 12}
    """
    data = _payload()
    try:
        movement = approval_service.approve_deletion(g.scope, movement_id, data.get("product_id"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve deletion")
        return {"error": "Internal server error"}, 500
    return {"movement": movement.to_dict(), "message": f"Deletion {movement_id} approved"}


@approvals_bp.post("/deletions/<int:movement_id>/reject")
@require_scope
def reject_deletion_route(movement_id: int):
    data = _payload()
    try:
        movement = approval_service.reject_deletion(g.scope, movement_id, data.get("rejection_reason"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject deletion")
        return {"error": "Internal server error"}, 500
    return {"movement": movement.to_dict(), "message": f"Deletion {movement_id} rejected"}


@approvals_bp.post("/damages/<int:damage_id>/approve")
@require_scope
def approve_damage_route(damage_id: int):
    try:
        damage = approval_service.approve_damage(g.scope, damage_id)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve damage")
        return {"error": "Internal server error"}, 500
    return {"damage": damage.to_dict(), "message": f"Damage {damage_id} approved"}


@approvals_bp.post("/damages/<int:damage_id>/reject")
@require_scope
def reject_damage_route(damage_id: int):
    data = _payload()
    try:
        damage = approval_service.reject_damage(g.scope, damage_id, data.get("rejection_reason"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject damage")
        return {"error": "Internal server error"}, 500
    return {"damage": damage.to_dict(), "message": f"Damage {damage_id} rejected"}

# Overview: Flask API routes for sales, debtor payments and sale audits.

# backend/bizdesk/routes/sales.py
"""
Sales routes.

- POST /api/sales                                - record a sale (decrements stock)
- GET  /api/sales                                - list sales
- POST /api/sales/debtors/:client_id/payments    - pay down a client's debt, oldest sale first
- POST /api/sales/:id/edit-requests              - request new quantities
- POST /api/sales/:id/delete-requests            - request removal
- GET  /api/sales/audits                         - edit/delete requests
- POST /api/sales/audits/:id/approve | /reject

SECURITY: sold_by / received_by / decided_by come from g.scope.
"""

from flask import Blueprint, request, g, current_app

from ..errors import BizDeskError
from ..services import sales_service
from ..decorators import require_scope


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@sales_bp.post("")
@require_scope
def record_sale_route():
    """
    Request body:
        {
            "product_id": 1,
            "client_id": "C-001",
            "client_name": "Mama Njeri",
            "boxes": 3,
            "kg": 0,
            "amount_paid": 100,
            "payment_method": "cash",
            "phone_number": "...",   // optional
            "notes": "..."           // optional
        }
    """
    data = _payload()
    try:
        sale = sales_service.record_sale(
            g.scope,
            data.get("product_id"),
            data.get("client_id"),
            data.get("client_name"),
            data.get("boxes"),
            data.get("kg"),
            amount_paid=data.get("amount_paid", 0),
            payment_method=data.get("payment_method"),
            phone_number=data.get("phone_number"),
            notes=data.get("notes"),
            sold_at=data.get("sold_at"),
        )
        return {"sale": sale.to_dict()}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return {"error": "Internal server error"}, 500


@sales_bp.get("")
@require_scope
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            g.scope,
            client_id=request.args.get("client_id"),
            payment_status=request.args.get("payment_status"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"sales": [s.to_dict() for s in sales]}


@sales_bp.get("/<int:sale_id>")
@require_scope
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.scope, sale_id)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"sale": sale.to_dict()}


@sales_bp.post("/debtors/<client_id>/payments")
@require_scope
def debtor_payment_route(client_id: str):
    """
    Request body:
        {"amount": 75.5, "payment_method": "mobile money"}
    """
    data = _payload()
    try:
        payments = sales_service.process_debtor_payment(
            g.scope, client_id, data.get("amount"), data.get("payment_method")
        )
        return {"payments": [p.to_dict() for p in payments]}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process debtor payment")
        return {"error": "Internal server error"}, 500


@sales_bp.get("/payments")
@require_scope
def list_payments_route():
    payments = sales_service.list_sale_payments(g.scope, client_id=request.args.get("client_id"))
    return {"payments": [p.to_dict() for p in payments]}


@sales_bp.post("/<int:sale_id>/edit-requests")
@require_scope
def sale_edit_request_route(sale_id: int):
    data = _payload()
    try:
        audit = sales_service.request_sale_edit(
            g.scope, sale_id, data.get("boxes"), data.get("kg"), data.get("reason")
        )
        return {"audit": audit.to_dict()}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code


@sales_bp.post("/<int:sale_id>/delete-requests")
@require_scope
def sale_delete_request_route(sale_id: int):
    data = _payload()
    try:
        audit = sales_service.request_sale_delete(g.scope, sale_id, data.get("reason"))
        return {"audit": audit.to_dict()}, 201
    except BizDeskError as e:
        return e.to_dict(), e.status_code


@sales_bp.get("/audits")
@require_scope
def list_audits_route():
    try:
        audits = sales_service.list_sale_audits(g.scope, status=request.args.get("status"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"audits": [a.to_dict() for a in audits]}


@sales_bp.post("/audits/<int:audit_id>/approve")
@require_scope
def approve_audit_route(audit_id: int):
    try:
        audit = sales_service.approve_sale_audit(g.scope, audit_id)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve sale audit")
        return {"error": "Internal server error"}, 500
    return {"audit": audit.to_dict()}


@sales_bp.post("/audits/<int:audit_id>/reject")
@require_scope
def reject_audit_route(audit_id: int):
    data = _payload()
    try:
        audit = sales_service.reject_sale_audit(g.scope, audit_id, data.get("rejection_reason"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"audit": audit.to_dict()}

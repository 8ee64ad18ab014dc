# Overview: Flask API routes for expense categories, expenses and deposits.

from flask import Blueprint, request, g

from ..errors import BizDeskError
from ..services import expense_service
from ..decorators import require_scope


finance_bp = Blueprint("finance", __name__, url_prefix="/api")


@finance_bp.get("/expense-categories")
@require_scope
def list_expense_categories_route():
    categories = expense_service.list_expense_categories(g.scope)
    return {"categories": [c.to_dict() for c in categories]}


@finance_bp.post("/expense-categories")
@require_scope
def create_expense_category_route():
    data = request.get_json(silent=True) or {}
    try:
        category = expense_service.create_expense_category(g.scope, data.get("name"), data.get("budget"))
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"category": category.to_dict()}, 201


@finance_bp.patch("/expense-categories/<int:category_id>")
@require_scope
def update_expense_category_route(category_id: int):
    data = request.get_json(silent=True) or {}
    # Only keys present in the body are changed; "budget": null clears it
    changes = {k: data[k] for k in ("name", "budget") if k in data}
    try:
        category = expense_service.update_expense_category(g.scope, category_id, **changes)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"category": category.to_dict()}


@finance_bp.delete("/expense-categories/<int:category_id>")
@require_scope
def delete_expense_category_route(category_id: int):
    try:
        expense_service.delete_expense_category(g.scope, category_id)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"deleted": category_id}


@finance_bp.post("/expenses")
@require_scope
def record_expense_route():
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_service.record_expense(
            g.scope,
            data.get("category"),
            data.get("amount"),
            description=data.get("description"),
            payment_method=data.get("payment_method"),
            spent_at=data.get("spent_at"),
        )
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"expense": expense.to_dict()}, 201


@finance_bp.get("/expenses")
@require_scope
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(
            g.scope,
            start=request.args.get("start"),
            end=request.args.get("end"),
            category=request.args.get("category"),
        )
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"expenses": [x.to_dict() for x in expenses]}


@finance_bp.delete("/expenses/<int:expense_id>")
@require_scope
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(g.scope, expense_id)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"deleted": expense_id}


@finance_bp.post("/deposits")
@require_scope
def record_deposit_route():
    data = request.get_json(silent=True) or {}
    try:
        deposit = expense_service.record_deposit(
            g.scope,
            data.get("amount"),
            bank_name=data.get("bank_name"),
            reference=data.get("reference"),
            deposited_at=data.get("deposited_at"),
        )
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"deposit": deposit.to_dict()}, 201


@finance_bp.get("/deposits")
@require_scope
def list_deposits_route():
    try:
        deposits = expense_service.list_deposits(
            g.scope,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"deposits": [d.to_dict() for d in deposits]}


@finance_bp.delete("/deposits/<int:deposit_id>")
@require_scope
def delete_deposit_route(deposit_id: int):
    try:
        expense_service.delete_deposit(g.scope, deposit_id)
    except BizDeskError as e:
        return e.to_dict(), e.status_code
    return {"deleted": deposit_id}

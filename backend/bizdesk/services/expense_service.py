# Overview: Operating expenses, expense categories and bank deposits read by the profit-and-loss report.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Deposit, Expense, ExpenseCategory
from ..numbers import ZERO, money
from ..scope import Scope, require_scope
from ..validation import optional_text, parse_amount, parse_datetime, require_text
from .tenant_service import get_owned, scoped_query
from bizdesk.time_utils import utcnow

# Marks an argument the caller left out, so None can mean "clear it".
_UNSET = object()


def _positive_money(value, field: str):
    amount = money(parse_amount(value, field))
    if amount <= ZERO:
        raise ValidationError(f"{field} must be > 0")
    return amount


def _optional_budget(value):
    if value is None:
        return None
    return money(parse_amount(value, "budget"))


# =============================================================================
# EXPENSE CATEGORIES
# =============================================================================

def _ensure_category_name_free(scope: Scope, name: str, exclude_id: int | None = None) -> None:
    q = scoped_query(ExpenseCategory, scope).filter(ExpenseCategory.name == name)
    if exclude_id is not None:
        q = q.filter(ExpenseCategory.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Expense category already exists")


def create_expense_category(scope: Scope, name, budget=None) -> ExpenseCategory:
    require_scope(scope)
    name = require_text(name, "name", max_length=120)
    budget = _optional_budget(budget)
    _ensure_category_name_free(scope, name)

    category = ExpenseCategory(account_id=scope.account_id, name=name, budget=budget)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Expense category already exists")
    current_app.logger.info(
        "Expense category created: account=%s category=%s name=%r budget=%s actor=%s",
        scope.account_id, category.id, category.name, category.budget, scope.actor,
    )
    return category


def list_expense_categories(scope: Scope) -> list[ExpenseCategory]:
    return scoped_query(ExpenseCategory, scope).order_by(ExpenseCategory.name.asc()).all()


def update_expense_category(scope: Scope, category_id: int, *, name=_UNSET, budget=_UNSET) -> ExpenseCategory:
    """
    Rename a category and/or change its budget; budget=None clears it.

    A rename carries over to the account's expenses filed under the old name.
    """
    category = get_owned(ExpenseCategory, category_id, scope, label="Expense category")
    if budget is not _UNSET:
        budget = _optional_budget(budget)

    if name is not _UNSET:
        name = require_text(name, "name", max_length=120)
        _ensure_category_name_free(scope, name, exclude_id=category.id)
        if name != category.name:
            scoped_query(Expense, scope).filter(Expense.category == category.name).update(
                {Expense.category: name}, synchronize_session="fetch"
            )
            category.name = name
    if budget is not _UNSET:
        category.budget = budget

    db.session.commit()
    return category


def delete_expense_category(scope: Scope, category_id: int) -> int:
    """Delete a category; expenses keep their category name."""
    category = get_owned(ExpenseCategory, category_id, scope, label="Expense category")
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info(
        "Expense category deleted: account=%s category=%s actor=%s",
        scope.account_id, category_id, scope.actor,
    )
    return category_id


# =============================================================================
# EXPENSES
# =============================================================================

def record_expense(
    scope: Scope,
    category,
    amount,
    *,
    description=None,
    payment_method=None,
    spent_at=None,
) -> Expense:
    require_scope(scope)
    expense = Expense(
        account_id=scope.account_id,
        category=require_text(category, "category", max_length=120),
        amount=_positive_money(amount, "amount"),
        description=optional_text(description, "description"),
        payment_method=optional_text(payment_method, "payment_method", max_length=64),
        recorded_by=scope.actor,
        spent_at=parse_datetime(spent_at, "spent_at") or utcnow(),
    )
    db.session.add(expense)
    db.session.commit()
    current_app.logger.info(
        "Expense recorded: account=%s expense=%s category=%r amount=%s actor=%s",
        scope.account_id, expense.id, expense.category, expense.amount, scope.actor,
    )
    return expense


def list_expenses(scope: Scope, *, start=None, end=None, category: str | None = None) -> list[Expense]:
    start_dt = parse_datetime(start, "start")
    end_dt = parse_datetime(end, "end")

    q = scoped_query(Expense, scope)
    if category is not None:
        q = q.filter(Expense.category == category)
    if start_dt is not None:
        q = q.filter(Expense.spent_at >= start_dt)
    if end_dt is not None:
        q = q.filter(Expense.spent_at <= end_dt)
    return q.order_by(Expense.spent_at.desc(), Expense.id.desc()).all()


def delete_expense(scope: Scope, expense_id: int) -> int:
    expense = get_owned(Expense, expense_id, scope, label="Expense")
    db.session.delete(expense)
    db.session.commit()
    current_app.logger.info(
        "Expense deleted: account=%s expense=%s actor=%s", scope.account_id, expense_id, scope.actor,
    )
    return expense_id


# =============================================================================
# DEPOSITS
# =============================================================================

def record_deposit(scope: Scope, amount, *, bank_name=None, reference=None, deposited_at=None) -> Deposit:
    require_scope(scope)
    deposit = Deposit(
        account_id=scope.account_id,
        amount=_positive_money(amount, "amount"),
        bank_name=optional_text(bank_name, "bank_name", max_length=120),
        reference=optional_text(reference, "reference", max_length=120),
        recorded_by=scope.actor,
        deposited_at=parse_datetime(deposited_at, "deposited_at") or utcnow(),
    )
    db.session.add(deposit)
    db.session.commit()
    current_app.logger.info(
        "Deposit recorded: account=%s deposit=%s amount=%s actor=%s",
        scope.account_id, deposit.id, deposit.amount, scope.actor,
    )
    return deposit


def list_deposits(scope: Scope, *, start=None, end=None) -> list[Deposit]:
    start_dt = parse_datetime(start, "start")
    end_dt = parse_datetime(end, "end")

    q = scoped_query(Deposit, scope)
    if start_dt is not None:
        q = q.filter(Deposit.deposited_at >= start_dt)
    if end_dt is not None:
        q = q.filter(Deposit.deposited_at <= end_dt)
    return q.order_by(Deposit.deposited_at.desc(), Deposit.id.desc()).all()


def delete_deposit(scope: Scope, deposit_id: int) -> int:
    deposit = get_owned(Deposit, deposit_id, scope, label="Deposit")
    db.session.delete(deposit)
    db.session.commit()
    current_app.logger.info(
        "Deposit deleted: account=%s deposit=%s actor=%s", scope.account_id, deposit_id, scope.actor,
    )
    return deposit_id

from __future__ import annotations

from ..extensions import db
from ..numbers import as_float
from bizdesk.time_utils import to_utc_z, utcnow
from .catalog import MONEY


class ExpenseCategory(db.Model):
    """
    Account-scoped expense category with an optional spending budget.

    Expenses carry the category name as text, so a category can be removed
    without touching past expenses.
    """
    __tablename__ = "expense_categories"
    __table_args__ = (
        db.UniqueConstraint("account_id", "name", name="uq_expense_categories_account_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    budget = db.Column(MONEY, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "name": self.name,
            "budget": None if self.budget is None else as_float(self.budget),
            "updated_at": to_utc_z(self.updated_at),
        }


class Expense(db.Model):
    """Operating expense; read by the profit-and-loss report."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_account_spent_at", "account_id", "spent_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    category = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    amount = db.Column(MONEY, nullable=False)
    payment_method = db.Column(db.String(64), nullable=True)
    recorded_by = db.Column(db.String(120), nullable=True)
    spent_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "category": self.category,
            "description": self.description,
            "amount": as_float(self.amount),
            "payment_method": self.payment_method,
            "recorded_by": self.recorded_by,
            "spent_at": to_utc_z(self.spent_at),
        }


class Deposit(db.Model):
    """Cash banked by the business; reported alongside P&L totals."""
    __tablename__ = "deposits"
    __table_args__ = (
        db.Index("ix_deposits_account_deposited_at", "account_id", "deposited_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    amount = db.Column(MONEY, nullable=False)
    bank_name = db.Column(db.String(120), nullable=True)
    reference = db.Column(db.String(120), nullable=True)
    recorded_by = db.Column(db.String(120), nullable=True)
    deposited_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "amount": as_float(self.amount),
            "bank_name": self.bank_name,
            "reference": self.reference,
            "recorded_by": self.recorded_by,
            "deposited_at": to_utc_z(self.deposited_at),
        }

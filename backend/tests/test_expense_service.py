"""
Expense Tests

Expense categories with budgets, expenses, and bank deposits.
"""

from decimal import Decimal

import pytest

from bizdesk.errors import ConflictError, NotFoundError, Unauthorized, ValidationError
from bizdesk.services import expense_service


class TestExpenseCategories:

    def test_create_and_list_sorted(self, db_session, clerk):
        expense_service.create_expense_category(clerk, "Utilities", budget=300)
        expense_service.create_expense_category(clerk, "Fuel")

        categories = expense_service.list_expense_categories(clerk)

        assert [c.name for c in categories] == ["Fuel", "Utilities"]
        assert categories[0].budget is None
        assert categories[1].budget == Decimal("300.00")

    def test_duplicate_name_conflicts(self, db_session, clerk):
        expense_service.create_expense_category(clerk, "Fuel")

        with pytest.raises(ConflictError):
            expense_service.create_expense_category(clerk, " Fuel ")

    @pytest.mark.parametrize("budget", [-1, "plenty"])
    def test_bad_budget_is_rejected(self, db_session, clerk, budget):
        with pytest.raises(ValidationError):
            expense_service.create_expense_category(clerk, "Fuel", budget=budget)

    def test_update_budget_only(self, db_session, clerk):
        fuel = expense_service.create_expense_category(clerk, "Fuel", budget=100)

        updated = expense_service.update_expense_category(clerk, fuel.id, budget=250)

        assert updated.name == "Fuel"
        assert updated.budget == Decimal("250.00")

    def test_budget_none_clears_it(self, db_session, clerk):
        fuel = expense_service.create_expense_category(clerk, "Fuel", budget=100)

        assert expense_service.update_expense_category(clerk, fuel.id, budget=None).budget is None

    def test_rename_moves_expenses(self, db_session, clerk):
        fuel = expense_service.create_expense_category(clerk, "Fuel")
        expense_service.record_expense(clerk, "Fuel", 40)

        expense_service.update_expense_category(clerk, fuel.id, name="Diesel")

        [expense] = expense_service.list_expenses(clerk)
        assert expense.category == "Diesel"

    def test_rename_to_taken_name_conflicts(self, db_session, clerk):
        fuel = expense_service.create_expense_category(clerk, "Fuel")
        expense_service.create_expense_category(clerk, "Rent")

        with pytest.raises(ConflictError):
            expense_service.update_expense_category(clerk, fuel.id, name="Rent")

    def test_delete_keeps_expenses(self, db_session, clerk):
        fuel = expense_service.create_expense_category(clerk, "Fuel")
        expense_service.record_expense(clerk, "Fuel", 40)

        expense_service.delete_expense_category(clerk, fuel.id)

        assert expense_service.list_expense_categories(clerk) == []
        assert [e.category for e in expense_service.list_expenses(clerk)] == ["Fuel"]

    def test_names_are_per_account(self, db_session, clerk, outsider):
        expense_service.create_expense_category(clerk, "Fuel")

        assert expense_service.create_expense_category(outsider, "Fuel").account_id == "globex"
        assert [c.name for c in expense_service.list_expense_categories(outsider)] == ["Fuel"]

    def test_foreign_category_is_refused(self, db_session, clerk, outsider):
        fuel = expense_service.create_expense_category(clerk, "Fuel")

        with pytest.raises(Unauthorized):
            expense_service.update_expense_category(outsider, fuel.id, budget=1)
        with pytest.raises(Unauthorized):
            expense_service.delete_expense_category(outsider, fuel.id)


class TestExpenses:

    def test_record_and_filter(self, db_session, clerk):
        expense_service.record_expense(clerk, "fuel", 25, payment_method="cash")
        expense_service.record_expense(clerk, "rent", 400)

        assert [e.category for e in expense_service.list_expenses(clerk, category="fuel")] == ["fuel"]

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    def test_amount_must_be_positive(self, db_session, clerk, amount):
        with pytest.raises(ValidationError):
            expense_service.record_expense(clerk, "fuel", amount)

    def test_delete_expense(self, db_session, clerk):
        expense = expense_service.record_expense(clerk, "fuel", 25)
        expense_id = expense.id

        assert expense_service.delete_expense(clerk, expense_id) == expense_id
        assert expense_service.list_expenses(clerk) == []

    def test_delete_missing_expense(self, db_session, clerk):
        with pytest.raises(NotFoundError):
            expense_service.delete_expense(clerk, 9999)

    def test_foreign_expense_delete_is_refused(self, db_session, clerk, outsider):
        expense = expense_service.record_expense(clerk, "fuel", 25)

        with pytest.raises(Unauthorized):
            expense_service.delete_expense(outsider, expense.id)
        assert len(expense_service.list_expenses(clerk)) == 1


class TestDeposits:

    def test_delete_deposit(self, db_session, clerk):
        kept = expense_service.record_deposit(clerk, 100, bank_name="First Bank")
        gone = expense_service.record_deposit(clerk, 50)
        gone_id = gone.id

        expense_service.delete_deposit(clerk, gone_id)

        assert [d.id for d in expense_service.list_deposits(clerk)] == [kept.id]

    def test_foreign_deposit_delete_is_refused(self, db_session, clerk, outsider):
        deposit = expense_service.record_deposit(clerk, 100)

        with pytest.raises(Unauthorized):
            expense_service.delete_deposit(outsider, deposit.id)

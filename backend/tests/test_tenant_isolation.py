# Overview: Pytest coverage for account isolation behavior.

"""
Multi-Account Isolation Tests

SECURITY TESTS: Prove that cross-account access is denied for core resources.

Account "acme" owns the product fixture; account "globex" (outsider) must:
1. Get Unauthorized when naming an acme record by id
2. See empty lists and reports rather than acme data
3. Never change acme quantities, even partially

Test Coverage:
- Scope construction
- Products / categories: cross-account read blocked
- Ledger: restock, correction, damage, edit/delete requests blocked
- Approvals: deciding another account's requests blocked
- Sales: recording, reading and paying blocked
"""

from decimal import Decimal

import pytest

from bizdesk.errors import Unauthorized
from bizdesk.scope import Scope, require_scope
from bizdesk.services import (
    approval_service,
    catalog_service,
    ledger_service,
    reporting_service,
    sales_service,
)


class TestScope:
    """Scope is required and explicit."""

    @pytest.mark.parametrize("account_id", ["", "   ", None, 42])
    def test_blank_account_is_refused(self, account_id):
        with pytest.raises(Unauthorized):
            Scope(account_id=account_id)

    def test_services_refuse_missing_scope(self, db_session, product):
        with pytest.raises(Unauthorized):
            ledger_service.record_restock(None, product.id, 1, 0)
        with pytest.raises(Unauthorized):
            require_scope("acme")

    def test_owns(self, clerk, outsider, product):
        assert clerk.owns(product)
        assert not outsider.owns(product)


class TestCatalogIsolation:

    def test_foreign_product_read_is_refused(self, db_session, outsider, product):
        with pytest.raises(Unauthorized):
            catalog_service.get_product(outsider, product.id)

    def test_foreign_lists_are_empty(self, db_session, clerk, outsider, product):
        catalog_service.create_category(clerk, "Frozen")

        assert catalog_service.list_products(outsider) == []
        assert catalog_service.list_categories(outsider) == []

    def test_category_names_are_per_account(self, db_session, clerk, outsider):
        catalog_service.create_category(clerk, "Frozen")
        # Same name under another account is allowed
        assert catalog_service.create_category(outsider, "Frozen").account_id == "globex"


class TestLedgerIsolation:

    @pytest.mark.parametrize("call", [
        lambda s, pid: ledger_service.record_restock(s, pid, 5, 0),
        lambda s, pid: ledger_service.record_correction(s, pid, -5, 0, "wipe"),
        lambda s, pid: ledger_service.record_damage(s, pid, 5, 0, "wipe"),
        lambda s, pid: ledger_service.request_edit(s, pid, {"price_per_box": 1}, "cheap"),
        lambda s, pid: ledger_service.request_delete(s, pid, "gone"),
        lambda s, pid: ledger_service.list_movements(s, product_id=pid),
    ])
    def test_foreign_ledger_operations_are_refused(self, db_session, outsider, product, call):
        with pytest.raises(Unauthorized):
            call(outsider, product.id)

        db_session.refresh(product)
        assert product.quantity_box == Decimal("10")
        assert ledger_service.list_movements(Scope("acme")) == []


class TestApprovalIsolation:

    def test_foreign_edit_approval_is_refused(self, db_session, clerk, outsider, product):
        [movement] = ledger_service.request_edit(clerk, product.id, {"price_per_box": 1}, "cheap")

        with pytest.raises(Unauthorized):
            approval_service.approve_edit(outsider, movement.id, product.id)

        db_session.refresh(product)
        assert product.price_per_box == Decimal("70")

    def test_foreign_damage_decisions_are_refused(self, db_session, clerk, outsider, product):
        damage = ledger_service.record_damage(clerk, product.id, 2, 0, "thawed")

        with pytest.raises(Unauthorized):
            approval_service.approve_damage(outsider, damage.id)
        with pytest.raises(Unauthorized):
            approval_service.reject_damage(outsider, damage.id)

        db_session.refresh(product)
        assert product.quantity_box == Decimal("10")


class TestSalesIsolation:

    def test_foreign_sale_operations_are_refused(self, db_session, clerk, outsider, product):
        sale = sales_service.record_sale(clerk, product.id, "c-1", "Mama Ada", 1, 0)

        with pytest.raises(Unauthorized):
            sales_service.record_sale(outsider, product.id, "c-9", "Eve", 1, 0)
        with pytest.raises(Unauthorized):
            sales_service.get_sale(outsider, sale.id)
        with pytest.raises(Unauthorized):
            sales_service.request_sale_delete(outsider, sale.id, "mine now")

    def test_debtors_are_per_account(self, db_session, clerk, outsider, product):
        sales_service.record_sale(clerk, product.id, "c-1", "Mama Ada", 1, 0)

        assert reporting_service.debtor_report(outsider).rows == ()
        assert sales_service.list_sales(outsider) == []

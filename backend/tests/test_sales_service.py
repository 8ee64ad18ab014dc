"""
Sales Tests

Product fixture prices: 70 per box, 3.5 per kg; profit 20 per box, 1 per kg.
"""

from decimal import Decimal

import pytest

from bizdesk.errors import ConflictError, InvalidStateError, NotFoundError, Unauthorized, ValidationError
from bizdesk.models import Sale, SalePayment
from bizdesk.services import approval_service, ledger_service, sales_service


def _sell(scope, product, boxes, kg=0, paid=0, client="c-1", sold_at=None):
    return sales_service.record_sale(
        scope, product.id, client, "Mama Ada", boxes, kg, paid, "cash", sold_at=sold_at,
    )


class TestRecordSale:

    def test_sale_decrements_stock_and_snapshots_prices(self, db_session, clerk, product):
        sale = _sell(clerk, product, 3, paid=210)

        assert sale.total_amount == Decimal("210.00")
        assert sale.remaining_amount == Decimal("0.00")
        assert sale.payment_status == "completed"
        assert sale.box_price == Decimal("70")
        assert sale.profit_per_box == Decimal("20")
        assert sale.sold_by == "clerk"

        db_session.refresh(product)
        assert product.quantity_box == Decimal("7")
        assert product.quantity_kg == Decimal("200")

    @pytest.mark.parametrize("paid,status", [(0, "pending"), (50, "partial"), (70, "completed")])
    def test_payment_status(self, db_session, clerk, product, paid, status):
        sale = _sell(clerk, product, 1, paid=paid)
        assert sale.payment_status == status

    def test_overpayment_is_rejected(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            _sell(clerk, product, 1, paid=100)

        db_session.refresh(product)
        assert product.quantity_box == Decimal("10")
        assert db_session.query(Sale).count() == 0

    def test_insufficient_stock(self, db_session, clerk, product):
        with pytest.raises(ValidationError, match="Insufficient stock"):
            _sell(clerk, product, 11)

    def test_kg_sale_uses_per_kg_price(self, db_session, clerk, product):
        sale = _sell(clerk, product, 0, kg=4)

        assert sale.total_amount == Decimal("14.00")
        db_session.refresh(product)
        assert product.quantity_kg == Decimal("196")

    def test_client_is_required(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            sales_service.record_sale(clerk, product.id, "", "Nobody", 1, 0)

    def test_price_snapshot_survives_later_edit(self, db_session, clerk, manager, product):
        sale = _sell(clerk, product, 1)
        [movement] = ledger_service.request_edit(clerk, product.id, {"price_per_box": 80}, "raise")
        approval_service.approve_edit(manager, movement.id, product.id)

        db_session.refresh(sale)
        assert sale.box_price == Decimal("70")
        assert sale.total_amount == Decimal("70.00")

    def test_list_sales_filters(self, db_session, clerk, product):
        _sell(clerk, product, 1, client="c-1")
        _sell(clerk, product, 1, paid=70, client="c-2")

        assert len(sales_service.list_sales(clerk)) == 2
        assert len(sales_service.list_sales(clerk, client_id="c-1")) == 1
        assert len(sales_service.list_sales(clerk, payment_status="completed")) == 1


class TestDebtorPayments:

    @pytest.fixture
    def two_debts(self, db_session, clerk, product):
        """Remaining 30.00 on the older sale, 45.50 on the newer one."""
        older = _sell(clerk, product, 1, paid=40, sold_at="2026-01-01T09:00:00Z")
        newer = _sell(clerk, product, 1, kg=1, paid=28, sold_at="2026-01-02T09:00:00Z")
        return older, newer

    def test_payment_allocates_oldest_first(self, db_session, clerk, two_debts):
        older, newer = two_debts

        payments = sales_service.process_debtor_payment(clerk, "c-1", 50, "mobile")

        assert [(p.sale_id, p.amount) for p in payments] == [
            (older.id, Decimal("30.00")),
            (newer.id, Decimal("20.00")),
        ]
        db_session.refresh(older)
        db_session.refresh(newer)
        assert older.payment_status == "completed"
        assert older.remaining_amount == Decimal("0")
        assert newer.payment_status == "partial"
        assert newer.remaining_amount == Decimal("25.50")

    def test_payment_covering_everything(self, db_session, clerk, two_debts):
        sales_service.process_debtor_payment(clerk, "c-1", "75.50")

        assert sales_service.list_sales(clerk, payment_status="completed") != []
        assert sales_service.list_sales(clerk, payment_status="partial") == []
        assert db_session.query(SalePayment).count() == 2

    def test_payment_above_debt_is_rejected(self, db_session, clerk, two_debts):
        with pytest.raises(ValidationError, match="exceeds"):
            sales_service.process_debtor_payment(clerk, "c-1", 80)
        assert db_session.query(SalePayment).count() == 0

    @pytest.mark.parametrize("amount", [0, -5, "0.001"])
    def test_non_positive_payment_is_rejected(self, db_session, clerk, two_debts, amount):
        with pytest.raises(ValidationError):
            sales_service.process_debtor_payment(clerk, "c-1", amount)

    def test_client_without_debt(self, db_session, clerk, product):
        _sell(clerk, product, 1, paid=70)

        with pytest.raises(NotFoundError):
            sales_service.process_debtor_payment(clerk, "c-1", 10)

    def test_payments_are_listed_per_client(self, db_session, clerk, two_debts):
        sales_service.process_debtor_payment(clerk, "c-1", 10)

        assert len(sales_service.list_sale_payments(clerk, client_id="c-1")) == 1
        assert sales_service.list_sale_payments(clerk, client_id="c-2") == []


class TestSaleAudits:

    def test_approved_edit_moves_stock_by_difference(self, db_session, clerk, manager, product):
        sale = _sell(clerk, product, 3)
        audit = sales_service.request_sale_edit(clerk, sale.id, 5, 0, "miscounted")

        db_session.refresh(product)
        assert product.quantity_box == Decimal("7")

        sales_service.approve_sale_audit(manager, audit.id)

        db_session.refresh(product)
        db_session.refresh(sale)
        assert product.quantity_box == Decimal("5")
        assert sale.boxes_quantity == Decimal("5")
        assert sale.total_amount == Decimal("350.00")
        assert sale.remaining_amount == Decimal("350.00")

    def test_edit_below_amount_paid_is_rejected(self, db_session, clerk, manager, product):
        sale = _sell(clerk, product, 3, paid=210)
        audit = sales_service.request_sale_edit(clerk, sale.id, 1, 0, "returned two")

        with pytest.raises(ValidationError):
            sales_service.approve_sale_audit(manager, audit.id)

        db_session.refresh(product)
        assert product.quantity_box == Decimal("7")

    def test_approved_delete_restores_stock(self, db_session, clerk, manager, product):
        sale_id = _sell(clerk, product, 3).id
        audit = sales_service.request_sale_delete(clerk, sale_id, "entered twice")

        decided = sales_service.approve_sale_audit(manager, audit.id)

        assert decided.approval_status == "approved"
        assert db_session.get(Sale, sale_id) is None
        db_session.refresh(product)
        assert product.quantity_box == Decimal("10")

    def test_one_pending_request_per_sale(self, db_session, clerk, product):
        sale = _sell(clerk, product, 1)
        sales_service.request_sale_delete(clerk, sale.id, "mistake")

        with pytest.raises(ConflictError):
            sales_service.request_sale_edit(clerk, sale.id, 2, 0, "actually two")

    def test_unchanged_edit_is_rejected(self, db_session, clerk, product):
        sale = _sell(clerk, product, 1)

        with pytest.raises(ValidationError, match="No changes"):
            sales_service.request_sale_edit(clerk, sale.id, 1, 0, "same")

    def test_requester_cannot_approve_own_audit(self, db_session, clerk, product):
        sale = _sell(clerk, product, 1)
        audit = sales_service.request_sale_delete(clerk, sale.id, "mistake")

        with pytest.raises(Unauthorized):
            sales_service.approve_sale_audit(clerk, audit.id)

    def test_rejected_audit_is_terminal(self, db_session, clerk, manager, product):
        sale = _sell(clerk, product, 1)
        audit = sales_service.request_sale_delete(clerk, sale.id, "mistake")
        sales_service.reject_sale_audit(manager, audit.id, "keep it")

        with pytest.raises(InvalidStateError):
            sales_service.approve_sale_audit(manager, audit.id)

        assert sales_service.list_sale_audits(manager, status="rejected")[0].rejection_reason == "keep it"
        assert db_session.get(Sale, sale.id) is not None

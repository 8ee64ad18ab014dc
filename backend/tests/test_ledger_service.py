# Overview: Pytest coverage for the stock ledger (restock, correction, damage, edit/delete requests).

"""
Stock Ledger Tests

Direct movements (restock, correction) change the product at once and leave
a completed movement; gated movements (damage, edit, delete) leave the
product untouched and a pending movement behind.
"""

from decimal import Decimal

import pytest

from bizdesk.errors import IntegrityFault, NotFoundError, ValidationError
from bizdesk.models import (
    DamageRecord,
    Product,
    ProductEditMovement,
    RestockRecord,
    StockMovement,
)
from bizdesk.services import ledger_service


def _movements(db_session, product_id):
    return db_session.query(StockMovement).filter_by(product_id=product_id).all()


class TestRestock:

    def test_restock_increments_and_records_completed_movement(self, db_session, clerk, product):
        record = ledger_service.record_restock(clerk, product.id, 5, 0)

        db_session.refresh(product)
        assert product.quantity_box == Decimal("15")
        assert product.quantity_kg == Decimal("200")

        movements = _movements(db_session, product.id)
        assert len(movements) == 1
        assert movements[0].movement_type == "restock"
        assert movements[0].status == "completed"
        assert movements[0].restock_id == record.id
        assert movements[0].performed_by == "clerk"

    def test_restock_total_cost_uses_current_cost_fields(self, db_session, clerk, product):
        # 2 boxes * 50 + 10 kg * 2.5
        record = ledger_service.record_restock(clerk, product.id, 2, 10)
        assert record.total_cost == Decimal("125.00")

    def test_restock_with_expiry_updates_product(self, db_session, clerk, product):
        ledger_service.record_restock(clerk, product.id, 1, 0, expiry_date="2099-01-01")

        db_session.refresh(product)
        assert product.expiry_date.year == 2099
        assert product.days_left > 0

    @pytest.mark.parametrize("boxes,kg", [(0, 0), (-1, 5), (True, 0), ("abc", 1), (float("nan"), 0)])
    def test_restock_rejects_bad_quantities(self, db_session, clerk, product, boxes, kg):
        with pytest.raises(ValidationError):
            ledger_service.record_restock(clerk, product.id, boxes, kg)

        db_session.refresh(product)
        assert product.quantity_box == Decimal("10")
        assert db_session.query(RestockRecord).count() == 0
        assert _movements(db_session, product.id) == []

    def test_restock_accepts_numeric_strings(self, db_session, clerk, product):
        ledger_service.record_restock(clerk, product.id, "2.5", "50")

        db_session.refresh(product)
        assert product.quantity_box == Decimal("12.5")
        assert product.quantity_kg == Decimal("250")

    def test_restock_unknown_product(self, db_session, clerk):
        with pytest.raises(NotFoundError):
            ledger_service.record_restock(clerk, 9999, 1, 0)


class TestCorrection:

    def test_correction_applies_signed_adjustment(self, db_session, clerk, product):
        movement = ledger_service.record_correction(clerk, product.id, -2, -40, "stock count")

        db_session.refresh(product)
        assert product.quantity_box == Decimal("8")
        assert product.quantity_kg == Decimal("160")
        assert movement.status == "completed"
        assert movement.movement_type == "correction"
        assert movement.box_change == Decimal("-2")

    def test_correction_requires_reason(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            ledger_service.record_correction(clerk, product.id, 1, 0, "   ")

    def test_correction_requires_nonzero_adjustment(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            ledger_service.record_correction(clerk, product.id, 0, 0, "nothing")

    def test_correction_below_zero_is_integrity_fault(self, db_session, clerk, product):
        with pytest.raises(IntegrityFault):
            ledger_service.record_correction(clerk, product.id, -11, 0, "too much")

        db_session.refresh(product)
        assert product.quantity_box == Decimal("10")
        assert _movements(db_session, product.id) == []


class TestDamage:

    def test_damage_is_pending_and_leaves_stock(self, db_session, clerk, product):
        damage = ledger_service.record_damage(clerk, product.id, 2, 0, "thawed in transit")

        db_session.refresh(product)
        assert product.quantity_box == Decimal("10")
        assert damage.damage_approval == "pending"
        assert damage.loss_value == Decimal("100.00")

        movement = damage.movement
        assert movement.status == "pending"
        assert movement.box_change == Decimal("-2")
        assert movement.damage_id == damage.id

    def test_damage_requires_reason(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            ledger_service.record_damage(clerk, product.id, 1, 0, "")
        assert db_session.query(DamageRecord).count() == 0


class TestEditRequests:

    def test_one_pending_movement_per_changed_field(self, db_session, clerk, product):
        movements = ledger_service.request_edit(
            clerk,
            product.id,
            {"price_per_box": 80, "name": "Tilapia (frozen)", "cost_per_box": 50},
            "supplier update",
        )

        # cost_per_box is unchanged and skipped
        assert sorted(m.field_changed for m in movements) == ["name", "price_per_box"]
        assert all(m.status == "pending" for m in movements)

        price = next(m for m in movements if m.field_changed == "price_per_box")
        assert price.old_value == "70"
        assert price.new_value == "80"

        db_session.refresh(product)
        assert product.price_per_box == Decimal("70")

    def test_no_differing_field_is_rejected(self, db_session, clerk, product):
        with pytest.raises(ValidationError, match="No changes"):
            ledger_service.request_edit(clerk, product.id, {"price_per_box": "70.00"}, "same")
        assert db_session.query(ProductEditMovement).count() == 0

    def test_unknown_field_is_rejected(self, db_session, clerk, product):
        with pytest.raises(ValidationError, match="not editable"):
            ledger_service.request_edit(clerk, product.id, {"quantity_box": 99}, "sneaky")

    def test_zero_ratio_is_rejected(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            ledger_service.request_edit(clerk, product.id, {"box_to_kg_ratio": 0}, "bad ratio")


class TestDeleteRequests:

    def test_delete_request_records_write_off(self, db_session, clerk, product):
        movement = ledger_service.request_delete(clerk, product.id, "discontinued")

        assert movement.status == "pending"
        assert movement.old_value == "10"
        assert movement.new_value == "0"
        assert movement.box_change == Decimal("-10")
        assert movement.kg_change == Decimal("-200")

        db_session.refresh(product)
        assert product.deleted_at is None

    def test_delete_request_requires_reason(self, db_session, clerk, product):
        with pytest.raises(ValidationError):
            ledger_service.request_delete(clerk, product.id, None)


class TestReads:

    def test_list_movements_filters(self, db_session, clerk, product):
        ledger_service.record_restock(clerk, product.id, 1, 0)
        ledger_service.record_damage(clerk, product.id, 1, 0, "crushed")

        pending = ledger_service.list_movements(clerk, status="pending")
        assert [m.movement_type for m in pending] == ["damage"]

        restocks = ledger_service.list_movements(clerk, movement_type="restock")
        assert len(restocks) == 1

        assert len(ledger_service.list_movements(clerk, product_id=product.id, limit=1)) == 1

    def test_list_movements_rejects_unknown_filter(self, db_session, clerk):
        with pytest.raises(ValidationError):
            ledger_service.list_movements(clerk, status="done")
        with pytest.raises(ValidationError):
            ledger_service.list_movements(clerk, movement_type="sale")

    def test_list_restocks_and_damages(self, db_session, clerk, product):
        ledger_service.record_restock(clerk, product.id, 1, 0)
        ledger_service.record_damage(clerk, product.id, 0, 3, "leak")

        assert len(ledger_service.list_restocks(clerk, product_id=product.id)) == 1
        assert len(ledger_service.list_damages(clerk, approval="pending")) == 1
        assert ledger_service.list_damages(clerk, approval="approved") == []

    def test_deleted_product_cannot_be_restocked(self, db_session, clerk, product):
        product.deleted_at = product.created_at
        db_session.commit()

        with pytest.raises(NotFoundError):
            ledger_service.record_restock(clerk, product.id, 1, 0)
        assert db_session.get(Product, product.id).quantity_box == Decimal("10")

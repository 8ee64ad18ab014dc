"""
Catalog Tests

Product master data and categories; quantities after creation belong to the
stock ledger and are covered in test_ledger_service.py.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from bizdesk.errors import ConflictError, NotFoundError, ValidationError
from bizdesk.services import catalog_service
from bizdesk.time_utils import utcnow


class TestCategories:

    def test_create_and_list_sorted(self, db_session, clerk):
        catalog_service.create_category(clerk, "Poultry")
        catalog_service.create_category(clerk, "Fish")

        assert [c.name for c in catalog_service.list_categories(clerk)] == ["Fish", "Poultry"]

    def test_duplicate_name_conflicts(self, db_session, clerk):
        catalog_service.create_category(clerk, "Fish")

        with pytest.raises(ConflictError):
            catalog_service.create_category(clerk, " Fish ")

    def test_rename(self, db_session, clerk):
        fish = catalog_service.create_category(clerk, "Fish")
        catalog_service.create_category(clerk, "Poultry")

        assert catalog_service.rename_category(clerk, fish.id, "Seafood").name == "Seafood"
        with pytest.raises(ConflictError):
            catalog_service.rename_category(clerk, fish.id, "Poultry")

    def test_delete_detaches_products(self, db_session, clerk):
        fish = catalog_service.create_category(clerk, "Fish")
        product = catalog_service.create_product(
            clerk, name="Tilapia", box_to_kg_ratio=20, category_id=fish.id,
        )

        catalog_service.delete_category(clerk, fish.id)

        db_session.refresh(product)
        assert product.category_id is None
        assert catalog_service.list_categories(clerk) == []

    def test_blank_name_is_rejected(self, db_session, clerk):
        with pytest.raises(ValidationError):
            catalog_service.create_category(clerk, "  ")


class TestCreateProduct:

    def test_derived_fields(self, db_session, product):
        assert product.quantity_kg == Decimal("200")
        assert product.cost_per_kg == Decimal("2.5")
        assert product.price_per_kg == Decimal("3.5")
        assert product.profit_per_box == Decimal("20")
        assert product.profit_per_kg == Decimal("1")
        assert product.deleted_at is None

    def test_explicit_kg_overrides_ratio(self, db_session, clerk):
        product = catalog_service.create_product(
            clerk, name="Offcuts", box_to_kg_ratio=20, quantity_box=2, quantity_kg=35,
        )
        assert product.quantity_kg == Decimal("35")

    @pytest.mark.parametrize("overrides", [
        {"box_to_kg_ratio": 0},
        {"box_to_kg_ratio": -1},
        {"cost_per_box": -5},
        {"quantity_box": "lots"},
        {"name": ""},
    ])
    def test_invalid_products_are_rejected(self, db_session, clerk, overrides):
        fields = {"name": "Tilapia", "box_to_kg_ratio": 20, **overrides}
        with pytest.raises(ValidationError):
            catalog_service.create_product(clerk, **fields)

    def test_unknown_category(self, db_session, clerk):
        with pytest.raises(NotFoundError):
            catalog_service.create_product(clerk, name="Tilapia", box_to_kg_ratio=20, category_id=999)


class TestStockAlerts:

    def test_low_stock_uses_default_and_explicit_thresholds(self, db_session, clerk, product):
        low = catalog_service.create_product(clerk, name="Sardines", box_to_kg_ratio=10, quantity_box=3)
        custom = catalog_service.create_product(
            clerk, name="Prawns", box_to_kg_ratio=5, quantity_box=8, low_stock_threshold=10,
        )

        ids = {p.id for p in catalog_service.list_low_stock(clerk)}

        assert ids == {low.id, custom.id}

    def test_expiring_window(self, db_session, clerk):
        now = utcnow()
        soon = catalog_service.create_product(
            clerk, name="Hake", box_to_kg_ratio=10, expiry_date=now + timedelta(days=10),
        )
        expired = catalog_service.create_product(
            clerk, name="Croaker", box_to_kg_ratio=10, expiry_date=now - timedelta(days=1),
        )
        catalog_service.create_product(
            clerk, name="Salmon", box_to_kg_ratio=10, expiry_date=now + timedelta(days=90),
        )

        expiring = catalog_service.list_expiring(clerk, within_days=30)

        assert [p.id for p in expiring] == [expired.id, soon.id]
        assert soon.days_left == 10

    def test_negative_window_is_rejected(self, db_session, clerk):
        with pytest.raises(ValidationError):
            catalog_service.list_expiring(clerk, within_days=-1)

    def test_refresh_days_left(self, db_session, clerk):
        product = catalog_service.create_product(
            clerk, name="Hake", box_to_kg_ratio=10, expiry_date=utcnow() + timedelta(days=3),
        )
        product.days_left = 99
        db_session.commit()

        assert catalog_service.refresh_days_left(clerk) == 1
        db_session.refresh(product)
        assert product.days_left == 3

    def test_stock_value(self, db_session, product):
        assert catalog_service.stock_value(product) == Decimal("500")

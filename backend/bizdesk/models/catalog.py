from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..numbers import ZERO, as_float, unit_price
from bizdesk.time_utils import days_until, to_utc_z, utcnow

# Shared column types: quantities (boxes/kg), per-unit money, totals
QUANTITY = db.Numeric(14, 3)
UNIT_MONEY = db.Numeric(14, 4)
MONEY = db.Numeric(14, 2)


class ProductCategory(db.Model):
    """
    Account-scoped product category.

    Names are unique per account: UniqueConstraint("account_id", "name").
    """
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("account_id", "name", name="uq_product_categories_account_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ProductCategory id={self.id} name={self.name!r} account_id={self.account_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "name": self.name,
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Live product snapshot (current boxes/kg on hand plus pricing).

    MULTI-TENANT: Products are scoped to the owning business account via account_id.

    QUANTITY DESIGN DECISION:
    quantity_box / quantity_kg are a stored snapshot, mutated by the stock
    ledger (restock, correction, approved damage), by an approved edit, and by
    sales (recording a sale, approving a sale edit or delete). Ledger and
    approval changes are explained by a StockMovement row; sale changes by the
    Sale and its SaleAudit rows.
    - Steady state: quantity_kg == quantity_box * box_to_kg_ratio
    - Partial-unit movements may make the two diverge transiently.

    PRICING:
    - cost/price are entered per box; per-kg values are derived via the ratio.
    - profit_per_* = price_per_* - cost_per_*
    Call recompute_derived() after any change to ratio, cost or price.

    DELETION:
    An approved product_delete sets deleted_at. The row stays so that ledger,
    sale and damage history keep a valid product reference.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_account_name", "account_id", "name"),
        db.Index("ix_products_account_deleted", "account_id", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    quantity_box = db.Column(QUANTITY, nullable=False, default=ZERO)
    quantity_kg = db.Column(QUANTITY, nullable=False, default=ZERO)
    box_to_kg_ratio = db.Column(QUANTITY, nullable=False)

    cost_per_box = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    cost_per_kg = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    price_per_box = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    price_per_kg = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    profit_per_box = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    profit_per_kg = db.Column(UNIT_MONEY, nullable=False, default=ZERO)

    # Boxes; None falls back to LOW_STOCK_THRESHOLD_DEFAULT
    low_stock_threshold = db.Column(QUANTITY, nullable=True)

    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    days_left = db.Column(db.Integer, nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} account_id={self.account_id!r}>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def recompute_derived(self) -> None:
        ratio = Decimal(self.box_to_kg_ratio)
        cost_box = Decimal(self.cost_per_box or ZERO)
        price_box = Decimal(self.price_per_box or ZERO)

        self.cost_per_kg = unit_price(cost_box / ratio)
        self.price_per_kg = unit_price(price_box / ratio)
        self.profit_per_box = unit_price(price_box - cost_box)
        self.profit_per_kg = unit_price(self.price_per_kg - self.cost_per_kg)

    def refresh_days_left(self, now=None) -> None:
        self.days_left = days_until(self.expiry_date, now)

    def is_low_stock(self, default_threshold) -> bool:
        threshold = self.low_stock_threshold
        if threshold is None:
            threshold = default_threshold
        return Decimal(self.quantity_box) <= Decimal(threshold)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "category_id": self.category_id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "quantity_box": as_float(self.quantity_box),
            "quantity_kg": as_float(self.quantity_kg),
            "box_to_kg_ratio": as_float(self.box_to_kg_ratio),
            "cost_per_box": as_float(self.cost_per_box),
            "cost_per_kg": as_float(self.cost_per_kg),
            "price_per_box": as_float(self.price_per_box),
            "price_per_kg": as_float(self.price_per_kg),
            "profit_per_box": as_float(self.profit_per_box),
            "profit_per_kg": as_float(self.profit_per_kg),
            "low_stock_threshold": as_float(self.low_stock_threshold),
            "expiry_date": to_utc_z(self.expiry_date),
            "days_left": self.days_left,
            "deleted_at": to_utc_z(self.deleted_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

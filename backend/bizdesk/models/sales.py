from __future__ import annotations

from ..extensions import db
from ..numbers import ZERO, as_float
from bizdesk.time_utils import to_utc_z, utcnow
from .catalog import MONEY, QUANTITY, UNIT_MONEY

PAYMENT_PENDING = "pending"
PAYMENT_PARTIAL = "partial"
PAYMENT_COMPLETED = "completed"

AUDIT_EDIT = "edit"
AUDIT_DELETE = "delete"

AUDIT_PENDING = "pending"
AUDIT_APPROVED = "approved"
AUDIT_REJECTED = "rejected"


class Sale(db.Model):
    """
    A single-product sale to a client.

    Prices and per-unit profits are snapshotted from the product when the sale
    is recorded so later price edits never rewrite historical revenue/profit.

    Payment tracking:
    - remaining_amount = total_amount - amount_paid
    - payment_status: pending (nothing paid), partial, completed (fully paid)
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_account_sold_at", "account_id", "sold_at"),
        db.Index("ix_sales_account_client_status", "account_id", "client_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    client_id = db.Column(db.String(64), nullable=False)
    client_name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(64), nullable=True)

    boxes_quantity = db.Column(QUANTITY, nullable=False, default=ZERO)
    kg_quantity = db.Column(QUANTITY, nullable=False, default=ZERO)

    box_price = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    kg_price = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    profit_per_box = db.Column(UNIT_MONEY, nullable=False, default=ZERO)
    profit_per_kg = db.Column(UNIT_MONEY, nullable=False, default=ZERO)

    total_amount = db.Column(MONEY, nullable=False, default=ZERO)
    amount_paid = db.Column(MONEY, nullable=False, default=ZERO)
    remaining_amount = db.Column(MONEY, nullable=False, default=ZERO)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)
    payment_method = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sold_by = db.Column(db.String(120), nullable=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} product_id={self.product_id} client_id={self.client_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "product_id": self.product_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "phone_number": self.phone_number,
            "boxes_quantity": as_float(self.boxes_quantity),
            "kg_quantity": as_float(self.kg_quantity),
            "box_price": as_float(self.box_price),
            "kg_price": as_float(self.kg_price),
            "profit_per_box": as_float(self.profit_per_box),
            "profit_per_kg": as_float(self.profit_per_kg),
            "total_amount": as_float(self.total_amount),
            "amount_paid": as_float(self.amount_paid),
            "remaining_amount": as_float(self.remaining_amount),
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "sold_by": self.sold_by,
            "sold_at": to_utc_z(self.sold_at),
        }


class SalePayment(db.Model):
    """
    Money received against a sale after the fact (debtor payments).

    Append-only; one row per sale an incoming payment was allocated to.
    sale_id is kept as a plain integer so payment history survives an
    approved sale deletion.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    sale_id = db.Column(db.Integer, nullable=False, index=True)
    client_id = db.Column(db.String(64), nullable=False, index=True)

    amount = db.Column(MONEY, nullable=False)
    payment_method = db.Column(db.String(64), nullable=True)
    received_by = db.Column(db.String(120), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "sale_id": self.sale_id,
            "client_id": self.client_id,
            "amount": as_float(self.amount),
            "payment_method": self.payment_method,
            "received_by": self.received_by,
            "paid_at": to_utc_z(self.paid_at),
        }


class SaleAudit(db.Model):
    """
    Pending edit/delete request on a sale.

    Parallels StockMovement for products: the request is a fact, the effect is
    applied only when approved, and approval_status leaves 'pending' once.
    """
    __tablename__ = "sale_audits"
    __table_args__ = (
        db.Index("ix_sale_audits_account_status", "account_id", "approval_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    sale_id = db.Column(db.Integer, nullable=False, index=True)
    audit_type = db.Column(db.String(16), nullable=False)

    boxes_before = db.Column(QUANTITY, nullable=True)
    boxes_after = db.Column(QUANTITY, nullable=True)
    kg_before = db.Column(QUANTITY, nullable=True)
    kg_after = db.Column(QUANTITY, nullable=True)

    reason = db.Column(db.String(500), nullable=False)
    approval_status = db.Column(db.String(16), nullable=False, default=AUDIT_PENDING, index=True)

    requested_by = db.Column(db.String(120), nullable=True)
    decided_by = db.Column(db.String(120), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_pending(self) -> bool:
        return self.approval_status == AUDIT_PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "sale_id": self.sale_id,
            "audit_type": self.audit_type,
            "boxes_change": {"before": as_float(self.boxes_before), "after": as_float(self.boxes_after)},
            "kg_change": {"before": as_float(self.kg_before), "after": as_float(self.kg_after)},
            "reason": self.reason,
            "approval_status": self.approval_status,
            "requested_by": self.requested_by,
            "decided_by": self.decided_by,
            "decided_at": to_utc_z(self.decided_at),
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
        }

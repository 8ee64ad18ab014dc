from __future__ import annotations

from decimal import Decimal

from ..errors import ValidationError
from ..extensions import db
from ..numbers import ZERO, as_float
from bizdesk.time_utils import to_utc_z, utcnow
from .catalog import MONEY, QUANTITY

"""
Stock ledger invariants (authoritative)

- Every quantity- or attribute-affecting event against a product is a StockMovement.
- A movement is immutable once created except for its decision fields
  (status, decided_by, decided_at, rejection_reason).
- status leaves 'pending' at most once; 'completed' and 'rejected' are terminal.
- restock and correction are applied immediately and are born 'completed'.
- damage, product_edit and product_delete are born 'pending' and only take
  effect when approved (see services/approval_service.py).
"""

MOVEMENT_PENDING = "pending"
MOVEMENT_COMPLETED = "completed"
MOVEMENT_REJECTED = "rejected"
MOVEMENT_STATUSES = {MOVEMENT_PENDING, MOVEMENT_COMPLETED, MOVEMENT_REJECTED}

DAMAGE_PENDING = "pending"
DAMAGE_APPROVED = "approved"
DAMAGE_REJECTED = "rejected"


class StockMovement(db.Model):
    """
    Append-only ledger entry; one subclass per movement_type.

    Single-table inheritance on movement_type gives each kind its own
    REQUIRED_FIELDS set, checked by check_required_fields() before insert.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_account_product_created", "account_id", "product_id", "created_at"),
        db.Index("ix_movements_account_status", "account_id", "status"),
        {"sqlite_autoincrement": True},
    )

    MOVEMENT_TYPE = ""
    REQUIRED_FIELDS = ()
    # True when the effect is applied at creation time (no approval gate)
    APPLIES_IMMEDIATELY = False

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)

    box_change = db.Column(QUANTITY, nullable=False, default=ZERO)
    kg_change = db.Column(QUANTITY, nullable=False, default=ZERO)

    # product_edit / product_delete only
    field_changed = db.Column(db.String(64), nullable=True)
    old_value = db.Column(db.String(255), nullable=True)
    new_value = db.Column(db.String(255), nullable=True)

    reason = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=MOVEMENT_PENDING, index=True)

    performed_by = db.Column(db.String(120), nullable=True)
    decided_by = db.Column(db.String(120), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    restock_id = db.Column(db.Integer, db.ForeignKey("restock_records.id"), nullable=True)
    damage_id = db.Column(db.Integer, db.ForeignKey("damage_records.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))
    restock = db.relationship("RestockRecord", backref=db.backref("movement", uselist=False))
    damage = db.relationship("DamageRecord", backref=db.backref("movement", uselist=False))

    __mapper_args__ = {
        "polymorphic_on": movement_type,
        "version_id_col": version_id,
    }

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.id} product_id={self.product_id} "
            f"status={self.status!r}>"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == MOVEMENT_PENDING

    def check_required_fields(self) -> None:
        missing = []
        for name in self.REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        if missing:
            raise ValidationError(
                f"{self.MOVEMENT_TYPE} movement missing required fields: {', '.join(missing)}"
            )

    def mark_decided(self, status: str, *, actor: str | None, at, rejection_reason: str | None = None) -> None:
        """The only mutation allowed on a persisted movement."""
        self.status = status
        self.decided_by = actor
        self.decided_at = at
        if rejection_reason is not None:
            self.rejection_reason = rejection_reason

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "box_change": as_float(self.box_change),
            "kg_change": as_float(self.kg_change),
            "field_changed": self.field_changed,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "reason": self.reason,
            "status": self.status,
            "performed_by": self.performed_by,
            "decided_by": self.decided_by,
            "decided_at": to_utc_z(self.decided_at),
            "rejection_reason": self.rejection_reason,
            "restock_id": self.restock_id,
            "damage_id": self.damage_id,
            "created_at": to_utc_z(self.created_at),
        }


class RestockMovement(StockMovement):
    MOVEMENT_TYPE = "restock"
    REQUIRED_FIELDS = ("product_id", "box_change", "kg_change", "restock_id")
    APPLIES_IMMEDIATELY = True
    __mapper_args__ = {"polymorphic_identity": "restock"}


class CorrectionMovement(StockMovement):
    MOVEMENT_TYPE = "correction"
    REQUIRED_FIELDS = ("product_id", "box_change", "kg_change", "reason")
    APPLIES_IMMEDIATELY = True
    __mapper_args__ = {"polymorphic_identity": "correction"}


class DamageMovement(StockMovement):
    MOVEMENT_TYPE = "damage"
    REQUIRED_FIELDS = ("product_id", "box_change", "kg_change", "reason", "damage_id")
    __mapper_args__ = {"polymorphic_identity": "damage"}


class ProductEditMovement(StockMovement):
    MOVEMENT_TYPE = "product_edit"
    REQUIRED_FIELDS = ("product_id", "field_changed", "old_value", "new_value", "reason")
    __mapper_args__ = {"polymorphic_identity": "product_edit"}


class ProductDeleteMovement(StockMovement):
    MOVEMENT_TYPE = "product_delete"
    REQUIRED_FIELDS = ("product_id", "old_value", "new_value", "reason")
    __mapper_args__ = {"polymorphic_identity": "product_delete"}


MOVEMENT_VARIANTS = {
    cls.MOVEMENT_TYPE: cls
    for cls in (
        RestockMovement,
        CorrectionMovement,
        DamageMovement,
        ProductEditMovement,
        ProductDeleteMovement,
    )
}
MOVEMENT_TYPES = frozenset(MOVEMENT_VARIANTS)


class RestockRecord(db.Model):
    """
    A delivery added to stock. Always created together with a completed
    RestockMovement and an immediate product quantity increase.

    total_cost snapshots the product's cost fields at the time of the restock.
    """
    __tablename__ = "restock_records"
    __table_args__ = (
        db.Index("ix_restocks_account_product_recorded", "account_id", "product_id", "recorded_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    boxes_added = db.Column(QUANTITY, nullable=False, default=ZERO)
    kg_added = db.Column(QUANTITY, nullable=False, default=ZERO)
    total_cost = db.Column(MONEY, nullable=False, default=ZERO)

    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=MOVEMENT_COMPLETED)
    performed_by = db.Column(db.String(120), nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("restocks", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "product_id": self.product_id,
            "boxes_added": as_float(self.boxes_added),
            "kg_added": as_float(self.kg_added),
            "total_cost": as_float(self.total_cost),
            "delivery_date": to_utc_z(self.delivery_date),
            "expiry_date": to_utc_z(self.expiry_date),
            "note": self.note,
            "status": self.status,
            "performed_by": self.performed_by,
            "recorded_at": to_utc_z(self.recorded_at),
        }


class DamageRecord(db.Model):
    """
    Reported damaged stock.

    loss_value is computed when reported; quantities are only decremented once
    damage_approval moves to 'approved'.
    """
    __tablename__ = "damage_records"
    __table_args__ = (
        db.Index("ix_damages_account_product_recorded", "account_id", "product_id", "recorded_at"),
        db.Index("ix_damages_account_approval", "account_id", "damage_approval"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    damaged_boxes = db.Column(QUANTITY, nullable=False, default=ZERO)
    damaged_kg = db.Column(QUANTITY, nullable=False, default=ZERO)
    reason = db.Column(db.String(500), nullable=False)
    loss_value = db.Column(MONEY, nullable=False, default=ZERO)

    damage_approval = db.Column(db.String(16), nullable=False, default=DAMAGE_PENDING, index=True)
    reported_by = db.Column(db.String(120), nullable=True)
    approved_by = db.Column(db.String(120), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("damages", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_pending(self) -> bool:
        return self.damage_approval == DAMAGE_PENDING

    def quantities(self) -> tuple[Decimal, Decimal]:
        return Decimal(self.damaged_boxes), Decimal(self.damaged_kg)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "product_id": self.product_id,
            "damaged_boxes": as_float(self.damaged_boxes),
            "damaged_kg": as_float(self.damaged_kg),
            "reason": self.reason,
            "loss_value": as_float(self.loss_value),
            "damage_approval": self.damage_approval,
            "reported_by": self.reported_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejection_reason": self.rejection_reason,
            "recorded_at": to_utc_z(self.recorded_at),
        }

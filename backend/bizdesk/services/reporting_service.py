# Overview: Time-windowed stock reconciliation and financial reports; read-only.

"""
BizDesk Reporting

Every report is a pure function of (scope, window) returning a frozen value
type with to_dict(). No report writes to the session.

Reconciliation (general_report), per live product:
    closing = current snapshot (quantity_box / quantity_kg)
    opening = closing - (added + corrected - sold - damaged)

- added:     restock records with recorded_at in the window
- corrected: completed correction movements with created_at in the window
- sold:      sales with sold_at in the window
- damaged:   APPROVED damage records with approved_at in the window

Pending damage has not touched the snapshot, so it is reported separately
(pending_damage) and left out of the reconstruction.

The snapshot reflects "now": opening is only historically exact when the
window ends at (or after) the latest movement.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..errors import ValidationError
from ..models import CorrectionMovement, DamageRecord, Deposit, Expense, Product, RestockRecord, Sale
from ..models.ledger import DAMAGE_APPROVED, DAMAGE_PENDING, DAMAGE_REJECTED, MOVEMENT_COMPLETED
from ..models.sales import PAYMENT_COMPLETED
from ..numbers import ZERO, as_float, dsum, money
from ..scope import Scope, require_scope
from .catalog_service import stock_value
from .tenant_service import scoped_query
from bizdesk.time_utils import normalize_datetime, to_utc_z, utcnow

RATE_PLACES = Decimal("0.01")
TOP_PRODUCTS_LIMIT = 5


def _render(value):
    if isinstance(value, Decimal):
        return as_float(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, ReportValue):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_render(v) for v in value]
    if isinstance(value, dict):
        return {k: _render(v) for k, v in value.items()}
    return value


class ReportValue:
    """Mixin for report dataclasses: JSON-ready dict with Decimals as floats."""

    def to_dict(self) -> dict:
        return {f.name: _render(getattr(self, f.name)) for f in fields(self)}


# =============================================================================
# WINDOW
# =============================================================================

@dataclass(frozen=True)
class ReportWindow(ReportValue):
    """Inclusive [start, end] window in UTC-naive datetimes."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start is None or self.end is None:
            raise ValidationError("start and end are required")
        if self.start > self.end:
            raise ValidationError("start must be on or before end")

    @classmethod
    def parse(cls, start, end=None) -> "ReportWindow":
        """
        Build a window from ISO strings, dates or datetimes.

        A date-only end ("2026-03-31") covers that whole day. A missing end
        means now.
        """
        try:
            start_dt = normalize_datetime(start)
            end_dt = normalize_datetime(end)
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 dates or datetimes")
        if start_dt is None:
            raise ValidationError("start is required")

        if end_dt is None:
            end_dt = utcnow()
        elif _is_date_only(end):
            end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)
        return cls(start=start_dt, end=end_dt)

    def contains(self, moment: datetime | None) -> bool:
        return moment is not None and self.start <= moment <= self.end


def _is_date_only(value) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def _in_window(column, window: ReportWindow):
    return column.between(window.start, window.end)


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class Quantity(ReportValue):
    boxes: Decimal = ZERO
    kg: Decimal = ZERO


@dataclass(frozen=True)
class SalesTotals(ReportValue):
    boxes: Decimal = ZERO
    kg: Decimal = ZERO
    amount: Decimal = ZERO
    unpaid_boxes: Decimal = ZERO
    unpaid_kg: Decimal = ZERO
    unpaid_amount: Decimal = ZERO
    count: int = 0


@dataclass(frozen=True)
class DamageTotals(ReportValue):
    boxes: Decimal = ZERO
    kg: Decimal = ZERO
    amount: Decimal = ZERO
    count: int = 0


@dataclass(frozen=True)
class ProfitTotals(ReportValue):
    from_boxes: Decimal = ZERO
    from_kg: Decimal = ZERO
    total: Decimal = ZERO


@dataclass(frozen=True)
class ProductStockRow(ReportValue):
    product_id: int
    product_name: str
    category_id: int | None
    opening: Quantity
    added: Quantity
    corrections: Quantity
    sales: SalesTotals
    damage: DamageTotals
    pending_damage: DamageTotals
    closing: Quantity
    profit: ProfitTotals


@dataclass(frozen=True)
class GeneralReport(ReportValue):
    window: ReportWindow
    products: tuple[ProductStockRow, ...]
    sales: SalesTotals
    damage: DamageTotals
    profit: ProfitTotals

    def for_product(self, product_id: int) -> ProductStockRow:
        for row in self.products:
            if row.product_id == product_id:
                return row
        raise KeyError(product_id)


@dataclass(frozen=True)
class SaleRow(ReportValue):
    sale_id: int
    sold_at: datetime
    product_id: int
    product_name: str | None
    client_id: str
    client_name: str
    boxes: Decimal
    kg: Decimal
    box_price: Decimal
    kg_price: Decimal
    profit: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    remaining_amount: Decimal
    payment_status: str
    payment_method: str | None
    sold_by: str | None


@dataclass(frozen=True)
class DetailedSalesReport(ReportValue):
    window: ReportWindow
    rows: tuple[SaleRow, ...]
    count: int
    total_amount: Decimal
    total_paid: Decimal
    total_remaining: Decimal
    total_profit: Decimal


@dataclass(frozen=True)
class TopSellingRow(ReportValue):
    product_id: int
    product_name: str
    boxes_sold: Decimal
    kg_sold: Decimal
    revenue: Decimal
    damaged_kg: Decimal
    current_kg: Decimal
    damage_rate: Decimal


@dataclass(frozen=True)
class TopSellingReport(ReportValue):
    window: ReportWindow
    rows: tuple[TopSellingRow, ...]


@dataclass(frozen=True)
class DebtorRow(ReportValue):
    client_id: str
    client_name: str
    phone_number: str | None
    amount_owed: Decimal
    amount_paid: Decimal
    sale_count: int
    oldest_sale_at: datetime | None
    sale_ids: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DebtorReport(ReportValue):
    generated_at: datetime
    rows: tuple[DebtorRow, ...]
    total_owed: Decimal

    def for_client(self, client_id: str) -> DebtorRow:
        for row in self.rows:
            if row.client_id == client_id:
                return row
        raise KeyError(client_id)


@dataclass(frozen=True)
class PaymentMethodTotal(ReportValue):
    payment_method: str
    amount: Decimal
    count: int


@dataclass(frozen=True)
class ProductRevenue(ReportValue):
    product_id: int
    product_name: str | None
    revenue: Decimal
    boxes_sold: Decimal
    kg_sold: Decimal


@dataclass(frozen=True)
class ProfitLossReport(ReportValue):
    window: ReportWindow
    revenue: Decimal
    cost_of_stock: Decimal
    gross_profit: Decimal
    expenses: Decimal
    damage_value: Decimal
    pending_damage_value: Decimal
    net_profit: Decimal
    deposits: Decimal
    sale_count: int
    expense_count: int
    deposit_count: int
    average_sale: Decimal
    expenses_by_category: dict
    sales_by_payment_method: tuple[PaymentMethodTotal, ...]
    top_products: tuple[ProductRevenue, ...]


@dataclass(frozen=True)
class InventoryRow(ReportValue):
    product_id: int
    product_name: str
    category_id: int | None
    quantity_box: Decimal
    quantity_kg: Decimal
    cost_per_box: Decimal
    price_per_box: Decimal
    stock_value: Decimal
    retail_value: Decimal
    low_stock: bool
    days_left: int | None


@dataclass(frozen=True)
class InventorySnapshot(ReportValue):
    generated_at: datetime
    rows: tuple[InventoryRow, ...]
    total_stock_value: Decimal
    total_retail_value: Decimal


# =============================================================================
# FACT LOADING
# =============================================================================

def _sales_in(scope: Scope, window: ReportWindow) -> list[Sale]:
    return scoped_query(Sale, scope).filter(_in_window(Sale.sold_at, window)).order_by(
        Sale.sold_at.asc(), Sale.id.asc()
    ).all()


def _approved_damages_in(scope: Scope, window: ReportWindow) -> list[DamageRecord]:
    return scoped_query(DamageRecord, scope).filter(
        DamageRecord.damage_approval == DAMAGE_APPROVED,
        _in_window(DamageRecord.approved_at, window),
    ).all()


def _pending_damages_in(scope: Scope, window: ReportWindow) -> list[DamageRecord]:
    return scoped_query(DamageRecord, scope).filter(
        DamageRecord.damage_approval == DAMAGE_PENDING,
        _in_window(DamageRecord.recorded_at, window),
    ).all()


def _unrejected_damages_in(scope: Scope, window: ReportWindow) -> list[DamageRecord]:
    return scoped_query(DamageRecord, scope).filter(
        DamageRecord.damage_approval != DAMAGE_REJECTED,
        _in_window(DamageRecord.recorded_at, window),
    ).all()


def _restocks_in(scope: Scope, window: ReportWindow) -> list[RestockRecord]:
    return scoped_query(RestockRecord, scope).filter(_in_window(RestockRecord.recorded_at, window)).all()


def _corrections_in(scope: Scope, window: ReportWindow) -> list[CorrectionMovement]:
    return scoped_query(CorrectionMovement, scope).filter(
        CorrectionMovement.status == MOVEMENT_COMPLETED,
        _in_window(CorrectionMovement.created_at, window),
    ).all()


def _live_products(scope: Scope) -> list[Product]:
    return scoped_query(Product, scope).filter(Product.deleted_at.is_(None)).order_by(
        Product.name.asc(), Product.id.asc()
    ).all()


def _group(records, key="product_id") -> dict:
    grouped = defaultdict(list)
    for record in records:
        grouped[getattr(record, key)].append(record)
    return grouped


def _sale_profit(sale: Sale) -> tuple[Decimal, Decimal]:
    return (
        Decimal(sale.boxes_quantity) * Decimal(sale.profit_per_box),
        Decimal(sale.kg_quantity) * Decimal(sale.profit_per_kg),
    )


def _sales_totals(sales) -> SalesTotals:
    unpaid = [s for s in sales if s.payment_status != PAYMENT_COMPLETED]
    return SalesTotals(
        boxes=dsum(s.boxes_quantity for s in sales),
        kg=dsum(s.kg_quantity for s in sales),
        amount=money(dsum(s.total_amount for s in sales)),
        unpaid_boxes=dsum(s.boxes_quantity for s in unpaid),
        unpaid_kg=dsum(s.kg_quantity for s in unpaid),
        unpaid_amount=money(dsum(s.remaining_amount for s in unpaid)),
        count=len(sales),
    )


def _damage_totals(damages) -> DamageTotals:
    return DamageTotals(
        boxes=dsum(d.damaged_boxes for d in damages),
        kg=dsum(d.damaged_kg for d in damages),
        amount=money(dsum(d.loss_value for d in damages)),
        count=len(damages),
    )


def _profit_totals(sales) -> ProfitTotals:
    from_boxes = ZERO
    from_kg = ZERO
    for sale in sales:
        b, k = _sale_profit(sale)
        from_boxes += b
        from_kg += k
    return ProfitTotals(
        from_boxes=money(from_boxes),
        from_kg=money(from_kg),
        total=money(from_boxes + from_kg),
    )


# =============================================================================
# REPORTS
# =============================================================================

def general_report(scope: Scope, window: ReportWindow) -> GeneralReport:
    """Per-product opening/movements/closing for the window, plus sales, damage and profit."""
    require_scope(scope)

    sales = _group(_sales_in(scope, window))
    damages = _group(_approved_damages_in(scope, window))
    pending = _group(_pending_damages_in(scope, window))
    restocks = _group(_restocks_in(scope, window))
    corrections = _group(_corrections_in(scope, window))

    rows = []
    for product in _live_products(scope):
        p_sales = sales.get(product.id, [])
        sold = _sales_totals(p_sales)
        damaged = _damage_totals(damages.get(product.id, []))
        p_restocks = restocks.get(product.id, [])
        added = Quantity(
            boxes=dsum(r.boxes_added for r in p_restocks),
            kg=dsum(r.kg_added for r in p_restocks),
        )
        p_corrections = corrections.get(product.id, [])
        corrected = Quantity(
            boxes=dsum(c.box_change for c in p_corrections),
            kg=dsum(c.kg_change for c in p_corrections),
        )
        closing = Quantity(boxes=Decimal(product.quantity_box), kg=Decimal(product.quantity_kg))
        opening = Quantity(
            boxes=closing.boxes - (added.boxes + corrected.boxes - sold.boxes - damaged.boxes),
            kg=closing.kg - (added.kg + corrected.kg - sold.kg - damaged.kg),
        )

        rows.append(ProductStockRow(
            product_id=product.id,
            product_name=product.name,
            category_id=product.category_id,
            opening=opening,
            added=added,
            corrections=corrected,
            sales=sold,
            damage=damaged,
            pending_damage=_damage_totals(pending.get(product.id, [])),
            closing=closing,
            profit=_profit_totals(p_sales),
        ))

    live_ids = {row.product_id for row in rows}
    live_sales = [s for pid, group in sales.items() if pid in live_ids for s in group]
    live_damages = [d for pid, group in damages.items() if pid in live_ids for d in group]

    current_app.logger.debug(
        "General report: account=%s window=%s..%s products=%s",
        scope.account_id, window.start, window.end, len(rows),
    )
    return GeneralReport(
        window=window,
        products=tuple(rows),
        sales=_sales_totals(live_sales),
        damage=_damage_totals(live_damages),
        profit=_profit_totals(live_sales),
    )


def detailed_sales_report(scope: Scope, window: ReportWindow) -> DetailedSalesReport:
    """One row per sale in the window, oldest first."""
    require_scope(scope)
    sales = _sales_in(scope, window)

    product_ids = {s.product_id for s in sales}
    names = {}
    if product_ids:
        names = dict(
            scoped_query(Product, scope)
            .filter(Product.id.in_(product_ids))
            .with_entities(Product.id, Product.name)
            .all()
        )

    rows = []
    for sale in sales:
        b, k = _sale_profit(sale)
        rows.append(SaleRow(
            sale_id=sale.id,
            sold_at=sale.sold_at,
            product_id=sale.product_id,
            product_name=names.get(sale.product_id),
            client_id=sale.client_id,
            client_name=sale.client_name,
            boxes=Decimal(sale.boxes_quantity),
            kg=Decimal(sale.kg_quantity),
            box_price=Decimal(sale.box_price),
            kg_price=Decimal(sale.kg_price),
            profit=money(b + k),
            total_amount=Decimal(sale.total_amount),
            amount_paid=Decimal(sale.amount_paid),
            remaining_amount=Decimal(sale.remaining_amount),
            payment_status=sale.payment_status,
            payment_method=sale.payment_method,
            sold_by=sale.sold_by,
        ))

    return DetailedSalesReport(
        window=window,
        rows=tuple(rows),
        count=len(rows),
        total_amount=money(dsum(r.total_amount for r in rows)),
        total_paid=money(dsum(r.amount_paid for r in rows)),
        total_remaining=money(dsum(r.remaining_amount for r in rows)),
        total_profit=money(dsum(r.profit for r in rows)),
    )


def damage_rate(damaged_kg: Decimal, current_kg: Decimal, sold_kg: Decimal) -> Decimal:
    """damaged / (current + sold + damaged) * 100, or 0 when nothing has moved."""
    denominator = current_kg + sold_kg + damaged_kg
    if denominator <= ZERO:
        return ZERO
    return (damaged_kg / denominator * 100).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def top_selling_report(scope: Scope, window: ReportWindow, *, limit: int | None = None) -> TopSellingReport:
    """
    Live products ranked by boxes sold in the window.

    Ties: revenue descending, then product id ascending.
    """
    require_scope(scope)
    if limit is not None and limit < 1:
        raise ValidationError("limit must be >= 1")

    sales = _group(_sales_in(scope, window))
    damages = _group(_approved_damages_in(scope, window))

    rows = []
    for product in _live_products(scope):
        p_sales = sales.get(product.id, [])
        boxes_sold = dsum(s.boxes_quantity for s in p_sales)
        kg_sold = dsum(s.kg_quantity for s in p_sales)
        damaged_kg = dsum(d.damaged_kg for d in damages.get(product.id, []))
        current_kg = Decimal(product.quantity_kg)
        rows.append(TopSellingRow(
            product_id=product.id,
            product_name=product.name,
            boxes_sold=boxes_sold,
            kg_sold=kg_sold,
            revenue=money(dsum(s.total_amount for s in p_sales)),
            damaged_kg=damaged_kg,
            current_kg=current_kg,
            damage_rate=damage_rate(damaged_kg, current_kg, kg_sold),
        ))

    rows.sort(key=lambda r: (-r.boxes_sold, -r.revenue, r.product_id))
    if limit is not None:
        rows = rows[:limit]
    return TopSellingReport(window=window, rows=tuple(rows))


def debtor_report(scope: Scope) -> DebtorReport:
    """
    Outstanding balances grouped by client_id.

    amount_owed sums remaining_amount (not total) of every sale that is not
    'completed'; amount_paid sums what was already paid on those sales.
    Largest debt first, then client_id.
    """
    require_scope(scope)
    sales = scoped_query(Sale, scope).filter(
        Sale.payment_status != PAYMENT_COMPLETED,
    ).order_by(Sale.sold_at.asc(), Sale.id.asc()).all()

    rows = []
    for client_id, group in _group(sales, key="client_id").items():
        latest = group[-1]
        rows.append(DebtorRow(
            client_id=client_id,
            client_name=latest.client_name,
            phone_number=latest.phone_number,
            amount_owed=money(dsum(s.remaining_amount for s in group)),
            amount_paid=money(dsum(s.amount_paid for s in group)),
            sale_count=len(group),
            oldest_sale_at=group[0].sold_at,
            sale_ids=tuple(s.id for s in group),
        ))

    rows.sort(key=lambda r: (-r.amount_owed, r.client_id))
    return DebtorReport(
        generated_at=utcnow(),
        rows=tuple(rows),
        total_owed=money(dsum(r.amount_owed for r in rows)),
    )


def profit_loss_report(scope: Scope, window: ReportWindow) -> ProfitLossReport:
    """
    cost_of_stock = sum(boxes * (box_price - profit_per_box) + kg * (kg_price - profit_per_kg))
    net_profit    = revenue - expenses - cost_of_stock - damage_value

    Damage is a loss from the moment it is recorded: damage_value counts every
    record logged in the window that was not rejected, dated by recorded_at.
    pending_damage_value is the part of it still awaiting a decision.

    Sales of since-deleted products still count: the money was received.
    """
    require_scope(scope)
    sales = _sales_in(scope, window)
    damages = _unrejected_damages_in(scope, window)
    expenses = scoped_query(Expense, scope).filter(_in_window(Expense.spent_at, window)).all()
    deposits = scoped_query(Deposit, scope).filter(_in_window(Deposit.deposited_at, window)).all()

    revenue = money(dsum(s.total_amount for s in sales))
    cost_of_stock = money(dsum(
        Decimal(s.boxes_quantity) * (Decimal(s.box_price) - Decimal(s.profit_per_box))
        + Decimal(s.kg_quantity) * (Decimal(s.kg_price) - Decimal(s.profit_per_kg))
        for s in sales
    ))
    expense_total = money(dsum(e.amount for e in expenses))
    damage_value = money(dsum(d.loss_value for d in damages))
    pending_damage_value = money(dsum(d.loss_value for d in damages if d.damage_approval == DAMAGE_PENDING))

    by_category = defaultdict(lambda: ZERO)
    for expense in expenses:
        by_category[expense.category] += Decimal(expense.amount)

    by_method = {}
    for sale in sales:
        method = sale.payment_method or "unspecified"
        amount, count = by_method.get(method, (ZERO, 0))
        by_method[method] = (amount + Decimal(sale.total_amount), count + 1)

    per_product = {}
    for pid, group in _group(sales).items():
        per_product[pid] = (
            money(dsum(s.total_amount for s in group)),
            dsum(s.boxes_quantity for s in group),
            dsum(s.kg_quantity for s in group),
        )
    top_ids = sorted(per_product, key=lambda pid: (-per_product[pid][0], pid))[:TOP_PRODUCTS_LIMIT]
    names = {}
    if top_ids:
        names = dict(
            scoped_query(Product, scope)
            .filter(Product.id.in_(top_ids))
            .with_entities(Product.id, Product.name)
            .all()
        )

    return ProfitLossReport(
        window=window,
        revenue=revenue,
        cost_of_stock=cost_of_stock,
        gross_profit=money(revenue - cost_of_stock),
        expenses=expense_total,
        damage_value=damage_value,
        pending_damage_value=pending_damage_value,
        net_profit=money(revenue - expense_total - cost_of_stock - damage_value),
        deposits=money(dsum(d.amount for d in deposits)),
        sale_count=len(sales),
        expense_count=len(expenses),
        deposit_count=len(deposits),
        average_sale=money(revenue / len(sales)) if sales else ZERO,
        expenses_by_category={k: money(v) for k, v in sorted(by_category.items())},
        sales_by_payment_method=tuple(
            PaymentMethodTotal(payment_method=m, amount=money(a), count=c)
            for m, (a, c) in sorted(by_method.items())
        ),
        top_products=tuple(
            ProductRevenue(
                product_id=pid,
                product_name=names.get(pid),
                revenue=per_product[pid][0],
                boxes_sold=per_product[pid][1],
                kg_sold=per_product[pid][2],
            )
            for pid in top_ids
        ),
    )


def inventory_snapshot(scope: Scope) -> InventorySnapshot:
    """Current stock of every live product valued at cost and at price."""
    require_scope(scope)
    default_threshold = Decimal(current_app.config.get("LOW_STOCK_THRESHOLD_DEFAULT", 5))

    rows = []
    for product in _live_products(scope):
        boxes = Decimal(product.quantity_box)
        rows.append(InventoryRow(
            product_id=product.id,
            product_name=product.name,
            category_id=product.category_id,
            quantity_box=boxes,
            quantity_kg=Decimal(product.quantity_kg),
            cost_per_box=Decimal(product.cost_per_box),
            price_per_box=Decimal(product.price_per_box),
            stock_value=money(stock_value(product)),
            retail_value=money(boxes * Decimal(product.price_per_box)),
            low_stock=product.is_low_stock(default_threshold),
            days_left=product.days_left,
        ))

    return InventorySnapshot(
        generated_at=utcnow(),
        rows=tuple(rows),
        total_stock_value=money(dsum(r.stock_value for r in rows)),
        total_retail_value=money(dsum(r.retail_value for r in rows)),
    )

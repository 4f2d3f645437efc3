# Overview: Read-only business metrics derived from PAID sales and the stock ledger.

"""
Report Invariants (authoritative)

- Reports never write. Each one is a pure function of (window, ledger,
  sale history): two calls with no intervening writes return equal results.
- Only PAID sales whose sale_date falls inside the inclusive window count.
- revenue of a sale is its total_amount; per product / category / supplier
  revenue is the sum of item subtotals.
- cost of an item is cost_price * quantity. cost_basis="current" (default)
  reads the product's cost today; cost_basis="snapshot" reads the cost
  captured on the sale item. A missing cost counts as 0.
- margin % = profit / revenue * 100, ROI % = profit / cost * 100; both 0
  when the divisor is 0.
- Money and percentages are Decimals at full precision; rounding happens
  where they are presented.
"""

from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from ..extensions import db
from ..models import Category, Product, Sale, SaleItem, Supplier
from ..models.sales import STATUS_PAID
from ..money_utils import ZERO, cents_to_decimal, percent, quantize, ratio
from ..time_utils import end_of_day, resolve_date_range, start_of_day, to_utc_z, utcnow
from . import stock_service

DEFAULT_WINDOW_DAYS = 30
DEFAULT_TREND_DAYS = 30
MAX_TREND_DAYS = 3650
HIGH_ROI_PERCENT = Decimal(30)
SLOW_MOVER_MAX_QUANTITY = 5

COST_BASIS_CURRENT = "current"
COST_BASIS_SNAPSHOT = "snapshot"
COST_BASES = (COST_BASIS_CURRENT, COST_BASIS_SNAPSHOT)


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


class RecommendationType(str, enum.Enum):
    WARNING = "warning"
    SUCCESS = "success"
    INFO = "info"


@dataclass(frozen=True)
class Recommendation:
    type: RecommendationType
    title: str
    message: str
    action: str

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "action": self.action,
        }


def _window(start, end) -> tuple[datetime, datetime]:
    """
    Accept calendar dates, datetimes or None for either bound.

    Dates expand to whole days; None falls back to the last 30 days.
    """
    start_dt = start if isinstance(start, datetime) else None
    end_dt = end if isinstance(end, datetime) else None
    start_day = start if isinstance(start, date) and start_dt is None else None
    end_day = end if isinstance(end, date) and end_dt is None else None

    default_start, default_end = resolve_date_range(start_day, end_day, default_days=DEFAULT_WINDOW_DAYS)
    start_dt = start_dt or default_start
    end_dt = end_dt or default_end
    if start_dt > end_dt:
        raise ReportError("start must not be after end")
    return start_dt, end_dt


def _check_cost_basis(cost_basis: str) -> None:
    if cost_basis not in COST_BASES:
        raise ReportError(f"cost_basis must be one of {', '.join(COST_BASES)}")


def _paid_sales(start_dt: datetime, end_dt: datetime) -> list[Sale]:
    return db.session.query(Sale).filter(
        Sale.status == STATUS_PAID,
        Sale.sale_date >= start_dt,
        Sale.sale_date <= end_dt,
    ).order_by(Sale.sale_date.asc(), Sale.id.asc()).all()


def _item_cost_cents(item: SaleItem, cost_basis: str) -> int:
    if cost_basis == COST_BASIS_SNAPSHOT:
        unit_cost = item.cost_price_cents
    else:
        unit_cost = item.product.cost_price_cents
    if unit_cost is None:
        return 0
    return unit_cost * item.quantity


def _totals(sales: list[Sale], cost_basis: str) -> tuple[int, int]:
    revenue = sum(sale.total_amount_cents for sale in sales)
    cost = sum(_item_cost_cents(item, cost_basis) for sale in sales for item in sale.items)
    return revenue, cost


def _metrics(revenue_cents: int, cost_cents: int) -> dict:
    revenue = cents_to_decimal(revenue_cents)
    cost = cents_to_decimal(cost_cents)
    profit = revenue - cost
    return {
        "revenue": revenue,
        "cost": cost,
        "profit": profit,
        "profit_margin_percent": percent(profit, revenue),
        "roi_percent": percent(profit, cost),
    }


def summary(start=None, end=None, *, cost_basis: str = COST_BASIS_CURRENT) -> dict:
    _check_cost_basis(cost_basis)
    start_dt, end_dt = _window(start, end)

    sales = _paid_sales(start_dt, end_dt)
    revenue_cents, cost_cents = _totals(sales, cost_basis)
    product_count = db.session.query(Product).count()

    report = {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "sales_count": len(sales),
        "product_count": product_count,
        "turnover_rate": ratio(len(sales), product_count),
    }
    report.update(_metrics(revenue_cents, cost_cents))
    return report


def sales_trend(days: int = DEFAULT_TREND_DAYS, *, cost_basis: str = COST_BASIS_CURRENT) -> dict:
    """
    Revenue and profit for each of the last `days` calendar days, oldest
    first, today included. Days without sales are present with zeros.
    """
    _check_cost_basis(cost_basis)
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise ReportError("days must be a positive integer")
    if days > MAX_TREND_DAYS:
        raise ReportError(f"days cannot exceed {MAX_TREND_DAYS}")

    today = utcnow().date()
    first_day = today - timedelta(days=days - 1)
    sales = _paid_sales(start_of_day(first_day), end_of_day(today))

    by_day: dict[date, list[Sale]] = defaultdict(list)
    for sale in sales:
        by_day[sale.sale_date.date()].append(sale)

    labels, revenue, profit = [], [], []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        revenue_cents, cost_cents = _totals(by_day.get(day, []), cost_basis)
        labels.append(day.isoformat())
        revenue.append(cents_to_decimal(revenue_cents))
        profit.append(cents_to_decimal(revenue_cents - cost_cents))

    return {"labels": labels, "revenue": revenue, "profit": profit}


def _accumulate(sales: list[Sale], key_of, cost_basis: str) -> dict:
    """Group item quantity / revenue / cost / products by key_of(product)."""
    groups: dict = defaultdict(lambda: {"quantity": 0, "revenue_cents": 0, "cost_cents": 0, "products": set()})
    for sale in sales:
        for item in sale.items:
            key = key_of(item.product)
            if key is None:
                continue
            group = groups[key]
            group["quantity"] += item.quantity
            group["revenue_cents"] += item.subtotal_cents
            group["cost_cents"] += _item_cost_cents(item, cost_basis)
            group["products"].add(item.product_id)
    return groups


def _by_revenue(rows: list[dict], id_key: str) -> list[dict]:
    return sorted(rows, key=lambda row: (-row["revenue"], row[id_key]))


def product_performance(start=None, end=None, *, cost_basis: str = COST_BASIS_CURRENT) -> list[dict]:
    """One row per existing product, including products that sold nothing."""
    _check_cost_basis(cost_basis)
    start_dt, end_dt = _window(start, end)

    groups = _accumulate(_paid_sales(start_dt, end_dt), lambda p: p.id, cost_basis)
    rows = []
    for product in db.session.query(Product).all():
        group = groups.get(product.id)
        row = {
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "quantity": group["quantity"] if group else 0,
        }
        row.update(_metrics(
            group["revenue_cents"] if group else 0,
            group["cost_cents"] if group else 0,
        ))
        rows.append(row)
    return _by_revenue(rows, "product_id")


def category_performance(start=None, end=None, *, cost_basis: str = COST_BASIS_CURRENT) -> list[dict]:
    """Categories with revenue in the window, highest revenue first."""
    _check_cost_basis(cost_basis)
    start_dt, end_dt = _window(start, end)

    groups = _accumulate(_paid_sales(start_dt, end_dt), lambda p: p.category_id, cost_basis)
    rows = []
    for category in db.session.query(Category).all():
        group = groups.get(category.id)
        if not group or group["revenue_cents"] <= 0:
            continue
        row = {"category_id": category.id, "name": category.name, "quantity": group["quantity"]}
        row.update(_metrics(group["revenue_cents"], group["cost_cents"]))
        rows.append(row)
    return _by_revenue(rows, "category_id")


def supplier_performance(start=None, end=None, *, cost_basis: str = COST_BASIS_CURRENT) -> list[dict]:
    """Suppliers with revenue in the window, highest revenue first."""
    _check_cost_basis(cost_basis)
    start_dt, end_dt = _window(start, end)

    groups = _accumulate(_paid_sales(start_dt, end_dt), lambda p: p.supplier_id, cost_basis)
    rows = []
    for supplier in db.session.query(Supplier).all():
        group = groups.get(supplier.id)
        if not group or group["revenue_cents"] <= 0:
            continue
        row = {
            "supplier_id": supplier.id,
            "name": supplier.name,
            "quantity": group["quantity"],
            "product_count": len(group["products"]),
        }
        row.update(_metrics(group["revenue_cents"], group["cost_cents"]))
        rows.append(row)
    return _by_revenue(rows, "supplier_id")


def stock_status(threshold: int = stock_service.LOW_STOCK_THRESHOLD) -> dict:
    return stock_service.stock_status(threshold)


def inventory_stats(start=None, end=None) -> dict:
    start_dt, end_dt = _window(start, end)

    products = db.session.query(Product).all()
    stock = stock_service.current_stock_map()

    total_items = 0
    value_cents = 0
    markups = []
    for product in products:
        qty = stock.get(product.id, 0)
        total_items += qty
        if product.cost_price_cents is not None:
            value_cents += qty * product.cost_price_cents
        if product.cost_price_cents is not None and product.selling_price_cents is not None:
            cost = Decimal(product.cost_price_cents)
            markups.append(percent(Decimal(product.selling_price_cents) - cost, cost))

    average_margin = sum(markups, ZERO) / len(markups) if markups else ZERO

    items_sold = sum(
        item.quantity
        for sale in _paid_sales(start_dt, end_dt)
        for item in sale.items
    )

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_items_in_stock": total_items,
        "total_inventory_value": cents_to_decimal(value_cents),
        "average_profit_margin": average_margin,
        "total_items_sold": items_sold,
    }


def build_recommendations(status: dict, performance: list[dict]) -> list[Recommendation]:
    """
    Fixed rules over already computed aggregates, in this order:
    low stock, out of stock, best seller, highest ROI above 30 %,
    slowest mover with 0 < quantity < 5.
    """
    recommendations = []

    if status["low_stock"] > 0:
        recommendations.append(Recommendation(
            RecommendationType.WARNING,
            "Low Stock Alert",
            f"{status['low_stock']} products need restocking. Consider reordering soon.",
            "View Items",
        ))

    if status["out_of_stock"] > 0:
        recommendations.append(Recommendation(
            RecommendationType.WARNING,
            "Out of Stock Items",
            f"{status['out_of_stock']} products are out of stock. Restock to avoid lost sales.",
            "Restock Now",
        ))

    best = max(performance, key=lambda row: (row["revenue"], -row["product_id"]), default=None)
    if best is not None and best["revenue"] > 0:
        recommendations.append(Recommendation(
            RecommendationType.SUCCESS,
            "Focus on Best Sellers",
            f"{best['name']} is your top performer with ${quantize(best['revenue'])} in revenue. "
            "Ensure adequate stock levels.",
            "View Details",
        ))

    high_roi = [row for row in performance if row["roi_percent"] > HIGH_ROI_PERCENT]
    if high_roi:
        top = max(high_roi, key=lambda row: (row["roi_percent"], -row["product_id"]))
        recommendations.append(Recommendation(
            RecommendationType.SUCCESS,
            "High Profit Opportunity",
            f"{top['name']} has {top['roi_percent'].quantize(Decimal('0.1'))}% ROI. Consider promoting it.",
            "Promote",
        ))

    slow = [row for row in performance if 0 < row["quantity"] < SLOW_MOVER_MAX_QUANTITY]
    if slow:
        slowest = min(slow, key=lambda row: (row["quantity"], row["product_id"]))
        recommendations.append(Recommendation(
            RecommendationType.INFO,
            "Slow Moving Items",
            f"{slowest['name']} has low sales ({slowest['quantity']} units). "
            "Consider discounting to improve turnover.",
            "Create Promotion",
        ))

    return recommendations


def recommendations() -> list[dict]:
    """Recommendations from current stock levels and the last 30 days of sales."""
    performance = product_performance()
    return [rec.to_dict() for rec in build_recommendations(stock_status(), performance)]


def full_report(start=None, end=None, days: int = DEFAULT_TREND_DAYS, *, cost_basis: str = COST_BASIS_CURRENT) -> dict:
    return {
        "summary": summary(start, end, cost_basis=cost_basis),
        "sales_trend": sales_trend(days, cost_basis=cost_basis),
        "product_performance": product_performance(start, end, cost_basis=cost_basis),
        "category_performance": category_performance(start, end, cost_basis=cost_basis),
        "supplier_performance": supplier_performance(start, end, cost_basis=cost_basis),
        "stock_status": stock_status(),
        "inventory_stats": inventory_stats(start, end),
        "recommendations": recommendations(),
    }

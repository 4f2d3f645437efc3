"""
Report aggregator tests. Reports are read-only: each test also checks that
repeated calls agree.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from smartstock.extensions import db
from smartstock.models import StockMovement
from smartstock.services import reporting_service, sales_service, stock_service
from smartstock.services.reporting_service import (
    Recommendation,
    RecommendationType,
    ReportError,
    build_recommendations,
)
from smartstock.time_utils import utcnow


def _sell(product, quantity, *, status="PAID", **kwargs):
    return sales_service.create_sale(
        items=[{"product_id": product.id, "quantity": quantity}],
        status=status,
        **kwargs,
    )


@pytest.fixture
def scenario_a(product):
    stock_service.record_addition(product.id, 100, "purchase", "PO-1")
    _sell(product, 5)
    return product


def test_summary_scenario_d(scenario_a):
    """Revenue 125, cost 50, profit 75, margin 60 %, ROI 150 %."""
    report = reporting_service.summary()

    assert report["revenue"] == Decimal("125")
    assert report["cost"] == Decimal("50")
    assert report["profit"] == Decimal("75")
    assert report["profit_margin_percent"] == Decimal("60")
    assert report["roi_percent"] == Decimal("150")
    assert report["sales_count"] == 1
    assert report["product_count"] == 1
    assert report["turnover_rate"] == Decimal("1")


def test_summary_is_idempotent(scenario_a):
    today = utcnow().date()
    start = today - timedelta(days=30)
    assert reporting_service.summary(start, today) == reporting_service.summary(start, today)
    assert reporting_service.full_report(start, today) == reporting_service.full_report(start, today)


def test_reports_never_write(scenario_a):
    movements = db.session.query(StockMovement).count()
    reporting_service.full_report()
    assert db.session.query(StockMovement).count() == movements


def test_summary_with_no_sales_is_zero(make_product):
    make_product("A")
    report = reporting_service.summary()
    assert report["revenue"] == 0
    assert report["profit_margin_percent"] == 0
    assert report["roi_percent"] == 0
    assert report["turnover_rate"] == 0


def test_summary_without_products(db_session):
    report = reporting_service.summary()
    assert report["turnover_rate"] == 0
    assert report["product_count"] == 0


def test_zero_cost_roi_is_zero(make_product):
    free = make_product("FREE", cost=0, price=1000, stock=5)
    _sell(free, 1)
    report = reporting_service.summary()
    assert report["revenue"] == Decimal("10")
    assert report["roi_percent"] == 0
    assert report["profit_margin_percent"] == Decimal("100")


def test_only_paid_sales_in_window_count(product, days_ago):
    stock_service.record_addition(product.id, 100)
    _sell(product, 1)
    _sell(product, 2, status="PENDING")
    cancelled = _sell(product, 3)
    sales_service.update_status(cancelled.id, "CANCELLED")
    _sell(product, 4, sale_date=days_ago(40))

    assert reporting_service.summary()["revenue"] == Decimal("25")

    start = (utcnow() - timedelta(days=45)).date()
    assert reporting_service.summary(start=start)["revenue"] == Decimal("125")


def test_date_window_is_inclusive_whole_days(product, days_ago):
    stock_service.record_addition(product.id, 10)
    sale = _sell(product, 1, sale_date=days_ago(3))
    day = sale.sale_date.date()

    assert reporting_service.summary(start=day, end=day)["sales_count"] == 1
    assert reporting_service.summary(start=day + timedelta(days=1))["sales_count"] == 0


def test_inverted_window_rejected(db_session):
    today = utcnow().date()
    with pytest.raises(ReportError):
        reporting_service.summary(start=today, end=today - timedelta(days=1))


def test_cost_basis_current_vs_snapshot(scenario_a):
    scenario_a.cost_price_cents = 2000
    db.session.commit()

    assert reporting_service.summary()["cost"] == Decimal("100")
    assert reporting_service.summary(cost_basis="snapshot")["cost"] == Decimal("50")
    with pytest.raises(ReportError):
        reporting_service.summary(cost_basis="average")


def test_sales_trend_has_one_entry_per_day(product, days_ago):
    stock_service.record_addition(product.id, 100)
    _sell(product, 2, sale_date=days_ago(2))
    _sell(product, 1)

    trend = reporting_service.sales_trend(7)

    assert len(trend["labels"]) == len(trend["revenue"]) == len(trend["profit"]) == 7
    assert trend["labels"][-1] == utcnow().date().isoformat()
    assert trend["revenue"][-1] == Decimal("25")
    assert trend["profit"][-1] == Decimal("15")
    assert trend["revenue"][-3] == Decimal("50")
    assert sum(trend["revenue"]) == Decimal("75")
    assert trend["revenue"][0] == 0


@pytest.mark.parametrize("days", [0, -1, "7", reporting_service.MAX_TREND_DAYS + 1, 1_000_000])
def test_sales_trend_rejects_bad_days(db_session, days):
    with pytest.raises(ReportError):
        reporting_service.sales_trend(days)


def test_product_performance_lists_every_product(make_product):
    a = make_product("A", stock=20)
    b = make_product("B", cost=500, price=600, stock=20)
    idle = make_product("IDLE")
    _sell(a, 2)
    _sell(b, 10)

    rows = reporting_service.product_performance()

    assert [r["product_id"] for r in rows] == [b.id, a.id, idle.id]
    by_id = {r["product_id"]: r for r in rows}
    assert by_id[a.id]["revenue"] == Decimal("50")
    assert by_id[a.id]["cost"] == Decimal("20")
    assert by_id[a.id]["roi_percent"] == Decimal("150")
    assert by_id[b.id]["quantity"] == 10
    assert by_id[b.id]["profit"] == Decimal("10")
    assert by_id[idle.id]["quantity"] == 0
    assert by_id[idle.id]["profit_margin_percent"] == 0


def test_category_and_supplier_performance_drop_idle_groups(make_product, category, supplier):
    from smartstock.models import Category, Supplier

    other_category = Category(name="Garden")
    other_supplier = Supplier(name="Idle Supply")
    db.session.add_all([other_category, other_supplier])
    db.session.commit()

    sold = make_product("A", stock=10, category=category, supplier=supplier)
    make_product("B", stock=10, category=other_category, supplier=other_supplier)
    _sell(sold, 4)

    categories = reporting_service.category_performance()
    suppliers = reporting_service.supplier_performance()

    assert [r["category_id"] for r in categories] == [category.id]
    assert categories[0]["revenue"] == Decimal("100")
    assert categories[0]["profit"] == Decimal("60")

    assert [r["supplier_id"] for r in suppliers] == [supplier.id]
    assert suppliers[0]["quantity"] == 4
    assert suppliers[0]["cost"] == Decimal("40")
    assert suppliers[0]["roi_percent"] == Decimal("150")
    assert suppliers[0]["product_count"] == 1


def test_group_performance_sorted_by_revenue(make_product, db_session):
    from smartstock.models import Supplier

    small, large = Supplier(name="Small"), Supplier(name="Large")
    db_session.add_all([small, large])
    db_session.commit()
    a = make_product("A", stock=10, supplier=small)
    b = make_product("B", stock=10, supplier=large)
    _sell(a, 1)
    _sell(b, 3)

    assert [r["name"] for r in reporting_service.supplier_performance()] == ["Large", "Small"]


def test_inventory_stats(make_product):
    a = make_product("A", cost=1000, price=2500, stock=10)
    make_product("B", cost=500, price=500, stock=4)
    make_product("C", cost=None, price=900)
    _sell(a, 3)

    stats = reporting_service.inventory_stats()

    assert stats["total_items_in_stock"] == 11
    assert stats["total_inventory_value"] == Decimal("90")
    # mean of 150 % and 0 %; C has no cost and is skipped
    assert stats["average_profit_margin"] == Decimal("75")
    assert stats["total_items_sold"] == 3


def test_stock_status_delegates_to_ledger(make_product):
    make_product("A", stock=15)
    make_product("B", stock=5)
    make_product("C")
    assert reporting_service.stock_status() == stock_service.stock_status()


def test_recommendation_rules_in_order():
    status = {"in_stock": 0, "low_stock": 2, "out_of_stock": 1, "threshold": 10}
    performance = [
        {"product_id": 1, "name": "Lamp", "quantity": 20, "revenue": Decimal("500"),
         "roi_percent": Decimal("20")},
        {"product_id": 2, "name": "Vase", "quantity": 3, "revenue": Decimal("90"),
         "roi_percent": Decimal("80")},
        {"product_id": 3, "name": "Idle", "quantity": 0, "revenue": Decimal("0"),
         "roi_percent": Decimal("0")},
    ]

    recs = build_recommendations(status, performance)

    assert [r.title for r in recs] == [
        "Low Stock Alert",
        "Out of Stock Items",
        "Focus on Best Sellers",
        "High Profit Opportunity",
        "Slow Moving Items",
    ]
    assert [r.type for r in recs] == [
        RecommendationType.WARNING,
        RecommendationType.WARNING,
        RecommendationType.SUCCESS,
        RecommendationType.SUCCESS,
        RecommendationType.INFO,
    ]
    assert "Lamp" in recs[2].message
    assert "Vase" in recs[3].message
    assert "Vase" in recs[4].message


def test_no_recommendations_when_quiet():
    status = {"in_stock": 3, "low_stock": 0, "out_of_stock": 0, "threshold": 10}
    assert build_recommendations(status, []) == []


def test_recommendation_to_dict():
    rec = Recommendation(RecommendationType.INFO, "Title", "Message", "Act")
    assert rec.to_dict() == {"type": "info", "title": "Title", "message": "Message", "action": "Act"}


def test_recommendations_from_live_data(make_product):
    a = make_product("A", stock=20)
    _sell(a, 2)

    titles = [r["title"] for r in reporting_service.recommendations()]
    # 18 left is in stock; 2 sold is a slow mover; ROI 150 %
    assert titles == ["Focus on Best Sellers", "High Profit Opportunity", "Slow Moving Items"]

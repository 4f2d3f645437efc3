"""
Sale lifecycle tests: every transition is checked against the stock ledger.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from smartstock.errors import (
    ClientNotFound,
    DuplicateReference,
    InsufficientStock,
    InvalidQuantity,
    InvalidTransition,
    ProductNotFound,
    SaleNotFound,
)
from smartstock.extensions import db
from smartstock.models import Sale, SaleItem, StockMovement
from smartstock.services import sales_service, stock_service
from smartstock.services.sales_service import SaleItemInput
from smartstock.time_utils import utcnow
from smartstock.validation import MAX_PRICE_CENTS, MAX_QUANTITY, ValidationError


@pytest.fixture
def stocked(product):
    """Scenario A setup: product A (cost 10, price 25) stocked with 100."""
    stock_service.record_addition(product.id, 100, "purchase", "PO-1")
    return product


def test_paid_sale_consumes_stock(stocked):
    """Scenario A: PAID sale of 5 -> stock 95, total 125."""
    sale = sales_service.create_sale(
        items=[{"product_id": stocked.id, "quantity": 5}],
        payment_method="cash",
        status="PAID",
    )

    assert stock_service.current_stock(stocked.id) == 95
    assert sale.total_amount == Decimal("125")
    assert sale.status == "PAID"
    assert sale.reference.startswith("SALE-")

    out = db.session.query(StockMovement).filter_by(reference=sale.reference).all()
    assert len(out) == 1
    assert out[0].quantity == -5
    assert out[0].reason == f"Sale: {sale.reference}"


def test_cancel_paid_sale_restores_stock(stocked):
    """Scenario B: cancel -> back to 100; cancelling again is rejected."""
    sale = sales_service.create_sale(
        items=[{"product_id": stocked.id, "quantity": 5}],
        status="PAID",
    )

    sales_service.update_status(sale.id, "CANCELLED")
    assert stock_service.current_stock(stocked.id) == 100

    restore = db.session.query(StockMovement).filter(
        StockMovement.reference == sale.reference,
        StockMovement.quantity > 0,
    ).one()
    assert restore.quantity == 5
    assert restore.reason == f"Sale cancelled: {sale.reference}"

    with pytest.raises(InvalidTransition) as exc_info:
        sales_service.update_status(sale.id, "CANCELLED")
    assert exc_info.value.details == {"from": "CANCELLED", "to": "CANCELLED"}
    assert stock_service.current_stock(stocked.id) == 100


def test_pending_sale_does_not_touch_stock(stocked):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 5}])
    assert sale.status == "PENDING"
    assert stock_service.current_stock(stocked.id) == 100


def test_pending_to_paid_consumes_stock(stocked):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 30}])
    sales_service.update_status(sale.id, "PAID")
    assert stock_service.current_stock(stocked.id) == 70


def test_pending_to_paid_without_stock_is_rejected(stocked):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 60}])
    stock_service.record_removal(stocked.id, 50)

    with pytest.raises(InsufficientStock):
        sales_service.update_status(sale.id, "PAID")

    assert sales_service.get_sale(sale.id).status == "PENDING"
    assert stock_service.current_stock(stocked.id) == 50


def test_pending_to_cancelled_touches_nothing(stocked):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 5}])
    before = db.session.query(StockMovement).count()

    sales_service.update_status(sale.id, "cancelled")

    assert db.session.query(StockMovement).count() == before
    assert stock_service.current_stock(stocked.id) == 100


@pytest.mark.parametrize("target", ["PAID", "PENDING"])
def test_cancelled_is_terminal(stocked, target):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 5}])
    sales_service.update_status(sale.id, "CANCELLED")
    with pytest.raises(InvalidTransition):
        sales_service.update_status(sale.id, target)


def test_paid_cannot_return_to_pending(stocked):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 5}], status="PAID")
    with pytest.raises(InvalidTransition):
        sales_service.update_status(sale.id, "PENDING")
    assert stock_service.current_stock(stocked.id) == 95


def test_paid_sale_is_all_or_nothing(make_product):
    """Second item lacks stock: no movement, no sale, first item untouched."""
    a = make_product("A", stock=10)
    b = make_product("B", stock=2)
    sales_before = db.session.query(Sale).count()

    with pytest.raises(InsufficientStock) as exc_info:
        sales_service.create_sale(
            items=[
                {"product_id": a.id, "quantity": 5},
                {"product_id": b.id, "quantity": 3},
            ],
            status="PAID",
        )

    assert exc_info.value.product_id == b.id
    assert stock_service.current_stock(a.id) == 10
    assert stock_service.current_stock(b.id) == 2
    assert db.session.query(Sale).count() == sales_before
    assert db.session.query(SaleItem).count() == 0


def test_two_lines_same_product_draw_down_same_total(make_product):
    a = make_product("A", stock=10)
    with pytest.raises(InsufficientStock):
        sales_service.create_sale(
            items=[{"product_id": a.id, "quantity": 6}, {"product_id": a.id, "quantity": 6}],
            status="PAID",
        )
    assert stock_service.current_stock(a.id) == 10


def test_unit_price_defaults_and_overrides(make_product):
    a = make_product("A", price=2500, stock=10)
    sale = sales_service.create_sale(
        items=[
            SaleItemInput(product_id=a.id, quantity=2),
            SaleItemInput(product_id=a.id, quantity=1, unit_price_cents=2000, discount_cents=500),
        ],
    )
    assert [item.unit_price_cents for item in sale.items] == [2500, 2000]
    assert [item.subtotal for item in sale.items] == [Decimal("50"), Decimal("15")]
    assert sale.total_amount == Decimal("65")


def test_cost_snapshot_captured(make_product):
    a = make_product("A", cost=1000, stock=10)
    sale = sales_service.create_sale(items=[{"product_id": a.id, "quantity": 1}])
    a.cost_price_cents = 1500
    db.session.commit()
    assert sale.items[0].cost_price_cents == 1000


def test_unpriced_product_requires_unit_price(make_product):
    a = make_product("A", price=None, stock=10)
    with pytest.raises(ValidationError):
        sales_service.create_sale(items=[{"product_id": a.id, "quantity": 1}])


def test_oversized_lines_rejected(stocked):
    with pytest.raises(InvalidQuantity):
        sales_service.create_sale(
            items=[{"product_id": stocked.id, "quantity": 10**10, "unit_price_cents": MAX_PRICE_CENTS}],
            status="PAID",
        )
    with pytest.raises(InvalidQuantity):
        sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": MAX_QUANTITY + 1}])
    with pytest.raises(ValidationError):
        sales_service.create_sale(
            items=[{"product_id": stocked.id, "quantity": 1, "unit_price_cents": MAX_PRICE_CENTS + 1}]
        )

    assert db.session.query(Sale).count() == 0
    assert stock_service.current_stock(stocked.id) == 100


def test_discount_larger_than_line_rejected(make_product):
    a = make_product("A", price=1000, stock=10)
    with pytest.raises(ValidationError):
        sales_service.create_sale(items=[{"product_id": a.id, "quantity": 1, "discount_cents": 1001}])


def test_validation_failures(stocked):
    with pytest.raises(ValidationError):
        sales_service.create_sale(items=[])
    with pytest.raises(InvalidQuantity):
        sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 0}])
    with pytest.raises(ProductNotFound):
        sales_service.create_sale(items=[{"product_id": 9999, "quantity": 1}])
    with pytest.raises(ClientNotFound):
        sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}], client_id=9999)
    with pytest.raises(ValidationError):
        sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}], status="CANCELLED")
    with pytest.raises(ValidationError):
        sales_service.create_sale(
            items=[{"product_id": stocked.id, "quantity": 1}],
            sale_date=utcnow() + timedelta(days=1),
        )
    assert db.session.query(Sale).count() == 0


def test_duplicate_reference_rejected(stocked):
    sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}], reference="INV-1", status="PAID")
    with pytest.raises(DuplicateReference):
        sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}], reference="INV-1", status="PAID")
    assert stock_service.current_stock(stocked.id) == 99


def test_reference_taken_after_check_is_duplicate(stocked, monkeypatch):
    """A reference claimed between the existence check and the insert."""
    sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}], reference="INV-7", status="PAID")
    monkeypatch.setattr(sales_service, "reference_exists", lambda reference: False)

    with pytest.raises(DuplicateReference):
        sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 2}], reference="INV-7", status="PAID")

    assert db.session.query(Sale).count() == 1
    assert db.session.query(StockMovement).filter_by(reference="INV-7").count() == 1
    assert stock_service.current_stock(stocked.id) == 99


def test_generated_references_increase_and_skip_taken(stocked):
    first = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}])
    sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}], reference="SALE-000002")
    third = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 1}])

    assert first.reference == "SALE-000001"
    assert third.reference == "SALE-000003"


def test_delete_paid_sale_restores_stock(stocked):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 8}], status="PAID")
    sale_id, reference = sale.id, sale.reference

    sales_service.delete_sale(sale_id)

    assert stock_service.current_stock(stocked.id) == 100
    assert db.session.get(Sale, sale_id) is None
    assert db.session.query(SaleItem).count() == 0
    # ledger history survives the sale record
    assert db.session.query(StockMovement).filter_by(reference=reference).count() == 2


def test_delete_pending_sale(stocked):
    sale = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 8}])
    sales_service.delete_sale(sale.id)
    assert stock_service.current_stock(stocked.id) == 100
    with pytest.raises(SaleNotFound):
        sales_service.get_sale(sale.id)


def test_missing_sale(db_session):
    with pytest.raises(SaleNotFound):
        sales_service.update_status(42, "PAID")
    with pytest.raises(SaleNotFound):
        sales_service.delete_sale(42)
    with pytest.raises(SaleNotFound):
        sales_service.get_sale_by_reference("SALE-999999")


def test_queries(stocked, buyer, days_ago):
    old = sales_service.create_sale(
        items=[{"product_id": stocked.id, "quantity": 1}],
        status="PAID", client_id=buyer.id, sale_date=days_ago(10),
    )
    recent = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 2}], status="PAID")
    pending = sales_service.create_sale(items=[{"product_id": stocked.id, "quantity": 3}])

    assert [s.id for s in sales_service.list_sales()] == [pending.id, recent.id, old.id]
    assert [s.id for s in sales_service.list_sales(client_id=buyer.id)] == [old.id]
    assert [s.id for s in sales_service.pending_sales()] == [pending.id]
    assert [s.id for s in sales_service.recent_sales(limit=1)] == [pending.id]
    assert [s.id for s in sales_service.list_sales(start=days_ago(1))] == [pending.id, recent.id]
    assert sales_service.get_sale_by_reference(old.reference).id == old.id

    # PENDING sales are not revenue
    assert sales_service.total_sales(days_ago(30), utcnow()) == Decimal("75")
    assert sales_service.total_sales(days_ago(5), utcnow()) == Decimal("50")

"""
Sales Service - sale lifecycle coordinated with the stock ledger.

PENDING   sale recorded, no stock consumed.
PAID      every item has removed its quantity from the ledger
          (reason "Sale: <reference>").
CANCELLED terminal. Coming from PAID, every item puts its quantity back
          (reason "Sale cancelled: <reference>"); from PENDING nothing moves.

Each operation runs as one write transaction holding the locks of every
product it touches: either every ledger movement of the operation commits
together with the sale, or none does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ClientNotFound,
    DuplicateReference,
    InsufficientStock,
    InvalidQuantity,
    InvalidTransition,
    ProductNotFound,
    SaleNotFound,
)
from ..extensions import db
from ..models import Client, Product, Sale, SaleItem
from ..models.sales import SALE_STATUSES, STATUS_CANCELLED, STATUS_PAID, STATUS_PENDING
from ..money_utils import cents_to_decimal
from ..time_utils import utcnow
from ..validation import MAX_PRICE_CENTS, MAX_QUANTITY, ValidationError
from .concurrency import lock_for_update, product_key, resource_locks, sale_key, write_transaction
from .document_service import next_sale_reference, reference_exists
from .stock_service import _record_addition_inner, _record_removal_inner

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_PAID, STATUS_CANCELLED},
    STATUS_PAID: {STATUS_CANCELLED},
    STATUS_CANCELLED: set(),
}
INITIAL_STATUSES = (STATUS_PENDING, STATUS_PAID)

# Sales may be back-dated, not future-dated (small clock skew allowed)
FUTURE_TOLERANCE = timedelta(minutes=2)


@dataclass(frozen=True)
class SaleItemInput:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None
    discount_cents: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping) -> "SaleItemInput":
        return cls(
            product_id=data["product_id"],
            quantity=data["quantity"],
            unit_price_cents=data.get("unit_price_cents"),
            discount_cents=data.get("discount_cents") or 0,
        )


def _normalize_status(status: str) -> str:
    value = (status or "").strip().upper()
    if value not in SALE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(SALE_STATUSES)}")
    return value


def _sale_reason(reference: str) -> str:
    return f"Sale: {reference}"


def _cancel_reason(reference: str) -> str:
    return f"Sale cancelled: {reference}"


def _coerce_items(items: Iterable) -> list[SaleItemInput]:
    result = []
    for item in items or []:
        if not isinstance(item, SaleItemInput):
            item = SaleItemInput.from_mapping(item)
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
            raise InvalidQuantity(item.quantity)
        if item.quantity > MAX_QUANTITY:
            raise InvalidQuantity(item.quantity, f"quantity cannot exceed {MAX_QUANTITY:,}")
        if item.discount_cents < 0:
            raise ValidationError("discount must be >= 0")
        if item.unit_price_cents is not None:
            if item.unit_price_cents < 0:
                raise ValidationError("unit_price must be >= 0")
            if item.unit_price_cents > MAX_PRICE_CENTS:
                raise ValidationError(f"unit_price cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
        result.append(item)
    if not result:
        raise ValidationError("a sale needs at least one item")
    return result


def _remove_items_from_stock(sale: Sale) -> None:
    for item in sale.items:
        _record_removal_inner(item.product, item.quantity, _sale_reason(sale.reference), sale.reference)


def _restore_items_to_stock(sale: Sale) -> None:
    for item in sale.items:
        _record_addition_inner(item.product, item.quantity, _cancel_reason(sale.reference), sale.reference)


def create_sale(
    *,
    items: Iterable,
    payment_method: str | None = None,
    client_id: int | None = None,
    reference: str | None = None,
    status: str = STATUS_PENDING,
    notes: str | None = None,
    sale_date: datetime | None = None,
) -> Sale:
    """
    Record a sale, consuming stock immediately when created as PAID.

    Missing unit prices default to the product's current selling price.
    All-or-nothing: if any item cannot be removed from stock, no movement
    and no sale is committed.
    """
    status = _normalize_status(status)
    if status not in INITIAL_STATUSES:
        raise ValidationError("a new sale must be PENDING or PAID")

    inputs = _coerce_items(items)

    if sale_date is not None and sale_date > utcnow() + FUTURE_TOLERANCE:
        raise ValidationError("sale_date cannot be in the future")

    product_ids = {item.product_id for item in inputs}

    with resource_locks(product_key(pid) for pid in product_ids):
        try:
            with write_transaction():
                if client_id is not None and db.session.get(Client, client_id) is None:
                    raise ClientNotFound(client_id)

                if reference:
                    if reference_exists(reference):
                        raise DuplicateReference(reference)
                else:
                    reference = next_sale_reference()

                products = {
                    p.id: p for p in lock_for_update(
                        db.session.query(Product).filter(Product.id.in_(product_ids))
                    ).all()
                }

                sale = Sale(
                    client_id=client_id,
                    reference=reference,
                    status=status,
                    payment_method=payment_method,
                    notes=notes,
                    sale_date=sale_date or utcnow(),
                )
                db.session.add(sale)
                # Claim the reference before any ledger query autoflushes the sale
                try:
                    db.session.flush()
                except IntegrityError:
                    raise DuplicateReference(reference)

                for line in inputs:
                    product = products.get(line.product_id)
                    if product is None:
                        raise ProductNotFound(line.product_id)

                    unit_price_cents = line.unit_price_cents
                    if unit_price_cents is None:
                        unit_price_cents = product.selling_price_cents
                    if unit_price_cents is None:
                        raise ValidationError(
                            f"product {product.id} has no selling price; unit_price is required"
                        )

                    item = SaleItem(
                        product=product,
                        quantity=line.quantity,
                        unit_price_cents=unit_price_cents,
                        discount_cents=line.discount_cents,
                        cost_price_cents=product.cost_price_cents,
                    )
                    if item.subtotal_cents < 0:
                        raise ValidationError(
                            f"discount exceeds line amount for product {product.id}"
                        )
                    sale.items.append(item)

                sale.recalculate_total()

                if status == STATUS_PAID:
                    _remove_items_from_stock(sale)

                db.session.flush()
        except Exception as exc:
            logger.warning("sale creation rejected reference=%s: %s", reference, exc)
            raise

    logger.info(
        "sale created id=%s reference=%s status=%s total_cents=%s",
        sale.id, sale.reference, sale.status, sale.total_amount_cents,
    )
    return sale


def _load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    sale = query.first()
    if sale is None:
        raise SaleNotFound(sale_id)
    return sale


def update_status(sale_id: int, new_status: str) -> Sale:
    """
    Move a sale through its lifecycle.

    PENDING -> PAID removes every item from stock; PAID -> CANCELLED puts
    every item back; PENDING -> CANCELLED touches nothing. Any other change
    raises InvalidTransition.
    """
    new_status = _normalize_status(new_status)

    with resource_locks([sale_key(sale_id)]):
        sale = _load_sale(sale_id)
        product_ids = [item.product_id for item in sale.items]

        with resource_locks(product_key(pid) for pid in product_ids):
            try:
                with write_transaction():
                    sale = _load_sale(sale_id, lock=True)
                    old_status = sale.status
                    if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
                        raise InvalidTransition(old_status, new_status)

                    if new_status == STATUS_PAID:
                        _remove_items_from_stock(sale)
                    elif new_status == STATUS_CANCELLED and old_status == STATUS_PAID:
                        _restore_items_to_stock(sale)

                    sale.status = new_status
            except (InvalidTransition, InsufficientStock) as exc:
                logger.warning("sale status change rejected id=%s: %s", sale_id, exc)
                raise

    logger.info("sale status changed id=%s %s -> %s", sale.id, old_status, new_status)
    return sale


def delete_sale(sale_id: int) -> None:
    """
    Remove a sale record. A PAID sale first returns its items to stock,
    exactly as cancelling would; the ledger movements stay as history.
    """
    with resource_locks([sale_key(sale_id)]):
        sale = _load_sale(sale_id)
        product_ids = [item.product_id for item in sale.items]

        with resource_locks(product_key(pid) for pid in product_ids):
            with write_transaction():
                sale = _load_sale(sale_id, lock=True)
                reference = sale.reference
                if sale.status == STATUS_PAID:
                    _restore_items_to_stock(sale)
                db.session.delete(sale)

    logger.info("sale deleted id=%s reference=%s", sale_id, reference)


def get_sale(sale_id: int) -> Sale:
    return _load_sale(sale_id)


def get_sale_by_reference(reference: str) -> Sale:
    sale = db.session.query(Sale).filter_by(reference=reference).first()
    if sale is None:
        raise SaleNotFound(reference)
    return sale


def list_sales(
    *,
    client_id: int | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[Sale]:
    """Sales newest first, filtered by client / status / inclusive date window."""
    q = db.session.query(Sale)
    if client_id is not None:
        q = q.filter(Sale.client_id == client_id)
    if status:
        q = q.filter(Sale.status == _normalize_status(status))
    if start is not None:
        q = q.filter(Sale.sale_date >= start)
    if end is not None:
        q = q.filter(Sale.sale_date <= end)
    q = q.order_by(Sale.sale_date.desc(), Sale.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def recent_sales(limit: int = 10) -> list[Sale]:
    return list_sales(limit=limit)


def pending_sales() -> list[Sale]:
    return list_sales(status=STATUS_PENDING)


def total_sales(start: datetime, end: datetime) -> Decimal:
    """Sum of PAID sale totals inside the inclusive window."""
    cents = db.session.query(
        func.coalesce(func.sum(Sale.total_amount_cents), 0)
    ).filter(
        Sale.status == STATUS_PAID,
        Sale.sale_date >= start,
        Sale.sale_date <= end,
    ).scalar()
    return cents_to_decimal(int(cents or 0))

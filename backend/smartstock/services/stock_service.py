# Overview: Stock ledger; the only writer of StockMovement rows and the only
# place current stock is derived.

"""
Stock Ledger Invariants (authoritative)

- current_stock(p) == SUM(StockMovement.quantity) for p; 0 with no movements.
- Movements are append-only: never updated, never deleted.
- IN rows carry quantity > 0, OUT rows quantity < 0.
- A removal reads the sum and appends inside one transaction while holding
  the product's lock, so two removals on the same product cannot both pass
  the availability check against the same total. No partial removals.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, func

from ..errors import InsufficientStock, InvalidQuantity, MovementNotFound, ProductNotFound
from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..validation import MAX_QUANTITY
from .concurrency import lock_for_update, product_key, resource_locks, write_transaction

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 10
DEFAULT_LIST_LIMIT = 200


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(quantity)
    if quantity > MAX_QUANTITY:
        raise InvalidQuantity(quantity, f"quantity cannot exceed {MAX_QUANTITY:,}")
    return quantity


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


def current_stock(product_id: int) -> int:
    """SUM of all movement quantities for the product (0 if none)."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(StockMovement.product_id == product_id)
    return int(q.scalar() or 0)


def current_stock_map(product_ids: list[int] | None = None) -> dict[int, int]:
    """
    Current stock for many products in one query.

    Every requested product (or every product, when product_ids is None)
    appears in the result; products without movements map to 0.
    """
    q = db.session.query(
        Product.id,
        func.coalesce(func.sum(StockMovement.quantity), 0),
    ).outerjoin(StockMovement, StockMovement.product_id == Product.id)
    if product_ids is not None:
        q = q.filter(Product.id.in_(product_ids))
    rows = q.group_by(Product.id).all()
    return {product_id: int(total or 0) for product_id, total in rows}


def _record_addition_inner(
    product: Product,
    quantity: int,
    reason: str | None,
    reference: str | None,
) -> StockMovement:
    """Append an IN movement. Caller owns locking and the transaction."""
    on_hand = current_stock(product.id)
    if on_hand + quantity > MAX_QUANTITY:
        raise InvalidQuantity(
            quantity,
            f"stock of product {product.id} cannot exceed {MAX_QUANTITY:,} (currently {on_hand})",
        )
    movement = StockMovement(
        product_id=product.id,
        quantity=quantity,
        movement_type=MOVEMENT_IN,
        reason=reason,
        reference=reference,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _record_removal_inner(
    product: Product,
    quantity: int,
    reason: str | None,
    reference: str | None,
) -> StockMovement:
    """
    Check availability and append an OUT movement.

    Caller must hold the product's lock inside an open write transaction;
    the SUM below must see every movement already flushed in it (a sale
    with two lines for the same product draws down the same total).
    """
    available = current_stock(product.id)
    if quantity > available:
        raise InsufficientStock(product.id, available, quantity)

    movement = StockMovement(
        product_id=product.id,
        quantity=-quantity,
        movement_type=MOVEMENT_OUT,
        reason=reason,
        reference=reference,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def record_addition(
    product_id: int,
    quantity: int,
    reason: str | None = None,
    reference: str | None = None,
) -> StockMovement:
    """Append a positive movement (stock coming in)."""
    quantity = _validate_quantity(quantity)
    with resource_locks([product_key(product_id)]):
        with write_transaction():
            product = _get_product(product_id, lock=True)
            movement = _record_addition_inner(product, quantity, reason, reference)
    logger.info("stock added product_id=%s quantity=%s reference=%s", product_id, quantity, reference)
    return movement


def record_removal(
    product_id: int,
    quantity: int,
    reason: str | None = None,
    reference: str | None = None,
) -> StockMovement:
    """
    Append a negative movement of `quantity` if that much stock exists.

    Raises InsufficientStock (and leaves the ledger untouched) otherwise.
    """
    quantity = _validate_quantity(quantity)
    with resource_locks([product_key(product_id)]):
        try:
            with write_transaction():
                product = _get_product(product_id, lock=True)
                movement = _record_removal_inner(product, quantity, reason, reference)
        except InsufficientStock as exc:
            logger.warning("stock removal rejected product_id=%s: %s", product_id, exc)
            raise
    logger.info("stock removed product_id=%s quantity=%s reference=%s", product_id, quantity, reference)
    return movement


def history(
    product_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[StockMovement]:
    """A product's movements, oldest first; the window is inclusive."""
    _get_product(product_id)
    q = db.session.query(StockMovement).filter(StockMovement.product_id == product_id)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)
    return q.order_by(StockMovement.created_at.asc(), StockMovement.id.asc()).all()


def get_movement(movement_id: int) -> StockMovement:
    movement = db.session.get(StockMovement, movement_id)
    if movement is None:
        raise MovementNotFound(movement_id)
    return movement


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    reference: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[StockMovement]:
    """Most recent movements first, optionally filtered."""
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type == MOVEMENT_IN:
        q = q.filter(StockMovement.quantity > 0)
    elif movement_type == MOVEMENT_OUT:
        q = q.filter(StockMovement.quantity < 0)
    if reference:
        q = q.filter(StockMovement.reference == reference)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)
    return q.order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    ).limit(limit).all()


def stock_status(threshold: int = LOW_STOCK_THRESHOLD) -> dict:
    """
    Count products by stock level.

    out_of_stock: stock == 0; low_stock: 0 < stock < threshold;
    in_stock: stock >= threshold.
    """
    per_product = db.session.query(
        Product.id.label("product_id"),
        func.coalesce(func.sum(StockMovement.quantity), 0).label("stock"),
    ).outerjoin(
        StockMovement, StockMovement.product_id == Product.id
    ).group_by(Product.id).subquery()

    row = db.session.query(
        func.coalesce(func.sum(case((per_product.c.stock >= threshold, 1), else_=0)), 0),
        func.coalesce(func.sum(case(
            ((per_product.c.stock > 0) & (per_product.c.stock < threshold), 1), else_=0
        )), 0),
        func.coalesce(func.sum(case((per_product.c.stock <= 0, 1), else_=0)), 0),
    ).one()

    return {
        "in_stock": int(row[0]),
        "low_stock": int(row[1]),
        "out_of_stock": int(row[2]),
        "threshold": threshold,
    }

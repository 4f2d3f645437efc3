# Overview: Minimal product/category/supplier/client directory consumed by the
# ledger, the sale coordinator and the reports.

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import ClientNotFound, NotFound, ProductNotFound
from ..extensions import db
from ..models import Category, Client, Product, SaleItem, StockMovement, Supplier
from ..validation import ConflictError, ValidationError

logger = logging.getLogger(__name__)


def _commit_or_conflict(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


def _require_name(name) -> str:
    if name is None or not str(name).strip():
        raise ValidationError("name is required")
    return str(name).strip()


def create_category(name: str, description: str | None = None) -> Category:
    category = Category(name=_require_name(name), description=description)
    db.session.add(category)
    _commit_or_conflict(f"category already exists: {category.name}")
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFound(f"category not found: {category_id}", {"category_id": category_id})
    return category


def create_supplier(name: str, email: str | None = None, phone: str | None = None) -> Supplier:
    supplier = Supplier(name=_require_name(name), email=email, phone=phone)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name.asc()).all()


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound(f"supplier not found: {supplier_id}", {"supplier_id": supplier_id})
    return supplier


def create_client(name: str, email: str | None = None, phone: str | None = None) -> Client:
    client = Client(name=_require_name(name), email=email, phone=phone)
    db.session.add(client)
    db.session.commit()
    return client


def list_clients() -> list[Client]:
    return db.session.query(Client).order_by(Client.name.asc()).all()


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if client is None:
        raise ClientNotFound(client_id)
    return client


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()


def _check_classification(patch: dict) -> None:
    if patch.get("category_id") is not None:
        get_category(patch["category_id"])
    if patch.get("supplier_id") is not None:
        get_supplier(patch["supplier_id"])


def create_product(patch: dict) -> Product:
    """
    Create a product from a validated patch (see validation.PRODUCT_POLICY).

    Raises ConflictError on duplicate SKU.
    """
    _check_classification(patch)
    product = Product(**patch)
    db.session.add(product)
    _commit_or_conflict(f"SKU already exists: {patch.get('sku')}")
    logger.info("product created id=%s sku=%s", product.id, product.sku)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    product = get_product(product_id)
    _check_classification(patch)
    for key, value in patch.items():
        setattr(product, key, value)
    _commit_or_conflict(f"SKU already exists: {patch.get('sku')}")
    return product


def delete_product(product_id: int) -> None:
    """
    Delete a product that has never been stocked or sold.

    Ledger movements and sale items are audit history; a product they
    reference cannot be removed.
    """
    product = get_product(product_id)

    movements = db.session.query(StockMovement.id).filter_by(product_id=product_id).first()
    sold = db.session.query(SaleItem.id).filter_by(product_id=product_id).first()
    if movements is not None or sold is not None:
        raise ConflictError(
            f"product {product_id} has stock movements or sale items and cannot be deleted"
        )

    db.session.delete(product)
    db.session.commit()
    logger.info("product deleted id=%s", product_id)

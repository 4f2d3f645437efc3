# Overview: Flask API routes for the product directory; parses input and returns JSON responses.

# backend/smartstock/routes/catalog.py
"""
Product, category, supplier and client routes.

Product JSON always carries the derived current_stock (sum of the
product's ledger movements); there is no stored quantity to edit.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import InventoryError
from ..models import Category, Client, Product, Supplier
from ..money_utils import present
from ..services import catalog_service, stock_service
from ..validation import (
    CATEGORY_POLICY,
    PARTY_POLICY,
    PRODUCT_POLICY,
    ConflictError,
    ValidationError,
    validate_payload,
)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


def _product_json(product: Product, stock: int | None = None) -> dict:
    if stock is None:
        stock = stock_service.current_stock(product.id)
    return present(product.to_dict(current_stock=stock))


@catalog_bp.get("/products")
def list_products():
    products = catalog_service.list_products()
    stock = stock_service.current_stock_map()
    return jsonify([_product_json(p, stock.get(p.id, 0)) for p in products])


@catalog_bp.get("/products/<int:product_id>")
def get_product(product_id: int):
    try:
        return _product_json(catalog_service.get_product(product_id))
    except InventoryError as e:
        return e.to_dict(), e.status_code


@catalog_bp.post("/products")
def create_product():
    """
    Create a product.

    Prices are decimal amounts ("25.00" or 25); they are stored as cents.
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(patch)
        return _product_json(product, 0), 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InventoryError as e:
        return e.to_dict(), e.status_code


@catalog_bp.put("/products/<int:product_id>")
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = catalog_service.update_product(product_id, patch)
        return _product_json(product)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InventoryError as e:
        return e.to_dict(), e.status_code


@catalog_bp.delete("/products/<int:product_id>")
def delete_product(product_id: int):
    try:
        catalog_service.delete_product(product_id)
        return {"message": "Product deleted"}
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InventoryError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500


@catalog_bp.get("/categories")
def list_categories():
    return jsonify([c.to_dict() for c in catalog_service.list_categories()])


@catalog_bp.get("/categories/<int:category_id>")
def get_category(category_id: int):
    try:
        return catalog_service.get_category(category_id).to_dict()
    except InventoryError as e:
        return e.to_dict(), e.status_code


@catalog_bp.post("/categories")
def create_category():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch["name"], patch.get("description"))
        return category.to_dict(), 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409


@catalog_bp.get("/suppliers")
def list_suppliers():
    return jsonify([s.to_dict() for s in catalog_service.list_suppliers()])


@catalog_bp.get("/suppliers/<int:supplier_id>")
def get_supplier(supplier_id: int):
    try:
        return catalog_service.get_supplier(supplier_id).to_dict()
    except InventoryError as e:
        return e.to_dict(), e.status_code


@catalog_bp.post("/suppliers")
def create_supplier():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=PARTY_POLICY, partial=False)
        supplier = catalog_service.create_supplier(patch["name"], patch.get("email"), patch.get("phone"))
        return supplier.to_dict(), 201
    except ValidationError as e:
        return {"error": str(e)}, 400


@catalog_bp.get("/clients")
def list_clients():
    return jsonify([c.to_dict() for c in catalog_service.list_clients()])


@catalog_bp.get("/clients/<int:client_id>")
def get_client(client_id: int):
    try:
        return catalog_service.get_client(client_id).to_dict()
    except InventoryError as e:
        return e.to_dict(), e.status_code


@catalog_bp.post("/clients")
def create_client():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Client, payload=payload, policy=PARTY_POLICY, partial=False)
        client = catalog_service.create_client(patch["name"], patch.get("email"), patch.get("phone"))
        return client.to_dict(), 201
    except ValidationError as e:
        return {"error": str(e)}, 400

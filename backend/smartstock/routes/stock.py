# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/smartstock/routes/stock.py
"""
Stock ledger routes.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start/end filtering is inclusive.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import InventoryError
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..services import catalog_service, stock_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_stock_request

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")

MAX_LIST_LIMIT = 1000


def _datetime_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def _limit_arg() -> int:
    limit = request.args.get("limit", type=int) or stock_service.DEFAULT_LIST_LIMIT
    if limit < 1 or limit > MAX_LIST_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
    return limit


@stock_bp.post("/add")
def add_stock():
    """Body: {product_id, quantity, reason?, reference?}"""
    try:
        kwargs = parse_stock_request(request.get_json(silent=True))
        movement = stock_service.record_addition(**kwargs)
        return {
            "movement": movement.to_dict(),
            "current_stock": stock_service.current_stock(kwargs["product_id"]),
        }, 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except InventoryError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return {"error": "Internal server error"}, 500


@stock_bp.post("/remove")
def remove_stock():
    """
    Body: {product_id, quantity, reason?, reference?}

    409 with {available, requested} when the product does not hold enough stock.
    """
    try:
        kwargs = parse_stock_request(request.get_json(silent=True))
        movement = stock_service.record_removal(**kwargs)
        return {
            "movement": movement.to_dict(),
            "current_stock": stock_service.current_stock(kwargs["product_id"]),
        }, 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except InventoryError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove stock")
        return {"error": "Internal server error"}, 500


@stock_bp.get("")
def list_movements():
    """
    Query params (all optional):
    - product_id: int
    - type: IN | OUT
    - reference: str
    - start, end: ISO-8601 datetimes
    - limit: int (default 200)
    """
    movement_type = request.args.get("type")
    if movement_type:
        movement_type = movement_type.upper()
        if movement_type not in (MOVEMENT_IN, MOVEMENT_OUT):
            return {"error": "type must be IN or OUT"}, 400

    try:
        movements = stock_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            movement_type=movement_type,
            reference=request.args.get("reference"),
            start=_datetime_arg("start"),
            end=_datetime_arg("end"),
            limit=_limit_arg(),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return jsonify([m.to_dict() for m in movements])


@stock_bp.get("/<int:movement_id>")
def get_movement(movement_id: int):
    try:
        return stock_service.get_movement(movement_id).to_dict()
    except InventoryError as e:
        return e.to_dict(), e.status_code


@stock_bp.get("/product/<int:product_id>")
def product_history(product_id: int):
    """A product's full movement history, oldest first."""
    try:
        movements = stock_service.history(
            product_id,
            start=_datetime_arg("start"),
            end=_datetime_arg("end"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except InventoryError as e:
        return e.to_dict(), e.status_code

    return {
        "product_id": product_id,
        "current_stock": stock_service.current_stock(product_id),
        "movements": [m.to_dict() for m in movements],
    }


@stock_bp.get("/product/<int:product_id>/current")
def product_current_stock(product_id: int):
    try:
        catalog_service.get_product(product_id)
    except InventoryError as e:
        return e.to_dict(), e.status_code
    return {"product_id": product_id, "current_stock": stock_service.current_stock(product_id)}


@stock_bp.get("/status")
def stock_status():
    threshold = request.args.get("threshold", type=int) or stock_service.LOW_STOCK_THRESHOLD
    return stock_service.stock_status(threshold)

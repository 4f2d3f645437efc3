# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/smartstock/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import InventoryError
from ..money_utils import present
from ..services import sales_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_sale_request

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale.

    Body: {items: [{product_id, quantity, unit_price?, discount?}], client_id?,
    reference?, payment_method?, notes?, status? (PENDING | PAID), sale_date?}

    A PAID sale removes its items from stock in the same transaction; if any
    item lacks stock nothing is recorded (409).
    """
    try:
        kwargs = parse_sale_request(request.get_json(silent=True))
        sale = sales_service.create_sale(**kwargs)
        return jsonify({"sale": present(sale.to_dict())}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """
    Query params (all optional): client_id, status, start, end (ISO-8601), limit.
    """
    try:
        sales = sales_service.list_sales(
            client_id=request.args.get("client_id", type=int),
            status=request.args.get("status"),
            start=parse_iso_datetime(request.args.get("start")),
            end=parse_iso_datetime(request.args.get("end")),
            limit=request.args.get("limit", type=int),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(present([s.to_dict(include_items=False) for s in sales]))


@sales_bp.get("/pending")
def pending_sales_route():
    return jsonify(present([s.to_dict(include_items=False) for s in sales_service.pending_sales()]))


@sales_bp.get("/recent")
def recent_sales_route():
    limit = request.args.get("limit", 10, type=int)
    if limit < 1:
        return jsonify({"error": "limit must be >= 1"}), 400
    return jsonify(present([s.to_dict(include_items=False) for s in sales_service.recent_sales(limit)]))


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": present(sales_service.get_sale(sale_id).to_dict())})
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/reference/<string:reference>")
def get_sale_by_reference_route(reference: str):
    try:
        return jsonify({"sale": present(sales_service.get_sale_by_reference(reference).to_dict())})
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.put("/<int:sale_id>/status")
def update_status_route(sale_id: int):
    """
    Body: {status}

    PENDING -> PAID consumes stock, PAID -> CANCELLED restores it.
    Other changes are rejected with 409.
    """
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status required"}), 400

    try:
        sale = sales_service.update_status(sale_id, new_status)
        return jsonify({"sale": present(sale.to_dict())})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete_sale(sale_id)
        return jsonify({"message": "Sale deleted"})
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500

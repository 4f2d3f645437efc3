# Overview: Flask API routes for business reports; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..money_utils import present
from ..services import reporting_service
from ..services.stock_service import LOW_STOCK_THRESHOLD
from ..time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_arg(*names):
    """First present of the given query params as a calendar date (YYYY-MM-DD)."""
    for name in names:
        value = request.args.get(name)
        if value:
            try:
                return parse_iso_date(value)
            except ValueError:
                raise reporting_service.ReportError(f"{name} must be a date (YYYY-MM-DD)")
    return None


def _window_args() -> dict:
    return {
        "start": _date_arg("startDate", "start"),
        "end": _date_arg("endDate", "end"),
        "cost_basis": request.args.get("cost_basis", reporting_service.COST_BASIS_CURRENT),
    }


def _days_arg() -> int:
    raw = request.args.get("days")
    if raw is None:
        return reporting_service.DEFAULT_TREND_DAYS
    try:
        return int(raw)
    except ValueError:
        raise reporting_service.ReportError("days must be a positive integer")


def _run(report, *args, **kwargs):
    try:
        return jsonify(present(report(*args, **kwargs))), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to build report %s", report.__name__)
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/summary")
def summary_report():
    """Query params: startDate/start, endDate/end (YYYY-MM-DD), cost_basis."""
    try:
        kwargs = _window_args()
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    return _run(reporting_service.summary, **kwargs)


@reports_bp.get("/sales-trend")
def sales_trend_report():
    """Query params: days (default 30), cost_basis."""
    try:
        days = _days_arg()
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    cost_basis = request.args.get("cost_basis", reporting_service.COST_BASIS_CURRENT)
    return _run(reporting_service.sales_trend, days, cost_basis=cost_basis)


@reports_bp.get("/product-performance")
def product_performance_report():
    try:
        kwargs = _window_args()
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    return _run(reporting_service.product_performance, **kwargs)


@reports_bp.get("/category-performance")
def category_performance_report():
    try:
        kwargs = _window_args()
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    return _run(reporting_service.category_performance, **kwargs)


@reports_bp.get("/supplier-performance")
def supplier_performance_report():
    try:
        kwargs = _window_args()
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    return _run(reporting_service.supplier_performance, **kwargs)


@reports_bp.get("/stock-status")
def stock_status_report():
    threshold = request.args.get("threshold", LOW_STOCK_THRESHOLD, type=int)
    return _run(reporting_service.stock_status, threshold)


@reports_bp.get("/inventory-stats")
def inventory_stats_report():
    try:
        kwargs = _window_args()
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    kwargs.pop("cost_basis")
    return _run(reporting_service.inventory_stats, **kwargs)


@reports_bp.get("/recommendations")
def recommendations_report():
    return _run(reporting_service.recommendations)


@reports_bp.get("/full")
def full_report():
    """Every report in one response; accepts the window params plus days."""
    try:
        kwargs = _window_args()
        kwargs["days"] = _days_arg()
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    return _run(reporting_service.full_report, **kwargs)

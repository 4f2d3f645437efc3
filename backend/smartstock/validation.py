from __future__ import annotations
from datetime import datetime
from smartstock.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from smartstock.errors import InvalidQuantity
from smartstock.money_utils import decimal_to_cents


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Maximum quantity per movement, sale line, and per-product stock on hand.
# Keeps SUM(quantity) and quantity * unit_price well inside 64-bit integers.
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - money_fields: payload key -> *_cents column; values arrive as decimal
      amounts ("25.00") and are stored as integer cents
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    money_fields: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def coerce_money_cents(key: str, value: Any) -> int:
    """Decimal amount -> non-negative integer cents."""
    try:
        cents = decimal_to_cents(value)
    except ValueError as exc:
        raise ValidationError(f"{key}: {exc}")
    if cents < 0:
        raise ValidationError(f"{key} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols and k not in policy.money_fields:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in policy.money_fields:
            column_key = policy.money_fields[k]
            patch[column_key] = None if raw is None else coerce_money_cents(k, raw)
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "brand",
        "cost_price", "selling_price",
        "category_id", "supplier_id",
    },
    required_on_create={"sku", "name"},
    money_fields={"cost_price": "cost_price_cents", "selling_price": "selling_price_cents"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

PARTY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone"},
    required_on_create={"name"},
)


def coerce_quantity(value: Any) -> int:
    """Quantities are integers in 1..MAX_QUANTITY; anything else is InvalidQuantity."""
    try:
        quantity = _coerce_int("quantity", value)
    except ValidationError:
        raise InvalidQuantity(value)
    if quantity <= 0:
        raise InvalidQuantity(value)
    if quantity > MAX_QUANTITY:
        raise InvalidQuantity(value, f"quantity cannot exceed {MAX_QUANTITY:,}")
    return quantity


def _optional_text(payload: dict, key: str, max_length: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text or None


def parse_stock_request(payload: dict | None) -> dict:
    """{product_id, quantity, reason?, reference?} -> ledger call kwargs."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = sorted(k for k in ("product_id", "quantity") if payload.get(k) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return {
        "product_id": _coerce_int("product_id", payload["product_id"]),
        "quantity": coerce_quantity(payload["quantity"]),
        "reason": _optional_text(payload, "reason", 500),
        "reference": _optional_text(payload, "reference", 100),
    }


SALE_FIELDS = {"client_id", "reference", "payment_method", "notes", "status", "sale_date", "items"}
SALE_ITEM_FIELDS = {"product_id", "quantity", "unit_price", "discount"}


def parse_sale_request(payload: dict | None) -> dict:
    """
    Validate a create-sale payload and return sales_service.create_sale kwargs.

    Money fields (unit_price, discount) are decimal amounts and come back as
    unit_price_cents / discount_cents; unit_price may be omitted to use the
    product's selling price.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    for k in payload.keys():
        if k not in SALE_FIELDS:
            raise ValidationError(f"Field not allowed: {k}")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        for k in raw.keys():
            if k not in SALE_ITEM_FIELDS:
                raise ValidationError(f"items[{index}]: field not allowed: {k}")
        if raw.get("product_id") is None or raw.get("quantity") is None:
            raise ValidationError(f"items[{index}]: product_id and quantity are required")
        item = {
            "product_id": _coerce_int("product_id", raw["product_id"]),
            "quantity": coerce_quantity(raw["quantity"]),
            "unit_price_cents": None,
            "discount_cents": 0,
        }
        if raw.get("unit_price") is not None:
            item["unit_price_cents"] = coerce_money_cents("unit_price", raw["unit_price"])
        if raw.get("discount") is not None:
            item["discount_cents"] = coerce_money_cents("discount", raw["discount"])
        items.append(item)

    sale_date = None
    if payload.get("sale_date") is not None:
        try:
            sale_date = parse_iso_datetime(str(payload["sale_date"]))
        except ValueError:
            raise ValidationError("sale_date must be an ISO-8601 datetime")

    client_id = payload.get("client_id")
    return {
        "items": items,
        "client_id": _coerce_int("client_id", client_id) if client_id is not None else None,
        "reference": _optional_text(payload, "reference", 50),
        "payment_method": _optional_text(payload, "payment_method", 50),
        "notes": _optional_text(payload, "notes", 1000),
        "status": payload.get("status") or "PENDING",
        "sale_date": sale_date,
    }

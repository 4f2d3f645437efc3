"""
Domain errors raised by the stock ledger, the sale coordinator and the
product directory.

Every error is a recoverable, caller-facing rejection: the operation that
raised it has been rolled back and left no partial state behind.
"""
from __future__ import annotations


class InventoryError(Exception):
    """Base class for business-rule rejections."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFound(InventoryError):
    status_code = 404


class ProductNotFound(NotFound):
    def __init__(self, product_id):
        super().__init__(f"product not found: {product_id}", {"product_id": product_id})


class SaleNotFound(NotFound):
    def __init__(self, sale_ref):
        super().__init__(f"sale not found: {sale_ref}", {"sale": sale_ref})


class ClientNotFound(NotFound):
    def __init__(self, client_id):
        super().__init__(f"client not found: {client_id}", {"client_id": client_id})


class MovementNotFound(NotFound):
    def __init__(self, movement_id):
        super().__init__(f"stock movement not found: {movement_id}", {"movement_id": movement_id})


class InvalidQuantity(InventoryError):
    def __init__(self, quantity, message: str | None = None):
        super().__init__(
            message or f"quantity must be a positive integer, got {quantity!r}",
            {"quantity": quantity},
        )


class InsufficientStock(InventoryError):
    status_code = 409

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"insufficient stock: available {available}, requested {requested}",
            {"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class DuplicateReference(InventoryError):
    status_code = 409

    def __init__(self, reference: str):
        super().__init__(f"sale reference already exists: {reference}", {"reference": reference})


class InvalidTransition(InventoryError):
    status_code = 409

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"cannot change sale status from {current} to {requested}",
            {"from": current, "to": requested},
        )

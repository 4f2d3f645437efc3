from __future__ import annotations

from ..extensions import db
from smartstock.time_utils import to_utc_z, utcnow


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"


class StockMovement(db.Model):
    """
    One ledger entry: a signed quantity change for a product.

    Append-only. Rows are never updated or deleted; the ordered sequence of
    a product's movements is its full stock history and
    SUM(quantity) over it is the product's current stock.

    movement_type duplicates the sign of quantity (IN > 0, OUT < 0) so the
    intent of an entry is explicit when auditing.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_nonzero"),
        db.CheckConstraint(
            "(movement_type = 'IN' AND quantity > 0) OR (movement_type = 'OUT' AND quantity < 0)",
            name="ck_stock_movements_type_sign",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    movement_type = db.Column(db.String(10), nullable=False, index=True)

    reason = db.Column(db.String(500), nullable=True)
    # External identifier, e.g. a sale reference or purchase order number
    reference = db.Column(db.String(100), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "movement_type": self.movement_type,
            "reason": self.reason,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from smartstock.money_utils import cents_to_decimal
from smartstock.time_utils import to_utc_z, utcnow


STATUS_PENDING = "PENDING"
STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"
SALE_STATUSES = (STATUS_PENDING, STATUS_PAID, STATUS_CANCELLED)


class Sale(db.Model):
    """
    Sale document.

    Lifecycle: PENDING -> PAID -> CANCELLED, or PENDING -> CANCELLED.
    Only PAID consumes stock; see services/sales_service.py for the
    ledger side effects of each transition.

    total_amount_cents always equals the sum of the items' subtotals
    (kept by recalculate_total()).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    # Human-readable reference (e.g., "SALE-000042")
    reference = db.Column(db.String(50), nullable=False, unique=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    payment_method = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.String(1000), nullable=True)

    sale_date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
        lazy="selectin",
    )

    @property
    def total_amount(self):
        return cents_to_decimal(self.total_amount_cents)

    def recalculate_total(self) -> int:
        self.total_amount_cents = sum(item.subtotal_cents for item in self.items)
        return self.total_amount_cents

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "client_id": self.client_id,
            "reference": self.reference,
            "total_amount": self.total_amount,
            "status": self.status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "sale_date": to_utc_z(self.sale_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    unit_price_cents is captured when the sale is created so historical
    revenue does not move with later price changes. cost_price_cents is the
    product's cost at that moment (NULL if the product had none).
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sale_items_discount_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product", backref=db.backref("sale_items", lazy=True))

    @hybrid_property
    def subtotal_cents(self):
        return self.quantity * self.unit_price_cents - (self.discount_cents or 0)

    @subtotal_cents.expression
    def subtotal_cents(cls):
        return cls.quantity * cls.unit_price_cents - cls.discount_cents

    @property
    def subtotal(self):
        return cents_to_decimal(self.subtotal_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": cents_to_decimal(self.unit_price_cents),
            "discount": cents_to_decimal(self.discount_cents or 0),
            "subtotal": self.subtotal,
        }


class ReferenceSequence(db.Model):
    """
    Monotonic counters for human-readable references.

    One row per sequence name ("SALE"); next_number is the value the next
    allocation will hand out.
    """
    __tablename__ = "reference_sequences"

    name = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)

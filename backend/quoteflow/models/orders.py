from __future__ import annotations

from ..extensions import db
from quoteflow.money import format_cents
from quoteflow.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Order produced by converting (some of) a quotation's items.

    The order lifecycle after creation belongs to order management; this
    service only creates orders. quotation_id is a traceability link, not
    ownership: deleting either side leaves the other in place.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_quotation_created", "quotation_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "SO-000045")
    order_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id", ondelete="SET NULL"), nullable=True)
    source_quotation_number = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_company = db.Column(db.String(255), nullable=True)

    currency = db.Column(db.String(3), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    quotation = db.relationship("Quotation", foreign_keys=[quotation_id], backref=db.backref("orders", lazy=True))
    lines = db.relationship("OrderLine", backref=db.backref("order", lazy=True), cascade="all, delete-orphan", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "quotation_id": self.quotation_id,
            "source_quotation_number": self.source_quotation_number,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_company": self.customer_company,
            "currency": self.currency,
            "total_cents": self.total_cents,
            "total_amount": format_cents(self.total_cents),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class OrderLine(db.Model):
    """Order line copied verbatim from a quotation item (no re-pricing)."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    quotation_item_id = db.Column(db.Integer, db.ForeignKey("quotation_items.id", ondelete="SET NULL"), nullable=True, index=True)

    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    product_description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "quotation_item_id": self.quotation_item_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "product_description": self.product_description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }

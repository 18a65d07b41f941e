from __future__ import annotations

from ..extensions import db
from quoteflow.domain import QuotationStatus, STORED_STATUSES, TERMINAL_STATUSES
from quoteflow.money import format_cents
from quoteflow.time_utils import to_utc_z, utcnow


_STATUS_CHECK = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in sorted(STORED_STATUSES, key=lambda s: s.value))
)


class Quotation(db.Model):
    """
    Price quotation document.

    LIFECYCLE:
    1. draft: Being authored; items and customer snapshot may be edited
    2. sent: Delivered to the customer, awaiting a decision
    3. approved: Customer accepted; items may be converted to orders
    4. rejected: Closed with a reason (terminal)
    5. converted: Every item converted to an order (terminal)

    "expired" is derived from valid_until and never stored (see CHECK below).

    DESIGN PRINCIPLES:
    - Customer contact is a snapshot copied at creation, not a live reference
    - total_cents is the cached sum of item line totals, recomputed on item change
    - valid_until is never moved by the system
    - version_id guards every lifecycle write (optimistic concurrency)
    """
    __tablename__ = "quotations"
    __table_args__ = (
        db.CheckConstraint(_STATUS_CHECK, name="ck_quotations_status"),
        db.CheckConstraint("total_cents >= 0", name="ck_quotations_total_nonnegative"),
        db.Index("ix_quotations_status_valid_until", "status", "valid_until"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "QT-000123"), immutable once assigned
    quotation_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=QuotationStatus.DRAFT.value, index=True)

    # Customer snapshot
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False, index=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_company = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)

    currency = db.Column(db.String(3), nullable=False, default="USD")
    valid_until = db.Column(db.DateTime, nullable=False, index=True)

    # Sum of item line totals (minor units)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)
    terms_and_conditions = db.Column(db.Text, nullable=True)

    # Lifecycle attribution
    created_by_user_id = db.Column(db.Integer, nullable=True, index=True)
    sent_at = db.Column(db.DateTime, nullable=True)
    sent_by_user_id = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approved_by_user_id = db.Column(db.Integer, nullable=True)
    approval_reason = db.Column(db.Text, nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    rejected_by_user_id = db.Column(db.Integer, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    converted_at = db.Column(db.DateTime, nullable=True)

    # Latest order created from this quotation (non-owning)
    converted_order_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "QuotationItem",
        backref=db.backref("quotation", lazy=True),
        cascade="all, delete-orphan",
        order_by=lambda: [QuotationItem.sort_order, QuotationItem.id],
        lazy=True,
    )
    status_history = db.relationship(
        "QuotationStatusHistory",
        backref=db.backref("quotation", lazy=True),
        cascade="all, delete-orphan",
        order_by="QuotationStatusHistory.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Quotation id={self.id} number={self.quotation_number!r} status={self.status}>"

    def recompute_total(self) -> int:
        self.total_cents = sum(item.line_total_cents for item in self.items)
        return self.total_cents

    def is_expired(self, now=None) -> bool:
        if QuotationStatus(self.status) in TERMINAL_STATUSES:
            return False
        return (now or utcnow()) > self.valid_until

    def effective_status(self, now=None) -> str:
        return QuotationStatus.EXPIRED.value if self.is_expired(now) else self.status

    def to_dict(self, *, include_items: bool = True, include_history: bool = False) -> dict:
        now = utcnow()
        data = {
            "id": self.id,
            "quotation_number": self.quotation_number,
            "status": self.status,
            "effective_status": self.effective_status(now),
            "is_expired": self.is_expired(now),
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_company": self.customer_company,
            "customer_address": self.customer_address,
            "currency": self.currency,
            "valid_until": to_utc_z(self.valid_until),
            "total_cents": self.total_cents,
            "total_amount": format_cents(self.total_cents),
            "notes": self.notes,
            "internal_notes": self.internal_notes,
            "terms_and_conditions": self.terms_and_conditions,
            "created_by_user_id": self.created_by_user_id,
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "sent_by_user_id": self.sent_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approved_by_user_id": self.approved_by_user_id,
            "approval_reason": self.approval_reason,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejection_reason": self.rejection_reason,
            "converted_at": to_utc_z(self.converted_at) if self.converted_at else None,
            "converted_order_id": self.converted_order_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["item_count"] = len(self.items)
            data["open_item_count"] = sum(1 for item in self.items if not item.is_consumed)
        if include_history:
            data["status_history"] = [h.to_dict() for h in self.status_history]
        return data


class QuotationItem(db.Model):
    """
    Line item on a quotation.

    Product fields are a snapshot taken when the quotation was authored.
    consumed_at is set exactly once, by the conversion that moved the item
    into an order; a consumed item can never be converted again.
    """
    __tablename__ = "quotation_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_quotation_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_quotation_items_price_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True)

    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    product_description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    # Conversion bookkeeping
    consumed_at = db.Column(db.DateTime, nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    order = db.relationship("Order", foreign_keys=[order_id], backref=db.backref("quotation_items", lazy=True))

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quotation_id": self.quotation_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "product_description": self.product_description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "line_total": format_cents(self.line_total_cents),
            "sort_order": self.sort_order,
            "is_consumed": self.is_consumed,
            "consumed_at": to_utc_z(self.consumed_at) if self.consumed_at else None,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class QuotationStatusHistory(db.Model):
    """
    Status change trail for a quotation.

    Written in the same transaction as the transition it records, so a row
    exists if and only if the transition committed. Append-only.
    """
    __tablename__ = "quotation_status_history"
    __table_args__ = (
        db.Index("ix_quotation_status_history_quotation", "quotation_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False)
    old_status = db.Column(db.String(16), nullable=True)
    new_status = db.Column(db.String(16), nullable=False)
    changed_by_user_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quotation_id": self.quotation_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_by_user_id": self.changed_by_user_id,
            "reason": self.reason,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

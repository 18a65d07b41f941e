# Overview: Quotation state type and immutable snapshots shared by the lifecycle services.

"""
Quotation domain types.

The ORM models in ``quoteflow.models`` are the persisted shape; the services
that decide and compute transitions work on the frozen snapshots defined here
instead. A snapshot is what the repository read at one instant, so the
validator and the conversion engine can never mutate persisted state by
accident, and the repository can compare what a caller saw against what is in
the database when it writes.

STATE MACHINE:
    draft --send--> sent --approve--> approved --convert(full)--> converted
    sent --reject--> rejected
    approved --reject--> rejected
    approved --convert(partial)--> approved

    "expired" is never stored. It is derived from valid_until for every
    non-terminal quotation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class QuotationStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Values that may be written to quotations.status
STORED_STATUSES = frozenset({
    QuotationStatus.DRAFT,
    QuotationStatus.SENT,
    QuotationStatus.APPROVED,
    QuotationStatus.REJECTED,
    QuotationStatus.CONVERTED,
})
TERMINAL_STATUSES = frozenset({QuotationStatus.REJECTED, QuotationStatus.CONVERTED})


class Action(str, enum.Enum):
    SEND = "send"
    APPROVE = "approve"
    REJECT = "reject"
    CONVERT = "convert"


@dataclass(frozen=True)
class ItemSnapshot:
    id: int
    product_id: str
    product_name: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    product_sku: str | None = None
    product_description: str | None = None
    sort_order: int = 0
    consumed: bool = False
    order_id: int | None = None


@dataclass(frozen=True)
class QuotationSnapshot:
    id: int
    quotation_number: str
    status: QuotationStatus
    currency: str
    valid_until: datetime
    total_cents: int
    version_id: int
    items: tuple[ItemSnapshot, ...] = ()
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str | None = None
    customer_company: str | None = None
    created_by: int | None = None

    def is_expired(self, now: datetime) -> bool:
        """Past valid_until and not already terminal."""
        if self.status.is_terminal:
            return False
        return now > self.valid_until

    def effective_status(self, now: datetime) -> QuotationStatus:
        if self.is_expired(now):
            return QuotationStatus.EXPIRED
        return self.status

    @property
    def open_items(self) -> tuple[ItemSnapshot, ...]:
        return tuple(item for item in self.items if not item.consumed)

    def item_ids(self) -> set[int]:
        return {item.id for item in self.items}


@dataclass(frozen=True)
class TransitionContext:
    now: datetime
    reason: str | None = None
    selected_item_ids: tuple[int, ...] | None = None


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    reason: str | None = None
    # Machine-readable cause when not allowed ("expired", "reason_required", ...)
    code: str | None = None
    is_partial: bool = False
    offending_item_ids: tuple[int, ...] = ()

    @classmethod
    def allow(cls, *, is_partial: bool = False) -> "TransitionDecision":
        return cls(allowed=True, is_partial=is_partial)

    @classmethod
    def deny(cls, code: str, reason: str, *, offending_item_ids=()) -> "TransitionDecision":
        return cls(
            allowed=False,
            reason=reason,
            code=code,
            offending_item_ids=tuple(sorted(offending_item_ids)),
        )


@dataclass(frozen=True)
class OrderLineDraft:
    quotation_item_id: int
    product_id: str
    product_name: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    product_sku: str | None = None
    product_description: str | None = None


@dataclass(frozen=True)
class OrderDraft:
    quotation_id: int
    quotation_number: str
    currency: str
    customer_name: str
    customer_email: str
    lines: tuple[OrderLineDraft, ...]
    total_cents: int
    customer_phone: str | None = None
    customer_company: str | None = None
    notes: str | None = None
    created_by: int | None = None


@dataclass(frozen=True)
class ConversionResult:
    order_draft: OrderDraft
    quotation_status_after: QuotationStatus
    is_partial: bool
    converted_item_ids: tuple[int, ...]
    remaining_item_ids: tuple[int, ...]
    # Value of what remains open on the quotation after this conversion
    remaining_total_cents: int = 0

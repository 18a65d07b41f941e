# Overview: Quotation-to-order conversion algorithm; pure computation over snapshots.

"""
Conversion Engine

Given an approved quotation snapshot and the ids a staff member selected,
compute the order draft and the quotation's residual state.

ALGORITHM:
1. Partition the open (unconsumed) items into selected and remaining
2. Copy selected items verbatim into order lines (no re-pricing)
3. Order total = sum of selected line totals = selected_total()
4. Selected items become consumed on the residual snapshot
5. Remaining empty -> converted; otherwise the quotation stays approved

Nothing here writes to the database. Either a complete ConversionResult is
returned or an error is raised and the caller's snapshot is untouched (it is
frozen anyway). Persisting the result atomically is the lifecycle service's
job.

Amounts are integer minor units in the quotation's currency, so sums are
exact and partial conversions can never drift from the full total.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from quoteflow.domain import (
    ConversionResult,
    ItemSnapshot,
    OrderDraft,
    OrderLineDraft,
    QuotationSnapshot,
    QuotationStatus,
)
from quoteflow.errors import ItemSelectionError, ValidationError


def partition_items(
    quotation: QuotationSnapshot,
    selected_item_ids: Iterable[int],
) -> tuple[list[ItemSnapshot], list[ItemSnapshot]]:
    """
    Split open items into (selected, remaining), preserving quotation order.

    Raises ItemSelectionError for ids that are unknown or already consumed.
    """
    wanted = set(selected_item_ids)
    known = quotation.item_ids()
    unknown = wanted - known
    if unknown:
        raise ItemSelectionError(
            "Selected items do not belong to this quotation",
            details={"item_ids": sorted(unknown)},
        )

    consumed = sorted(item.id for item in quotation.items if item.consumed and item.id in wanted)
    if consumed:
        raise ItemSelectionError(
            "Selected items were already converted",
            details={"item_ids": consumed},
        )

    selected: list[ItemSnapshot] = []
    remaining: list[ItemSnapshot] = []
    for item in quotation.open_items:
        (selected if item.id in wanted else remaining).append(item)
    return selected, remaining


def selected_total(quotation: QuotationSnapshot, selected_item_ids: Iterable[int]) -> int:
    """Total of the selected open items; the figure previews and orders both use."""
    selected, _ = partition_items(quotation, selected_item_ids)
    return sum(item.line_total_cents for item in selected)


def _order_line(item: ItemSnapshot) -> OrderLineDraft:
    return OrderLineDraft(
        quotation_item_id=item.id,
        product_id=item.product_id,
        product_name=item.product_name,
        product_sku=item.product_sku,
        product_description=item.product_description,
        quantity=item.quantity,
        unit_price_cents=item.unit_price_cents,
        line_total_cents=item.line_total_cents,
    )


def convert(
    quotation: QuotationSnapshot,
    selected_item_ids: Iterable[int],
    *,
    notes: str | None = None,
    actor_id: int | None = None,
) -> ConversionResult:
    """Compute the order draft and the post-conversion status for a selection."""
    if quotation.status is not QuotationStatus.APPROVED:
        raise ValidationError(
            f"Only approved quotations can be converted (status is '{quotation.status.value}')"
        )

    selected, remaining = partition_items(quotation, selected_item_ids)
    if not selected:
        raise ValidationError("Select at least one item to convert")

    lines = tuple(_order_line(item) for item in selected)
    total = sum(line.line_total_cents for line in lines)

    draft = OrderDraft(
        quotation_id=quotation.id,
        quotation_number=quotation.quotation_number,
        currency=quotation.currency,
        customer_name=quotation.customer_name,
        customer_email=quotation.customer_email,
        customer_phone=quotation.customer_phone,
        customer_company=quotation.customer_company,
        lines=lines,
        total_cents=total,
        notes=notes,
        created_by=actor_id,
    )

    status_after = QuotationStatus.APPROVED if remaining else QuotationStatus.CONVERTED
    return ConversionResult(
        order_draft=draft,
        quotation_status_after=status_after,
        is_partial=bool(remaining),
        converted_item_ids=tuple(item.id for item in selected),
        remaining_item_ids=tuple(item.id for item in remaining),
        remaining_total_cents=sum(item.line_total_cents for item in remaining),
    )


def apply_conversion(quotation: QuotationSnapshot, result: ConversionResult) -> QuotationSnapshot:
    """Residual snapshot: converted items consumed, status per the result."""
    converted = set(result.converted_item_ids)
    items = tuple(
        replace(item, consumed=True) if item.id in converted else item
        for item in quotation.items
    )
    return replace(quotation, items=items, status=result.quotation_status_after)

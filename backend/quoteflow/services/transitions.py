# Overview: Pure transition rules for the quotation state machine; no database access.

"""
Quotation Transition Rules

================================================================================
PURPOSE: One place that decides whether a lifecycle action is legal
================================================================================

Every caller (HTTP layer, lifecycle service, UI hints via allowed_actions)
asks can_transition() instead of re-deriving "can this be rejected?" from the
status string.

RULES (evaluated in this order):
1. rejected / converted are terminal: every action is refused
2. past valid_until the quotation is expired: every action is refused,
   whatever the stored status says
3. send:    draft only, and the quotation must have a positive total
4. approve: sent only (reason optional)
5. reject:  sent or approved, with a non-blank reason
6. convert: approved only, with at least one selected item; every selected
            id must belong to the quotation and still be unconsumed

The selection is "full" when it covers every still-open item and "partial"
otherwise.
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from quoteflow.domain import (
    Action,
    QuotationSnapshot,
    QuotationStatus,
    TransitionContext,
    TransitionDecision,
)
from quoteflow.errors import ItemSelectionError, ValidationError


# Source states per action (expiration and terminal checks come first)
ALLOWED_SOURCES = {
    Action.SEND: frozenset({QuotationStatus.DRAFT}),
    Action.APPROVE: frozenset({QuotationStatus.SENT}),
    Action.REJECT: frozenset({QuotationStatus.SENT, QuotationStatus.APPROVED}),
    Action.CONVERT: frozenset({QuotationStatus.APPROVED}),
}

SELECTION_CODES = frozenset({"unknown_items", "consumed_items"})


def _check_convert_selection(
    quotation: QuotationSnapshot,
    selected: tuple[int, ...] | None,
) -> TransitionDecision:
    if not selected:
        return TransitionDecision.deny(
            "empty_selection",
            "Select at least one item to convert",
        )

    wanted = set(selected)
    unknown = wanted - quotation.item_ids()
    if unknown:
        return TransitionDecision.deny(
            "unknown_items",
            f"Items not on quotation {quotation.quotation_number}: "
            f"{', '.join(str(i) for i in sorted(unknown))}",
            offending_item_ids=unknown,
        )

    consumed = {item.id for item in quotation.items if item.consumed and item.id in wanted}
    if consumed:
        return TransitionDecision.deny(
            "consumed_items",
            "Items already converted to an order: "
            f"{', '.join(str(i) for i in sorted(consumed))}",
            offending_item_ids=consumed,
        )

    open_count = len(quotation.open_items)
    return TransitionDecision.allow(is_partial=len(wanted) < open_count)


def can_transition(
    quotation: QuotationSnapshot,
    action: Action | str,
    context: TransitionContext,
) -> TransitionDecision:
    """
    Decide whether ``action`` may be applied to ``quotation`` at ``context.now``.

    Pure: reads the snapshot and the context, never touches storage.
    """
    action = Action(action)
    status = quotation.status
    number = quotation.quotation_number

    if status.is_terminal:
        return TransitionDecision.deny(
            "terminal",
            f"Quotation {number} is {status.value}; no further changes are allowed",
        )

    if quotation.is_expired(context.now):
        return TransitionDecision.deny(
            "expired",
            f"Cannot {action.value} quotation {number}: it expired on "
            f"{quotation.valid_until.date().isoformat()}",
        )

    if status not in ALLOWED_SOURCES[action]:
        allowed = " or ".join(sorted(s.value for s in ALLOWED_SOURCES[action]))
        return TransitionDecision.deny(
            "invalid_state",
            f"Cannot {action.value} quotation {number}: "
            f"current status is '{status.value}', must be {allowed}",
        )

    if action is Action.SEND:
        if not quotation.items or quotation.total_cents <= 0:
            return TransitionDecision.deny(
                "empty_quotation",
                f"Cannot send quotation {number}: it has no billable items",
            )
        return TransitionDecision.allow()

    if action is Action.APPROVE:
        return TransitionDecision.allow()

    if action is Action.REJECT:
        if not (context.reason or "").strip():
            return TransitionDecision.deny(
                "reason_required",
                "A reason is required to reject a quotation",
            )
        return TransitionDecision.allow()

    return _check_convert_selection(quotation, context.selected_item_ids)


def check_transition(
    quotation: QuotationSnapshot,
    action: Action | str,
    context: TransitionContext,
) -> TransitionDecision:
    """can_transition(), raising the matching ValidationError when refused."""
    decision = can_transition(quotation, action, context)
    if decision.allowed:
        return decision

    details = {"code": decision.code, "quotation_id": quotation.id}
    if decision.offending_item_ids:
        details["item_ids"] = list(decision.offending_item_ids)
    if decision.code in SELECTION_CODES:
        raise ItemSelectionError(decision.reason, details=details)
    raise ValidationError(decision.reason, details=details)


def allowed_actions(quotation: QuotationSnapshot, now: datetime) -> list[str]:
    """
    Actions a UI may offer right now.

    reject is listed when only the missing reason would block it, and convert
    when the quotation could convert its remaining items.
    """
    actions = []
    probe_ids = tuple(item.id for item in quotation.open_items)
    for action in Action:
        context = TransitionContext(now=now, reason="-", selected_item_ids=probe_ids)
        if can_transition(quotation, action, context).allowed:
            actions.append(action.value)
    return actions

"""
Transition rule tests.

Pure: every case is a frozen snapshot plus an explicit "now"; no database.
"""

from datetime import datetime, timedelta

import pytest

from quoteflow.domain import (
    Action,
    ItemSnapshot,
    QuotationSnapshot,
    QuotationStatus,
    TransitionContext,
)
from quoteflow.errors import ItemSelectionError, ValidationError
from quoteflow.services.transitions import allowed_actions, can_transition, check_transition


NOW = datetime(2026, 5, 1, 12, 0, 0)


def make_item(item_id, quantity=1, unit_price_cents=1000, consumed=False):
    return ItemSnapshot(
        id=item_id,
        product_id=f"P-{item_id}",
        product_name=f"Product {item_id}",
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        line_total_cents=quantity * unit_price_cents,
        consumed=consumed,
    )


def make_quotation(status="approved", items=None, valid_until=None):
    if items is None:
        items = (make_item(1, 2, 1000), make_item(2, 1, 500))
    return QuotationSnapshot(
        id=1,
        quotation_number="QT-000001",
        status=QuotationStatus(status),
        currency="USD",
        valid_until=valid_until or NOW + timedelta(days=5),
        total_cents=sum(item.line_total_cents for item in items),
        version_id=1,
        items=tuple(items),
        customer_name="Ada Buyer",
        customer_email="ada@example.com",
    )


def ctx(reason=None, selected=None, now=NOW):
    return TransitionContext(now=now, reason=reason, selected_item_ids=selected)


YESTERDAY = NOW - timedelta(days=1)


# =============================================================================
# SOURCE STATES
# =============================================================================


class TestSourceStates:
    @pytest.mark.parametrize(
        "status,action,allowed",
        [
            ("draft", "send", True),
            ("sent", "send", False),
            ("approved", "send", False),
            ("sent", "approve", True),
            ("draft", "approve", False),
            ("approved", "approve", False),
            ("sent", "reject", True),
            ("approved", "reject", True),
            ("draft", "reject", False),
            ("approved", "convert", True),
            ("sent", "convert", False),
            ("draft", "convert", False),
        ],
    )
    def test_allowed_sources(self, status, action, allowed):
        decision = can_transition(
            make_quotation(status),
            action,
            ctx(reason="because", selected=(1, 2)),
        )
        assert decision.allowed is allowed
        if not allowed:
            assert decision.code == "invalid_state"

    def test_invalid_state_message_names_current_status(self):
        decision = can_transition(make_quotation("draft"), Action.APPROVE, ctx())
        assert "'draft'" in decision.reason
        assert "sent" in decision.reason


class TestTerminalStates:
    @pytest.mark.parametrize("status", ["rejected", "converted"])
    @pytest.mark.parametrize("action", list(Action))
    def test_terminal_refuses_everything(self, status, action):
        decision = can_transition(make_quotation(status), action, ctx(reason="x", selected=(1,)))
        assert not decision.allowed
        assert decision.code == "terminal"

    def test_terminal_reported_before_expiry(self):
        quotation = make_quotation("converted", valid_until=YESTERDAY)
        decision = can_transition(quotation, Action.REJECT, ctx(reason="late"))
        assert decision.code == "terminal"


# =============================================================================
# EXPIRATION
# =============================================================================


class TestExpiration:
    @pytest.mark.parametrize(
        "status,action",
        [
            ("draft", "send"),
            ("sent", "approve"),
            ("sent", "reject"),
            ("approved", "reject"),
            ("approved", "convert"),
        ],
    )
    def test_expired_quotation_refuses_action(self, status, action):
        quotation = make_quotation(status, valid_until=YESTERDAY)
        decision = can_transition(quotation, action, ctx(reason="x", selected=(1, 2)))
        assert not decision.allowed
        assert decision.code == "expired"

    def test_expired_approve_raises_validation_error(self):
        quotation = make_quotation("sent", valid_until=YESTERDAY)
        with pytest.raises(ValidationError) as exc_info:
            check_transition(quotation, Action.APPROVE, ctx())
        assert exc_info.value.details["code"] == "expired"
        assert "expired" in exc_info.value.message

    def test_valid_until_exactly_now_is_not_expired(self):
        quotation = make_quotation("sent", valid_until=NOW)
        assert can_transition(quotation, Action.APPROVE, ctx()).allowed

    def test_effective_status(self):
        assert make_quotation("sent", valid_until=YESTERDAY).effective_status(NOW) is QuotationStatus.EXPIRED
        assert make_quotation("sent").effective_status(NOW) is QuotationStatus.SENT
        assert make_quotation("rejected", valid_until=YESTERDAY).effective_status(NOW) is QuotationStatus.REJECTED


# =============================================================================
# ACTION-SPECIFIC RULES
# =============================================================================


class TestSend:
    def test_send_requires_items(self):
        decision = can_transition(make_quotation("draft", items=()), Action.SEND, ctx())
        assert decision.code == "empty_quotation"

    def test_send_requires_positive_total(self):
        quotation = make_quotation("draft", items=(make_item(1, 3, 0),))
        decision = can_transition(quotation, Action.SEND, ctx())
        assert not decision.allowed
        assert decision.code == "empty_quotation"


class TestReject:
    @pytest.mark.parametrize("reason", [None, "", "   ", "\n\t"])
    def test_blank_reason_refused(self, reason):
        decision = can_transition(make_quotation("sent"), Action.REJECT, ctx(reason=reason))
        assert not decision.allowed
        assert decision.code == "reason_required"

    def test_blank_reason_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            check_transition(make_quotation("sent"), Action.REJECT, ctx(reason=""))
        assert exc_info.value.details == {"code": "reason_required", "quotation_id": 1}


class TestConvertSelection:
    def test_full_selection(self):
        decision = can_transition(make_quotation(), Action.CONVERT, ctx(selected=(1, 2)))
        assert decision.allowed
        assert decision.is_partial is False

    def test_partial_selection(self):
        decision = can_transition(make_quotation(), Action.CONVERT, ctx(selected=(1,)))
        assert decision.allowed
        assert decision.is_partial is True

    @pytest.mark.parametrize("selected", [None, ()])
    def test_empty_selection_refused(self, selected):
        decision = can_transition(make_quotation(), Action.CONVERT, ctx(selected=selected))
        assert decision.code == "empty_selection"

    def test_unknown_item_refused(self):
        decision = can_transition(make_quotation(), Action.CONVERT, ctx(selected=(1, 99)))
        assert decision.code == "unknown_items"
        assert decision.offending_item_ids == (99,)

    def test_consumed_item_refused(self):
        quotation = make_quotation(items=(make_item(1, consumed=True), make_item(2)))
        decision = can_transition(quotation, Action.CONVERT, ctx(selected=(1, 2)))
        assert decision.code == "consumed_items"
        assert decision.offending_item_ids == (1,)

    def test_last_open_item_is_full_conversion(self):
        quotation = make_quotation(items=(make_item(1, consumed=True), make_item(2), make_item(3, consumed=True)))
        decision = can_transition(quotation, Action.CONVERT, ctx(selected=(2,)))
        assert decision.allowed
        assert decision.is_partial is False

    def test_selection_errors_raise_item_selection_error(self):
        with pytest.raises(ItemSelectionError) as exc_info:
            check_transition(make_quotation(), Action.CONVERT, ctx(selected=(42,)))
        assert exc_info.value.details["item_ids"] == [42]
        # still a ValidationError for callers that only distinguish the base class
        assert isinstance(exc_info.value, ValidationError)


# =============================================================================
# UI HINTS
# =============================================================================


class TestAllowedActions:
    @pytest.mark.parametrize(
        "status,expected",
        [
            ("draft", ["send"]),
            ("sent", ["approve", "reject"]),
            ("approved", ["reject", "convert"]),
            ("rejected", []),
            ("converted", []),
        ],
    )
    def test_actions_per_status(self, status, expected):
        assert allowed_actions(make_quotation(status), NOW) == expected

    def test_expired_offers_nothing(self):
        assert allowed_actions(make_quotation("approved", valid_until=YESTERDAY), NOW) == []

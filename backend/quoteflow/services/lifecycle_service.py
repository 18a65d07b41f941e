# Overview: Service-layer orchestration of quotation lifecycle actions (send, approve, reject, convert).

"""
Quotation Lifecycle Service

================================================================================
PURPOSE: Run one user-initiated lifecycle action end to end
================================================================================

SEQUENCE (every action):
1. Load a snapshot of the quotation and its items
2. Ask the transition rules; refuse with ValidationError before any write
3. convert only: compute the order draft and item partition
4. Persist status, items and (convert) the order in ONE transaction
5. After commit: notification (if requested) and audit, best-effort
6. Return the fresh quotation (and order)

RULES (NON-NEGOTIABLE):
1. Nothing is notified or audited for a transition that did not commit
2. A quotation is never left converted without its order, nor the reverse
3. An item is consumed at most once; a losing concurrent conversion gets
   ConflictError, never a second order for the same item
4. Notification/audit failures are logged and swallowed (BestEffortFailure)
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from flask import current_app

from ..models import Order, Quotation
from quoteflow.domain import (
    Action,
    ConversionResult,
    QuotationSnapshot,
    QuotationStatus,
    TransitionContext,
)
from quoteflow.errors import BestEffortFailure
from quoteflow.time_utils import utcnow
from . import conversion_engine
from .audit import AuditRecorder, LoggingAuditRecorder
from .document_service import ORDER_DOCUMENT, next_document_number
from .notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    QuotationEvent,
    build_notification_dispatcher,
)
from .quotation_repository import QuotationRepository
from .transitions import check_transition

logger = logging.getLogger(__name__)


EVENT_TYPES = {
    Action.SEND: "quotation.sent",
    Action.APPROVE: "quotation.approved",
    Action.REJECT: "quotation.rejected",
    Action.CONVERT: "quotation.converted",
}


@dataclass
class LifecycleOutcome:
    quotation: Quotation
    action: Action
    order: Order | None = None
    conversion: ConversionResult | None = None
    notification_sent: bool = False

    def to_dict(self) -> dict:
        data = {
            "quotation": self.quotation.to_dict(),
            "action": self.action.value,
            "notification_sent": self.notification_sent,
        }
        if self.order is not None:
            data["order"] = self.order.to_dict()
            data["order_id"] = self.order.id
        if self.conversion is not None:
            data["conversion_type"] = "partial" if self.conversion.is_partial else "full"
            data["is_partial"] = self.conversion.is_partial
            data["converted_item_ids"] = list(self.conversion.converted_item_ids)
            data["remaining_item_ids"] = list(self.conversion.remaining_item_ids)
            data["remaining_total_cents"] = self.conversion.remaining_total_cents
        return data


def _event_state(snapshot: QuotationSnapshot) -> dict:
    return {
        "status": snapshot.status.value,
        "total_cents": snapshot.total_cents,
        "open_item_ids": [item.id for item in snapshot.open_items],
    }


class QuotationLifecycleService:
    """
    The only writer of quotation lifecycle state.

    Collaborators are injected so tests (and other deployments) can swap the
    repository, the notification transport or the audit sink.
    """

    def __init__(
        self,
        repository: QuotationRepository | None = None,
        notifier: NotificationDispatcher | None = None,
        auditor: AuditRecorder | None = None,
        clock: Callable = utcnow,
        order_number_prefix: str = "SO",
    ):
        self.repository = repository or QuotationRepository()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.auditor = auditor or LoggingAuditRecorder()
        self.clock = clock
        self.order_number_prefix = order_number_prefix

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def perform(self, action: Action | str, quotation_id: int, **params) -> LifecycleOutcome:
        """Dispatch by action name; params are those of the named operation."""
        handlers = {
            Action.SEND: self.send_quotation,
            Action.APPROVE: self.approve_quotation,
            Action.REJECT: self.reject_quotation,
            Action.CONVERT: self.convert_to_order,
        }
        return handlers[Action(action)](quotation_id, **params)

    def send_quotation(
        self,
        quotation_id: int,
        *,
        actor_id: int | None,
        notes: str | None = None,
        notify: bool = True,
    ) -> LifecycleOutcome:
        before = self.repository.get(quotation_id)
        now = self.clock()
        check_transition(before, Action.SEND, TransitionContext(now=now))

        after = replace(before, status=QuotationStatus.SENT)
        fields = {"sent_at": now, "sent_by_user_id": actor_id}
        with self.repository.atomic():
            self.repository.save(before, after, fields=fields)
            self.repository.add_history(
                quotation_id=before.id,
                old_status=before.status.value,
                new_status=after.status.value,
                actor_id=actor_id,
                notes=notes,
            )

        return self._after_commit(Action.SEND, before, after, actor_id=actor_id, notify=notify,
                                  details={"notes": notes})

    def approve_quotation(
        self,
        quotation_id: int,
        *,
        actor_id: int | None,
        reason: str | None = None,
        notes: str | None = None,
        notify: bool = True,
    ) -> LifecycleOutcome:
        before = self.repository.get(quotation_id)
        now = self.clock()
        check_transition(before, Action.APPROVE, TransitionContext(now=now, reason=reason))

        reason = (reason or "").strip() or None
        after = replace(before, status=QuotationStatus.APPROVED)
        fields = {
            "approved_at": now,
            "approved_by_user_id": actor_id,
            "approval_reason": reason,
        }
        with self.repository.atomic():
            self.repository.save(before, after, fields=fields)
            self.repository.add_history(
                quotation_id=before.id,
                old_status=before.status.value,
                new_status=after.status.value,
                actor_id=actor_id,
                reason=reason,
                notes=notes,
            )

        return self._after_commit(Action.APPROVE, before, after, actor_id=actor_id, notify=notify,
                                  details={"reason": reason, "notes": notes})

    def reject_quotation(
        self,
        quotation_id: int,
        *,
        actor_id: int | None,
        reason: str | None,
        notes: str | None = None,
        notify: bool = True,
    ) -> LifecycleOutcome:
        before = self.repository.get(quotation_id)
        now = self.clock()
        check_transition(before, Action.REJECT, TransitionContext(now=now, reason=reason))

        reason = reason.strip()
        after = replace(before, status=QuotationStatus.REJECTED)
        fields = {
            "rejected_at": now,
            "rejected_by_user_id": actor_id,
            "rejection_reason": reason,
        }
        with self.repository.atomic():
            self.repository.save(before, after, fields=fields)
            self.repository.add_history(
                quotation_id=before.id,
                old_status=before.status.value,
                new_status=after.status.value,
                actor_id=actor_id,
                reason=reason,
                notes=notes,
            )

        return self._after_commit(Action.REJECT, before, after, actor_id=actor_id, notify=notify,
                                  details={"reason": reason, "notes": notes})

    def convert_to_order(
        self,
        quotation_id: int,
        *,
        actor_id: int | None,
        item_ids=None,
        notes: str | None = None,
        notify: bool = True,
    ) -> LifecycleOutcome:
        """
        Convert the selected items (default: every open item) into one order.

        Partial conversions leave the quotation approved with the remaining
        items still open; converting the last open items makes it converted.
        """
        before = self.repository.get(quotation_id)
        now = self.clock()
        if item_ids is None:
            selected = tuple(item.id for item in before.open_items)
        else:
            selected = tuple(dict.fromkeys(item_ids))
        check_transition(
            before,
            Action.CONVERT,
            TransitionContext(now=now, selected_item_ids=selected),
        )

        result = conversion_engine.convert(before, selected, notes=notes, actor_id=actor_id)
        after = conversion_engine.apply_conversion(before, result)

        with self.repository.atomic():
            fields = {}
            if not result.is_partial:
                fields["converted_at"] = now
            self.repository.save(
                before,
                after,
                fields=fields,
                consume_item_ids=result.converted_item_ids,
                consumed_at=now,
            )
            order_number = next_document_number(
                document_type=ORDER_DOCUMENT,
                prefix=self.order_number_prefix,
            )
            order = self.repository.create_order(result.order_draft, order_number=order_number)
            self.repository.link_items_to_order(result.converted_item_ids, order.id)
            self.repository.record_converted_order(before.id, order.id)
            self.repository.add_history(
                quotation_id=before.id,
                old_status=before.status.value,
                new_status=after.status.value,
                actor_id=actor_id,
                notes=notes or (
                    f"{'Partial' if result.is_partial else 'Full'} conversion to order {order_number}"
                ),
            )
            order_id = order.id

        return self._after_commit(
            Action.CONVERT,
            before,
            after,
            actor_id=actor_id,
            notify=notify,
            details={
                "order_id": order_id,
                "order_number": order_number,
                "is_partial": result.is_partial,
                "converted_item_ids": list(result.converted_item_ids),
                "remaining_item_ids": list(result.remaining_item_ids),
                "order_total_cents": result.order_draft.total_cents,
            },
            conversion=result,
            order_id=order_id,
        )

    # ------------------------------------------------------------------
    # Post-commit
    # ------------------------------------------------------------------

    def _after_commit(
        self,
        action: Action,
        before: QuotationSnapshot,
        after: QuotationSnapshot,
        *,
        actor_id: int | None,
        notify: bool,
        details: dict,
        conversion: ConversionResult | None = None,
        order_id: int | None = None,
    ) -> LifecycleOutcome:
        logger.info(
            "quotation %s %s -> %s by %s",
            before.quotation_number, before.status.value, after.status.value, actor_id,
        )
        event = QuotationEvent(
            type=EVENT_TYPES[action],
            quotation_id=before.id,
            quotation_number=before.quotation_number,
            actor_id=actor_id,
            before=_event_state(before),
            after=_event_state(after),
            details={k: v for k, v in details.items() if v is not None},
        )

        notification_sent = False
        if notify:
            notification_sent = self._best_effort("notification", self.notifier.notify, event)
        self._best_effort("audit", self.auditor.record, event)

        outcome = LifecycleOutcome(
            quotation=self.repository.load(before.id),
            action=action,
            conversion=conversion,
            notification_sent=notification_sent,
        )
        if order_id is not None:
            outcome.order = self.repository.get_order(order_id)
        return outcome

    def _best_effort(self, label: str, func, event: QuotationEvent) -> bool:
        try:
            func(event)
            return True
        except BestEffortFailure:
            logger.exception("%s failed for %s (transition kept)", label.capitalize(), event.type)
        except Exception:
            logger.exception("Unexpected %s error for %s (transition kept)", label, event.type)
        return False


def get_lifecycle_service() -> QuotationLifecycleService:
    """Service wired from the current app's configuration."""
    config = current_app.config
    return QuotationLifecycleService(
        notifier=build_notification_dispatcher(config),
        order_number_prefix=config.get("ORDER_NUMBER_PREFIX", "SO"),
    )

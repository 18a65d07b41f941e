# Overview: Best-effort notification dispatch for committed quotation transitions.

"""
Notification dispatch.

Dispatchers are invoked only after a transition has committed. A dispatcher
reports failure by raising BestEffortFailure; the lifecycle service logs it
and carries on, so a broken webhook can never undo an approval.

Delivery transports (email, WhatsApp, ...) live behind the webhook; this
service only hands the event over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import httpx

from quoteflow.errors import BestEffortFailure
from quoteflow.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotationEvent:
    """A committed transition, with before/after snapshots of the relevant fields."""
    type: str
    quotation_id: int
    quotation_number: str
    actor_id: int | None
    before: dict
    after: dict
    details: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "quotation_id": self.quotation_id,
            "quotation_number": self.quotation_number,
            "actor_id": self.actor_id,
            "before": self.before,
            "after": self.after,
            "details": self.details,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class NotificationDispatcher(Protocol):
    def notify(self, event: QuotationEvent) -> None:
        ...


class LoggingNotificationDispatcher:
    """Default dispatcher when no webhook is configured."""

    def notify(self, event: QuotationEvent) -> None:
        logger.info(
            "Notification %s for quotation %s (actor=%s)",
            event.type, event.quotation_number, event.actor_id,
        )


class WebhookNotificationDispatcher:
    """POST each event as JSON to a delivery service."""

    def __init__(self, url: str, *, timeout: float = 5.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def notify(self, event: QuotationEvent) -> None:
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.post(self.url, json=event.to_dict())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise BestEffortFailure(
                f"Notification {event.type} for {event.quotation_number} failed: {exc}",
                details={"url": self.url},
            ) from exc
        finally:
            if self._client is None:
                client.close()


def build_notification_dispatcher(config) -> NotificationDispatcher:
    url = config.get("NOTIFICATION_WEBHOOK_URL")
    if url:
        return WebhookNotificationDispatcher(
            url,
            timeout=float(config.get("NOTIFICATION_TIMEOUT_SECONDS", 5.0)),
        )
    return LoggingNotificationDispatcher()

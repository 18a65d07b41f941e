# Overview: Best-effort audit hand-off for committed quotation transitions.

from __future__ import annotations

import json
import logging
from typing import Protocol

from .notifications import QuotationEvent

audit_logger = logging.getLogger("quoteflow.audit")


class AuditRecorder(Protocol):
    def record(self, event: QuotationEvent) -> None:
        ...


class LoggingAuditRecorder:
    """
    Emit one structured line per committed transition on the
    "quoteflow.audit" logger; the log pipeline owns storage and querying.
    """

    def record(self, event: QuotationEvent) -> None:
        audit_logger.info(json.dumps(event.to_dict(), sort_keys=True, default=str))

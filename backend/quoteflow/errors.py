# Overview: Error taxonomy shared by the quotation services and the HTTP layer.

"""
Quotation error taxonomy.

ValidationError, NotFoundError and ConflictError are expected, user-facing
outcomes: the caller can show the message verbatim and no state has changed.
PersistenceError means the store failed underneath us; nothing was committed
and the whole operation may be retried. BestEffortFailure never leaves the
lifecycle service: it is logged after a committed transition and swallowed.
"""

from __future__ import annotations


class QuotationError(Exception):
    """Base class for quotation operation errors."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(QuotationError):
    """Transition not allowed in the current state, or bad input."""

    http_status = 400


class ItemSelectionError(ValidationError):
    """Conversion selection names an unknown or already-consumed item."""


class NotFoundError(QuotationError):
    http_status = 404


class ConflictError(QuotationError):
    """Optimistic write lost a race; re-read and retry."""

    http_status = 409


class PersistenceError(QuotationError):
    """Repository write failed for infrastructure reasons (no partial commit)."""

    http_status = 503


class BestEffortFailure(QuotationError):
    """Notification or audit dispatch failed after a successful commit."""

# Overview: Flask API routes for quotations; parses input and returns JSON responses.

# backend/quoteflow/routes/quotations.py
"""
Quotation API Routes

DESIGN:
- Draft authoring: create, update, delete, duplicate (drafts only)
- Lifecycle: send, approve, reject, convert (state machine enforced by
  lifecycle_service; routes never write status themselves)
- Read side: list with filters, detail, history, expiring soon, summary

SECURITY:
- Every route requires X-User-Id (set by the upstream gateway)
- Transitions are attributed to that user in status history and audit

ERRORS:
- QuotationError subclasses map to their http_status (400/404/409/503)
  with body {"error": message, "details": {...}}
- Anything else is logged and returned as a generic 500
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import QuotationError, ValidationError
from ..services import quotation_service, statistics_service
from ..services.lifecycle_service import get_lifecycle_service
from ..services.quotation_repository import quotation_snapshot
from ..services.transitions import allowed_actions
from ..time_utils import utcnow
from ..validation import coerce_int, parse_item_ids


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _optional_text(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def _notify_flag(data: dict) -> bool:
    value = data.get("send_notification", True)
    if not isinstance(value, bool):
        raise ValidationError("send_notification must be true or false")
    return value


def _query_flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes")


def _detail(quotation, *, include_history: bool = False) -> dict:
    data = quotation.to_dict(include_history=include_history)
    snapshot = quotation_snapshot(quotation, quotation.items)
    data["allowed_actions"] = allowed_actions(snapshot, utcnow())
    return data


def _error(e: QuotationError):
    return jsonify(e.to_dict()), e.http_status


# =============================================================================
# DRAFT AUTHORING
# =============================================================================

@quotations_bp.post("")
@require_actor
def create_quotation_route():
    """
    Create a draft quotation.

    Request body:
    {
        "customer_name": "Jane Buyer",
        "customer_email": "jane@example.com",
        "currency": "USD",                      (optional)
        "valid_until": "2026-12-31T00:00:00Z",  (optional, default now + validity days)
        "items": [
            {"product_id": "P-1", "product_name": "Widget", "quantity": 2, "unit_price_cents": 1000}
        ]
    }

    Returns:
        201: Quotation created (status: draft)
        400: Invalid input
    """
    try:
        quotation = quotation_service.create_quotation(_json_body(), actor_id=g.actor_id)
        return jsonify({"quotation": _detail(quotation)}), 201
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("")
@require_actor
def list_quotations_route():
    """
    List quotations.

    Query params: status (comma-separated, "expired" allowed), customer_email,
    search, created_by, created_from, created_to, min_total_cents,
    max_total_cents, sort_by, sort_order, limit, offset
    """
    try:
        filters = {
            key: request.args.get(key)
            for key in (
                "status", "customer_email", "search", "created_by",
                "created_from", "created_to", "min_total_cents", "max_total_cents",
                "sort_by", "sort_order", "limit", "offset",
            )
            if request.args.get(key) not in (None, "")
        }
        rows, total = quotation_service.list_quotations(filters)
        return jsonify({
            "quotations": [q.to_dict(include_items=False) for q in rows],
            "total": total,
            "count": len(rows),
        }), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list quotations")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/summary")
@require_actor
def quotation_summary_route():
    """Counts, value, per-status breakdown and conversion rate."""
    try:
        return jsonify({"summary": statistics_service.quotation_summary()}), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to build quotation summary")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/expiring")
@require_actor
def expiring_quotations_route():
    """Sent/approved quotations lapsing within ?days=N (default EXPIRING_SOON_DAYS)."""
    try:
        raw_days = request.args.get("days")
        days = (
            current_app.config["EXPIRING_SOON_DAYS"]
            if raw_days in (None, "")
            else coerce_int(raw_days, "days")
        )
        rows = quotation_service.list_expiring_quotations(days)
        return jsonify({
            "days": days,
            "quotations": [q.to_dict(include_items=False) for q in rows],
        }), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list expiring quotations")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/<int:quotation_id>")
@require_actor
def get_quotation_route(quotation_id: int):
    """Quotation detail with items, allowed actions and (optionally) status history."""
    try:
        quotation = quotation_service.get_quotation(quotation_id)
        return jsonify({
            "quotation": _detail(quotation, include_history=_query_flag("include_history")),
        }), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.put("/<int:quotation_id>")
@require_actor
def update_quotation_route(quotation_id: int):
    """
    Update a draft. "items", when present, replaces the whole item list.

    Returns:
        200: Updated
        400: Invalid input or quotation is not a draft
        404: Not found
    """
    try:
        quotation = quotation_service.update_quotation(
            quotation_id, _json_body(), actor_id=g.actor_id
        )
        return jsonify({"quotation": _detail(quotation)}), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.delete("/<int:quotation_id>")
@require_actor
def delete_quotation_route(quotation_id: int):
    try:
        quotation_service.delete_quotation(quotation_id, actor_id=g.actor_id)
        return jsonify({"deleted": True, "id": quotation_id}), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to delete quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/duplicate")
@require_actor
def duplicate_quotation_route(quotation_id: int):
    try:
        copy = quotation_service.duplicate_quotation(quotation_id, actor_id=g.actor_id)
        return jsonify({"quotation": _detail(copy)}), 201
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to duplicate quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/<int:quotation_id>/history")
@require_actor
def quotation_history_route(quotation_id: int):
    try:
        history = quotation_service.get_status_history(quotation_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get quotation history")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@quotations_bp.post("/<int:quotation_id>/send")
@require_actor
def send_quotation_route(quotation_id: int):
    """
    Send a draft to the customer (draft -> sent).

    Request body (optional):
    {
        "notes": "Sent by email",
        "send_notification": true
    }
    """
    try:
        data = _json_body()
        outcome = get_lifecycle_service().send_quotation(
            quotation_id,
            actor_id=g.actor_id,
            notes=_optional_text(data, "notes"),
            notify=_notify_flag(data),
        )
        return jsonify(outcome.to_dict()), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to send quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/approve")
@require_actor
def approve_quotation_route(quotation_id: int):
    """
    Record customer approval (sent -> approved). Refused once expired.

    Request body (optional):
    {
        "reason": "Signed PO received",
        "notes": "...",
        "send_notification": true
    }
    """
    try:
        data = _json_body()
        outcome = get_lifecycle_service().approve_quotation(
            quotation_id,
            actor_id=g.actor_id,
            reason=_optional_text(data, "reason"),
            notes=_optional_text(data, "notes"),
            notify=_notify_flag(data),
        )
        return jsonify(outcome.to_dict()), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to approve quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/reject")
@require_actor
def reject_quotation_route(quotation_id: int):
    """
    Reject a sent or approved quotation. A non-blank reason is required.

    Request body:
    {
        "reason": "Customer chose another supplier",
        "notes": "...",
        "send_notification": true
    }
    """
    try:
        data = _json_body()
        outcome = get_lifecycle_service().reject_quotation(
            quotation_id,
            actor_id=g.actor_id,
            reason=_optional_text(data, "reason"),
            notes=_optional_text(data, "notes"),
            notify=_notify_flag(data),
        )
        return jsonify(outcome.to_dict()), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to reject quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/convert")
@require_actor
def convert_quotation_route(quotation_id: int):
    """
    Convert selected items of an approved quotation into an order.

    Request body (optional):
    {
        "item_ids": [12, 13],     (default: every unconsumed item)
        "notes": "Deliver in March",
        "send_notification": true
    }

    Returns:
        201: Order created; quotation is converted (full) or still approved (partial)
        400: Not convertible, or selection names unknown/consumed items
        409: Lost a race with a concurrent conversion
    """
    try:
        data = _json_body()
        outcome = get_lifecycle_service().convert_to_order(
            quotation_id,
            actor_id=g.actor_id,
            item_ids=parse_item_ids(data.get("item_ids")),
            notes=_optional_text(data, "notes"),
            notify=_notify_flag(data),
        )
        return jsonify(outcome.to_dict()), 201
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to convert quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/convert/preview")
@require_actor
def preview_conversion_route(quotation_id: int):
    """Order total and residual state a conversion would produce; writes nothing."""
    try:
        data = _json_body()
        preview = quotation_service.preview_conversion(
            quotation_id, parse_item_ids(data.get("item_ids"))
        )
        return jsonify({"preview": preview}), 200
    except QuotationError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to preview conversion")
        return jsonify({"error": "Internal server error"}), 500

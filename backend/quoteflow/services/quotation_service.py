# Overview: Service-layer operations for quotation drafts and queries; lifecycle moves live elsewhere.

"""
Quotation Service

Draft authoring (create, update, delete, duplicate) and read-side queries.

Status changes after creation are NOT made here: send, approve, reject and
convert all go through lifecycle_service, which owns the state machine. The
only status this module ever writes is the initial ``draft``.

DESIGN:
- Customer contact is copied onto the quotation (snapshot), never referenced
- total_cents is always recomputed from item line totals
- quotation_number comes from the QUOTATION document sequence and never changes
- valid_until defaults to now + QUOTATION_VALIDITY_DAYS; only an explicit user
  edit of a draft can move it, and only into the future
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Quotation, QuotationItem, QuotationStatusHistory
from quoteflow.domain import Action, QuotationStatus, TransitionContext
from quoteflow.errors import NotFoundError, PersistenceError, QuotationError, ValidationError
from quoteflow.time_utils import days_from_now, utcnow
from quoteflow.validation import (
    QUOTATION_NESTED_FIELDS,
    QUOTATION_POLICY,
    coerce_datetime,
    coerce_int,
    enforce_rules_quotation,
    validate_items,
    validate_payload,
)
from . import conversion_engine
from .concurrency import lock_for_update, run_with_retry
from .document_service import QUOTATION_DOCUMENT, next_document_number
from .quotation_repository import QuotationRepository
from .transitions import check_transition

logger = logging.getLogger(__name__)


MAX_LIST_LIMIT = 500
DEFAULT_LIST_LIMIT = 50

SORT_COLUMNS = {
    "created_at": Quotation.created_at,
    "valid_until": Quotation.valid_until,
    "total_amount": Quotation.total_cents,
    "status": Quotation.status,
    "quotation_number": Quotation.quotation_number,
}

# Stored statuses that can lapse into "expired"
EXPIRABLE_STATUSES = (
    QuotationStatus.DRAFT.value,
    QuotationStatus.SENT.value,
    QuotationStatus.APPROVED.value,
)


def _persist(build, *, failure: str):
    """
    Run build() and commit, retrying on database lock errors.

    QuotationError from build() rolls back and propagates unchanged; other
    database failures become PersistenceError.
    """
    def attempt():
        result = build()
        db.session.commit()
        return result

    try:
        return run_with_retry(attempt)
    except QuotationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception(failure)
        raise PersistenceError(f"{failure}; try again later") from exc


def _require_future(valid_until, now) -> None:
    if valid_until <= now:
        raise ValidationError("valid_until must be in the future")


def _build_items(item_payloads: list[dict]) -> list[QuotationItem]:
    return [QuotationItem(**payload) for payload in item_payloads]


def _load_for_update(quotation_id: int) -> Quotation:
    quotation = lock_for_update(db.session.query(Quotation).filter_by(id=quotation_id)).first()
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found")
    return quotation


def _require_draft(quotation: Quotation, verb: str) -> None:
    if quotation.status != QuotationStatus.DRAFT.value:
        raise ValidationError(
            f"Cannot {verb} quotation {quotation.quotation_number}: "
            f"only drafts can be {verb}d (status is '{quotation.status}')",
            details={"code": "invalid_state", "quotation_id": quotation.id},
        )


# =============================================================================
# AUTHORING
# =============================================================================

def create_quotation(data: dict, *, actor_id: int | None) -> Quotation:
    """
    Create a draft quotation with its items.

    Args:
        data: Header fields (customer_*, currency, valid_until, notes, ...) and "items"
        actor_id: Creating user, recorded as created_by_user_id

    Raises:
        ValidationError: Invalid header or item payload
    """
    patch = validate_payload(
        model=Quotation,
        payload=data,
        policy=QUOTATION_POLICY,
        partial=False,
        ignore=QUOTATION_NESTED_FIELDS,
    )
    enforce_rules_quotation(patch)
    item_payloads = validate_items((data or {}).get("items"))

    config = current_app.config
    now = utcnow()
    if patch.get("valid_until") is None:
        patch["valid_until"] = days_from_now(config["QUOTATION_VALIDITY_DAYS"], now=now)
    else:
        _require_future(patch["valid_until"], now)
    if not patch.get("currency"):
        patch["currency"] = config["DEFAULT_CURRENCY"]

    def build():
        quotation = Quotation(
            quotation_number=next_document_number(
                document_type=QUOTATION_DOCUMENT,
                prefix=config["QUOTATION_NUMBER_PREFIX"],
            ),
            status=QuotationStatus.DRAFT.value,
            created_by_user_id=actor_id,
            **patch,
        )
        quotation.items = _build_items(item_payloads)
        quotation.recompute_total()
        db.session.add(quotation)
        db.session.flush()
        db.session.add(QuotationStatusHistory(
            quotation_id=quotation.id,
            old_status=None,
            new_status=QuotationStatus.DRAFT.value,
            changed_by_user_id=actor_id,
        ))
        return quotation

    quotation = _persist(build, failure="Could not create quotation")
    logger.info(
        "quotation %s created by %s (%d items, total %d)",
        quotation.quotation_number, actor_id, len(item_payloads), quotation.total_cents,
    )
    return quotation


def update_quotation(quotation_id: int, data: dict, *, actor_id: int | None) -> Quotation:
    """
    Edit a draft. Header fields are patched; "items", when present, replaces
    the whole item list.
    """
    patch = validate_payload(
        model=Quotation,
        payload=data,
        policy=QUOTATION_POLICY,
        partial=True,
        ignore=QUOTATION_NESTED_FIELDS,
    )
    enforce_rules_quotation(patch)
    item_payloads = None
    if data and "items" in data:
        item_payloads = validate_items(data["items"])

    if "valid_until" in patch:
        if patch["valid_until"] is None:
            raise ValidationError("valid_until cannot be null")
        _require_future(patch["valid_until"], utcnow())

    def build():
        quotation = _load_for_update(quotation_id)
        _require_draft(quotation, "update")

        for key, value in patch.items():
            setattr(quotation, key, value)
        if item_payloads is not None:
            quotation.items = _build_items(item_payloads)
        quotation.recompute_total()
        quotation.version_id = quotation.version_id + 1
        return quotation

    quotation = _persist(build, failure="Could not update quotation")
    logger.info("quotation %s updated by %s", quotation.quotation_number, actor_id)
    return quotation


def delete_quotation(quotation_id: int, *, actor_id: int | None = None) -> None:
    """Delete a draft and its items."""
    def build():
        quotation = _load_for_update(quotation_id)
        _require_draft(quotation, "delete")
        number = quotation.quotation_number
        db.session.delete(quotation)
        return number

    number = _persist(build, failure="Could not delete quotation")
    logger.info("quotation %s deleted by %s", number, actor_id)


def duplicate_quotation(quotation_id: int, *, actor_id: int | None) -> Quotation:
    """
    New draft from any quotation: same customer, currency, notes and items
    (consumed or not), with a fresh number and validity window.
    """
    config = current_app.config

    def build():
        source = get_quotation(quotation_id)
        copy = Quotation(
            quotation_number=next_document_number(
                document_type=QUOTATION_DOCUMENT,
                prefix=config["QUOTATION_NUMBER_PREFIX"],
            ),
            status=QuotationStatus.DRAFT.value,
            customer_name=source.customer_name,
            customer_email=source.customer_email,
            customer_phone=source.customer_phone,
            customer_company=source.customer_company,
            customer_address=source.customer_address,
            currency=source.currency,
            valid_until=days_from_now(config["QUOTATION_VALIDITY_DAYS"]),
            notes=source.notes,
            internal_notes=source.internal_notes,
            terms_and_conditions=source.terms_and_conditions,
            created_by_user_id=actor_id,
        )
        copy.items = [
            QuotationItem(
                product_id=item.product_id,
                product_name=item.product_name,
                product_sku=item.product_sku,
                product_description=item.product_description,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                line_total_cents=item.line_total_cents,
                sort_order=item.sort_order,
            )
            for item in source.items
        ]
        copy.recompute_total()
        db.session.add(copy)
        db.session.flush()
        db.session.add(QuotationStatusHistory(
            quotation_id=copy.id,
            old_status=None,
            new_status=QuotationStatus.DRAFT.value,
            changed_by_user_id=actor_id,
            notes=f"Duplicated from {source.quotation_number}",
        ))
        return copy

    copy = _persist(build, failure="Could not duplicate quotation")
    logger.info("quotation %s duplicated as %s by %s", quotation_id, copy.quotation_number, actor_id)
    return copy


# =============================================================================
# QUERIES
# =============================================================================

def get_quotation(quotation_id: int) -> Quotation:
    quotation = db.session.get(Quotation, quotation_id)
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found")
    return quotation


def _parse_statuses(raw) -> list[QuotationStatus]:
    if isinstance(raw, str):
        raw = raw.split(",")
    statuses = []
    for value in raw:
        try:
            statuses.append(QuotationStatus(str(value).strip().lower()))
        except ValueError:
            raise ValidationError(f"Unknown status filter: {value}")
    return statuses


def _status_condition(status: QuotationStatus, now):
    """Filter matching effective_status, so "sent" excludes lapsed quotations."""
    if status is QuotationStatus.EXPIRED:
        return and_(Quotation.status.in_(EXPIRABLE_STATUSES), Quotation.valid_until < now)
    if status.is_terminal:
        return Quotation.status == status.value
    return and_(Quotation.status == status.value, Quotation.valid_until >= now)


def list_quotations(filters: dict | None = None) -> tuple[list[Quotation], int]:
    """
    Filtered, sorted, paginated listing.

    Filters: status (one, comma-separated or list; "expired" is derived),
    customer_email, search (number / customer name / company), created_by,
    created_from / created_to, min_total_cents / max_total_cents, sort_by,
    sort_order ("asc" | "desc"), limit (1..500), offset.

    Returns (rows, total matching before pagination).
    """
    filters = filters or {}
    now = utcnow()
    query = db.session.query(Quotation)

    if filters.get("status"):
        statuses = _parse_statuses(filters["status"])
        query = query.filter(or_(*[_status_condition(s, now) for s in statuses]))

    if filters.get("customer_email"):
        query = query.filter(Quotation.customer_email == str(filters["customer_email"]).strip())

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Quotation.quotation_number.ilike(pattern),
            Quotation.customer_name.ilike(pattern),
            Quotation.customer_company.ilike(pattern),
        ))

    if filters.get("created_by") is not None:
        query = query.filter(
            Quotation.created_by_user_id == coerce_int(filters["created_by"], "created_by")
        )

    if filters.get("created_from"):
        query = query.filter(
            Quotation.created_at >= coerce_datetime(filters["created_from"], "created_from")
        )
    if filters.get("created_to"):
        query = query.filter(
            Quotation.created_at <= coerce_datetime(filters["created_to"], "created_to")
        )

    if filters.get("min_total_cents") is not None:
        query = query.filter(
            Quotation.total_cents >= coerce_int(filters["min_total_cents"], "min_total_cents")
        )
    if filters.get("max_total_cents") is not None:
        query = query.filter(
            Quotation.total_cents <= coerce_int(filters["max_total_cents"], "max_total_cents")
        )

    sort_by = filters.get("sort_by") or "created_at"
    if sort_by not in SORT_COLUMNS:
        raise ValidationError(
            f"sort_by must be one of: {', '.join(sorted(SORT_COLUMNS))}"
        )
    sort_order = (filters.get("sort_order") or "desc").lower()
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'")

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()

    limit = filters.get("limit")
    limit = DEFAULT_LIST_LIMIT if limit is None else coerce_int(limit, "limit")
    if limit < 1 or limit > MAX_LIST_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
    offset = filters.get("offset")
    offset = 0 if offset is None else coerce_int(offset, "offset")
    if offset < 0:
        raise ValidationError("offset must be >= 0")

    total = query.count()
    rows = query.order_by(ordering, Quotation.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_expiring_quotations(days: int) -> list[Quotation]:
    """Sent or approved quotations lapsing within the next ``days`` days."""
    if days < 1:
        raise ValidationError("days must be >= 1")
    now = utcnow()
    horizon = days_from_now(days, now=now)
    return (
        db.session.query(Quotation)
        .filter(
            Quotation.status.in_([QuotationStatus.SENT.value, QuotationStatus.APPROVED.value]),
            Quotation.valid_until >= now,
            Quotation.valid_until <= horizon,
        )
        .order_by(Quotation.valid_until.asc(), Quotation.id.asc())
        .all()
    )


def get_status_history(quotation_id: int) -> list[QuotationStatusHistory]:
    get_quotation(quotation_id)
    return (
        db.session.query(QuotationStatusHistory)
        .filter_by(quotation_id=quotation_id)
        .order_by(QuotationStatusHistory.created_at.asc(), QuotationStatusHistory.id.asc())
        .all()
    )


def preview_conversion(quotation_id: int, item_ids=None) -> dict:
    """
    What convert_to_order would produce for this selection, without writing.

    Same validation as the real conversion, so a preview that succeeds is one
    the conversion would accept at this instant.
    """
    snapshot = QuotationRepository().get(quotation_id)
    if item_ids is None:
        selected = tuple(item.id for item in snapshot.open_items)
    else:
        selected = tuple(dict.fromkeys(item_ids))
    check_transition(
        snapshot,
        Action.CONVERT,
        TransitionContext(now=utcnow(), selected_item_ids=selected),
    )
    result = conversion_engine.convert(snapshot, selected)
    return {
        "quotation_id": snapshot.id,
        "conversion_type": "partial" if result.is_partial else "full",
        "is_partial": result.is_partial,
        "selected_item_ids": list(result.converted_item_ids),
        "order_total_cents": conversion_engine.selected_total(snapshot, selected),
        "remaining_item_ids": list(result.remaining_item_ids),
        "remaining_total_cents": result.remaining_total_cents,
        "status_after": result.quotation_status_after.value,
    }

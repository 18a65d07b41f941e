# Overview: Read-only quotation rollups (counts, value, conversion rate); recomputed on every call.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from quoteflow.extensions import db
from quoteflow.models import Quotation
from quoteflow.domain import STORED_STATUSES, QuotationStatus
from quoteflow.money import format_cents
from quoteflow.time_utils import to_utc_z, utcnow


EXPIRABLE_STATUSES = [
    QuotationStatus.DRAFT.value,
    QuotationStatus.SENT.value,
    QuotationStatus.APPROVED.value,
]


def quotation_summary(*, now: datetime | None = None, recent_limit: int = 5) -> dict:
    """
    Current totals over all persisted quotations.

    by_status counts stored statuses; "expired" is reported alongside them as
    the number of non-terminal quotations already past valid_until (those are
    also still counted under their stored status).

    conversion_rate = converted / non-draft quotations, 0.0 when there are none.
    """
    now = now or utcnow()

    totals = db.session.query(
        func.count(Quotation.id).label("count"),
        func.coalesce(func.sum(Quotation.total_cents), 0).label("value_cents"),
    ).one()
    total_count = int(totals.count or 0)
    total_value_cents = int(totals.value_cents or 0)

    by_status = {status.value: 0 for status in sorted(STORED_STATUSES, key=lambda s: s.value)}
    rows = (
        db.session.query(Quotation.status, func.count(Quotation.id))
        .group_by(Quotation.status)
        .all()
    )
    for status, count in rows:
        by_status[status] = int(count)

    expired_count = (
        db.session.query(func.count(Quotation.id))
        .filter(Quotation.status.in_(EXPIRABLE_STATUSES), Quotation.valid_until < now)
        .scalar()
    ) or 0

    non_draft = total_count - by_status[QuotationStatus.DRAFT.value]
    converted = by_status[QuotationStatus.CONVERTED.value]
    conversion_rate = round(converted / non_draft, 4) if non_draft else 0.0

    average_value_cents = round(total_value_cents / total_count) if total_count else 0

    recent = (
        db.session.query(Quotation)
        .order_by(Quotation.created_at.desc(), Quotation.id.desc())
        .limit(recent_limit)
        .all()
    )

    return {
        "as_of": to_utc_z(now),
        "total_count": total_count,
        "total_value_cents": total_value_cents,
        "total_value": format_cents(total_value_cents),
        "average_value_cents": average_value_cents,
        "average_value": format_cents(average_value_cents),
        "by_status": by_status,
        "expired_count": int(expired_count),
        "conversion_rate": conversion_rate,
        "recent": [q.to_dict(include_items=False) for q in recent],
    }

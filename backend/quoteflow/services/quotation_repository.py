# Overview: Data access for quotations, items and orders; no business rules live here.

"""
Quotation Repository

Reads return frozen snapshots (quoteflow.domain) so the decision and
computation layers never hold live ORM state. Writes are conditional:

- the quotation row is updated only if version_id still matches the snapshot
  the caller decided on;
- items are consumed only if consumed_at is still NULL at write time.

Either condition failing raises ConflictError. Nothing here commits on its
own; atomic() wraps a unit of work in one transaction and maps database
failures onto the error taxonomy.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Order, OrderLine, Quotation, QuotationItem, QuotationStatusHistory
from quoteflow.domain import (
    STORED_STATUSES,
    ItemSnapshot,
    OrderDraft,
    QuotationSnapshot,
    QuotationStatus,
)
from quoteflow.errors import ConflictError, NotFoundError, PersistenceError, QuotationError
from quoteflow.time_utils import utcnow

logger = logging.getLogger(__name__)


def item_snapshot(item: QuotationItem) -> ItemSnapshot:
    return ItemSnapshot(
        id=item.id,
        product_id=item.product_id,
        product_name=item.product_name,
        product_sku=item.product_sku,
        product_description=item.product_description,
        quantity=item.quantity,
        unit_price_cents=item.unit_price_cents,
        line_total_cents=item.line_total_cents,
        sort_order=item.sort_order,
        consumed=item.consumed_at is not None,
        order_id=item.order_id,
    )


def quotation_snapshot(quotation: Quotation, items: Iterable[QuotationItem]) -> QuotationSnapshot:
    return QuotationSnapshot(
        id=quotation.id,
        quotation_number=quotation.quotation_number,
        status=QuotationStatus(quotation.status),
        currency=quotation.currency,
        valid_until=quotation.valid_until,
        total_cents=quotation.total_cents,
        version_id=quotation.version_id,
        items=tuple(item_snapshot(item) for item in items),
        customer_name=quotation.customer_name,
        customer_email=quotation.customer_email,
        customer_phone=quotation.customer_phone,
        customer_company=quotation.customer_company,
        created_by=quotation.created_by_user_id,
    )


class QuotationRepository:
    """Persistence port used by the lifecycle service."""

    def load(self, quotation_id: int) -> Quotation:
        """Fresh ORM instance (for serialization); raises NotFoundError."""
        quotation = db.session.get(Quotation, quotation_id, populate_existing=True)
        if quotation is None:
            raise NotFoundError(f"Quotation {quotation_id} not found")
        return quotation

    def get(self, quotation_id: int) -> QuotationSnapshot:
        quotation = self.load(quotation_id)
        items = (
            db.session.query(QuotationItem)
            .filter_by(quotation_id=quotation_id)
            .order_by(QuotationItem.sort_order, QuotationItem.id)
            .populate_existing()
            .all()
        )
        return quotation_snapshot(quotation, items)

    def get_order(self, order_id: int) -> Order:
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        One transaction for everything written inside the block.

        Commit happens on clean exit; any failure rolls back the whole block,
        including non-database errors and interrupts, so nothing written
        inside it can ride along on a later commit of the same session.
        """
        try:
            yield
            db.session.commit()
        except QuotationError:
            db.session.rollback()
            raise
        except StaleDataError as exc:
            db.session.rollback()
            raise ConflictError("Quotation was modified concurrently; reload and retry") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Quotation persistence failed")
            raise PersistenceError("Could not save quotation changes; try again later") from exc
        except BaseException:
            db.session.rollback()
            raise

    def save(
        self,
        before: QuotationSnapshot,
        after: QuotationSnapshot,
        *,
        fields: dict | None = None,
        consume_item_ids: Iterable[int] = (),
        consumed_at: datetime | None = None,
    ) -> None:
        """
        Write the transition from ``before`` to ``after``.

        Item consumption is checked-and-set per item before the quotation row
        is touched, so a losing concurrent conversion fails on the items it
        contests even when it never got to see the new status.
        """
        if after.status not in STORED_STATUSES:
            raise ValueError(f"Status '{after.status.value}' cannot be stored")

        ids = sorted(set(consume_item_ids))
        if ids:
            result = db.session.execute(
                update(QuotationItem)
                .where(
                    QuotationItem.id.in_(ids),
                    QuotationItem.quotation_id == before.id,
                    QuotationItem.consumed_at.is_(None),
                )
                .values(consumed_at=consumed_at or utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(ids):
                logger.warning(
                    "Conversion conflict on quotation %s: items %s already consumed",
                    before.id, ids,
                )
                raise ConflictError(
                    "Some selected items were converted by another request; reload and retry",
                    details={"quotation_id": before.id, "item_ids": ids},
                )

        values = dict(fields or {})
        values.update(
            status=after.status.value,
            version_id=Quotation.version_id + 1,
            updated_at=utcnow(),
        )
        result = db.session.execute(
            update(Quotation)
            .where(Quotation.id == before.id, Quotation.version_id == before.version_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Stale write on quotation %s (expected version %s)", before.id, before.version_id
            )
            raise ConflictError(
                "Quotation was modified concurrently; reload and retry",
                details={"quotation_id": before.id},
            )

    def create_order(self, draft: OrderDraft, *, order_number: str) -> Order:
        order = Order(
            order_number=order_number,
            quotation_id=draft.quotation_id,
            source_quotation_number=draft.quotation_number,
            customer_name=draft.customer_name,
            customer_email=draft.customer_email,
            customer_phone=draft.customer_phone,
            customer_company=draft.customer_company,
            currency=draft.currency,
            total_cents=draft.total_cents,
            notes=draft.notes,
            created_by_user_id=draft.created_by,
        )
        for line in draft.lines:
            order.lines.append(OrderLine(
                quotation_item_id=line.quotation_item_id,
                product_id=line.product_id,
                product_name=line.product_name,
                product_sku=line.product_sku,
                product_description=line.product_description,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.line_total_cents,
            ))
        db.session.add(order)
        db.session.flush()  # assigns order.id without committing
        return order

    def link_items_to_order(self, item_ids: Iterable[int], order_id: int) -> None:
        db.session.execute(
            update(QuotationItem)
            .where(QuotationItem.id.in_(list(item_ids)))
            .values(order_id=order_id)
            .execution_options(synchronize_session=False)
        )

    def add_history(
        self,
        *,
        quotation_id: int,
        old_status: str | None,
        new_status: str,
        actor_id: int | None,
        reason: str | None = None,
        notes: str | None = None,
    ) -> QuotationStatusHistory:
        entry = QuotationStatusHistory(
            quotation_id=quotation_id,
            old_status=old_status,
            new_status=new_status,
            changed_by_user_id=actor_id,
            reason=reason,
            notes=notes,
        )
        db.session.add(entry)
        return entry

    def record_converted_order(self, quotation_id: int, order_id: int) -> None:
        """Point the quotation at its latest order (same transaction as save)."""
        db.session.execute(
            update(Quotation)
            .where(Quotation.id == quotation_id)
            .values(converted_order_id=order_id)
            .execution_options(synchronize_session=False)
        )

from __future__ import annotations
from datetime import datetime
from quoteflow.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import MAX_AMOUNT_CENTS, parse_amount
from .models import QuotationItem


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


QUOTATION_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name",
        "customer_email",
        "customer_phone",
        "customer_company",
        "customer_address",
        "currency",
        "valid_until",
        "notes",
        "internal_notes",
        "terms_and_conditions",
    },
    required_on_create={"customer_name", "customer_email"},
)

# Keys accepted alongside the header fields but handled separately
QUOTATION_NESTED_FIELDS = {"items"}


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_datetime(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{field} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, DateTime):
        return coerce_datetime(value, col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    ignore: set[str] | None = None,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    ignore = ignore or set()
    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k in ignore:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in ignore:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_quotation(patch: dict) -> None:
    """Business rules on header fields that column metadata cannot express."""
    if "customer_email" in patch and patch["customer_email"] is not None:
        if "@" not in patch["customer_email"]:
            raise ValidationError("customer_email must be a valid email address")
    if "currency" in patch and patch["currency"] is not None:
        currency = patch["currency"].upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency must be a 3-letter ISO code")
        patch["currency"] = currency


def validate_item_payload(raw: Any, *, index: int) -> dict:
    """
    Normalize one item payload.

    Price may be given as unit_price_cents (integer) or unit_price (decimal
    major units, at most 2 decimal places).
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    product_id = raw.get("product_id")
    if product_id is None or str(product_id).strip() == "":
        raise ValidationError(f"items[{index}].product_id is required")

    product_name = str(raw.get("product_name") or "").strip()
    if not product_name:
        raise ValidationError(f"items[{index}].product_name is required")

    if "quantity" not in raw:
        raise ValidationError(f"items[{index}].quantity is required")
    quantity = coerce_int(raw["quantity"], f"items[{index}].quantity")
    if quantity <= 0:
        raise ValidationError(f"items[{index}].quantity must be > 0")

    if raw.get("unit_price_cents") is not None:
        unit_price_cents = coerce_int(raw["unit_price_cents"], f"items[{index}].unit_price_cents")
    elif raw.get("unit_price") is not None:
        unit_price_cents = parse_amount(raw["unit_price"], field=f"items[{index}].unit_price")
    else:
        raise ValidationError(f"items[{index}].unit_price_cents is required")

    if unit_price_cents < 0:
        raise ValidationError(f"items[{index}].unit_price_cents must be >= 0")
    if unit_price_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(
            f"items[{index}].unit_price_cents cannot exceed {MAX_AMOUNT_CENTS}"
        )

    sort_order = raw.get("sort_order")
    sort_order = index if sort_order is None else coerce_int(sort_order, f"items[{index}].sort_order")

    line_total_cents = quantity * unit_price_cents
    if line_total_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(
            f"items[{index}] line total cannot exceed {MAX_AMOUNT_CENTS} cents"
        )

    sku = raw.get("product_sku")
    description = raw.get("product_description")
    item = {
        "product_id": str(product_id).strip(),
        "product_name": product_name,
        "product_sku": str(sku).strip() if sku else None,
        "product_description": str(description).strip() if description else None,
        "quantity": quantity,
        "unit_price_cents": unit_price_cents,
        "line_total_cents": line_total_cents,
        "sort_order": sort_order,
    }

    # Max length check for String(n), same rule as header fields
    cols = _columns_by_key(QuotationItem)
    for key in ("product_id", "product_name", "product_sku"):
        length = cols[key].type.length
        if item[key] is not None and length and len(item[key]) > length:
            raise ValidationError(f"items[{index}].{key} exceeds max length {length}")

    return item


def validate_items(raw_items: Any) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    items = [validate_item_payload(raw, index=i) for i, raw in enumerate(raw_items)]
    total = sum(item["line_total_cents"] for item in items)
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"quotation total cannot exceed {MAX_AMOUNT_CENTS} cents")
    return items


def parse_item_ids(raw: Any) -> tuple[int, ...] | None:
    """None stays None (meaning "every open item"); otherwise a list of integer ids."""
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValidationError("item_ids must be a list of item ids")
    return tuple(coerce_int(v, "item_ids[]") for v in raw)

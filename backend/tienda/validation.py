from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .money import parse_cents
from .models.sales import PAYMENT_METHODS


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


class ValidationError(ValueError):
    """400-level input problem, optionally tied to a single field."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = {"error": str(self)}
        if self.field:
            data["field"] = self.field
        return data


class UniquenessError(ValidationError):
    """409-level duplicate (product code, customer email, invoice number)."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., deleting a product with sales)."""


class NotFoundError(LookupError):
    """Referenced record does not exist."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - money_fields: decimal input name -> cents column (e.g. "price" -> "price_cents")
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    money_fields: dict[str, str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field)
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field)
    raise ValidationError(f"{field} must be an integer", field)


def coerce_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{field} must be a boolean", field)


def coerce_cents(value: Any, field: str) -> int:
    try:
        return parse_cents(value)
    except ValueError as e:
        raise ValidationError(f"{field} {e}", field)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    # Booleans (form posts send "1"/"0", "on", "true")
    if isinstance(coltype, Boolean):
        return coerce_bool(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def _apply_money_fields(payload: dict, money_fields: dict[str, str]) -> dict:
    """Replace decimal inputs ("price": "10.50") with their cents column ("price_cents": 1050)."""
    converted = dict(payload)
    for decimal_key, cents_key in money_fields.items():
        if decimal_key not in converted:
            continue
        if cents_key in payload:
            raise ValidationError(f"Provide either {decimal_key} or {cents_key}, not both", decimal_key)
        raw = converted.pop(decimal_key)
        converted[cents_key] = None if raw is None else coerce_cents(raw, decimal_key)
    return converted


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON or form data against:
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

    if policy.money_fields:
        payload = _apply_money_fields(payload, policy.money_fields)

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # Blank form inputs on nullable text columns mean "no value"
        if isinstance(raw, str) and raw.strip() == "" and col.nullable and isinstance(col.type, (String, Text)):
            raw = None

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        patch[k] = val

    return patch


def _enforce_money_range(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        value = patch[key]
        if value < 0:
            raise ValidationError(f"{key} must be >= 0", key)
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f})", key)


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _enforce_money_range(patch, "price_cents")
    _enforce_money_range(patch, "cost_cents")

    for key in ("stock", "min_stock"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0", key)


def enforce_rules_customer(patch: dict) -> None:
    email = patch.get("email")
    if email is not None:
        if not EMAIL_RE.match(email):
            raise ValidationError("email is not a valid address", "email")
        patch["email"] = email.lower()


def validate_sale_payload(payload: dict) -> dict:
    """
    Validate a sale request before it reaches sales_service.record_sale.

    Expected shape:
        {
            "customer_id": 3 | null,
            "items": [{"product_id": 1, "quantity": 2}, ...],
            "payment_method": "cash" | "card" | "transfer",
            "discount": "5.00" | "discount_cents": 500,
            "notes": "..."
        }

    Returns kwargs for record_sale (minus user_id).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    cleaned: dict = {}

    customer_id = payload.get("customer_id")
    if customer_id is None or (isinstance(customer_id, str) and not customer_id.strip()):
        cleaned["customer_id"] = None
    else:
        cleaned["customer_id"] = coerce_int(customer_id, "customer_id")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list", "items")

    lines: list[tuple[int, int]] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{i}] must be an object", f"items[{i}]")
        if item.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required", f"items[{i}].product_id")
        if item.get("quantity") is None:
            raise ValidationError(f"items[{i}].quantity is required", f"items[{i}].quantity")
        product_id = coerce_int(item["product_id"], f"items[{i}].product_id")
        quantity = coerce_int(item["quantity"], f"items[{i}].quantity")
        if quantity < 1:
            raise ValidationError(f"items[{i}].quantity must be >= 1", f"items[{i}].quantity")
        lines.append((product_id, quantity))
    cleaned["items"] = lines

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            "payment_method",
        )
    cleaned["payment_method"] = payment_method

    if "discount" in payload and "discount_cents" in payload:
        raise ValidationError("Provide either discount or discount_cents, not both", "discount")
    discount_cents = 0
    if payload.get("discount") not in (None, ""):
        discount_cents = coerce_cents(payload["discount"], "discount")
    elif payload.get("discount_cents") is not None:
        discount_cents = coerce_int(payload["discount_cents"], "discount_cents")
    if discount_cents < 0:
        raise ValidationError("discount must be >= 0", "discount")
    cleaned["discount_cents"] = discount_cents

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes).strip() or None
    cleaned["notes"] = notes

    return cleaned

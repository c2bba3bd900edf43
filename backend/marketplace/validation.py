from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime

from marketplace.time_utils import parse_iso_datetime


# Maximum single amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

PRODUCT_CATEGORIES = ("beef", "chicken", "fish", "lamb")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email, stale write)."""


class NotFoundError(LookupError):
    """404-level missing resource."""


class AccessDeniedError(PermissionError):
    """403-level role or ownership mismatch."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def _columns_by_key(model) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Keys outside the allowlist are ignored rather than rejected, since
    clients post whole documents back on update.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def parse_amount_cents(data: dict, *, field_name: str = "amount") -> int:
    """
    Read a money amount from a request body.

    Accepts "<field>_cents" as an integer, or "<field>" as a decimal
    amount (number or string, at most 2 decimal places).
    """
    cents_key = f"{field_name}_cents"
    if data.get(cents_key) is not None:
        raw = data[cents_key]
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError(f"{cents_key} must be an integer")
        cents = raw
    elif data.get(field_name) is not None:
        raw = data[field_name]
        if isinstance(raw, bool):
            raise ValidationError(f"{field_name} must be a number")
        try:
            amount = Decimal(str(raw).strip())
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number")
        if not amount.is_finite():
            raise ValidationError(f"{field_name} must be a number")
        if amount != amount.quantize(Decimal("0.01")):
            raise ValidationError(f"{field_name} cannot have more than 2 decimal places")
        cents = int(amount * 100)
    else:
        raise ValidationError(f"{field_name} is required")

    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field_name} cannot exceed {MAX_AMOUNT_CENTS / 100:,.2f}")
    return cents


def enforce_rules_product(patch: dict) -> None:
    if "category" in patch and patch["category"] not in PRODUCT_CATEGORIES:
        raise ValidationError("Invalid category")


def enforce_rules_customer(patch: dict) -> None:
    email = patch.get("email")
    if email and not _EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address")

from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pettycash.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, InvalidAmount


# Maximum amount: 99,999,999.99 (9,999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 9_999_999_999

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def round2(value: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Any, field: str = "amount", *, allow_zero: bool = True) -> int | None:
    """
    Convert a major-unit amount (number or numeric string) to integer cents.

    - None / "" -> None
    - Rounds half-up to 2 decimal places ("10.005" -> 1001)
    - Rejects booleans, negatives, NaN/Infinity and absurd magnitudes
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidAmount(f"{field} must be a number")

    try:
        if isinstance(value, float):
            # repr() keeps what the client sent (0.1 stays 0.1)
            amount = Decimal(repr(value))
        else:
            amount = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        raise InvalidAmount(f"{field} must be a number")

    if not amount.is_finite():
        raise InvalidAmount(f"{field} must be a finite number")

    cents = int(round2(amount) * 100)
    if cents < 0:
        raise InvalidAmount(f"{field} must be >= 0")
    if cents == 0 and not allow_zero:
        raise InvalidAmount(f"{field} must be greater than 0")
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidAmount(f"{field} cannot exceed {MAX_AMOUNT_CENTS / 100:,.2f}")
    return cents


def cents_to_str(cents: int | None) -> str | None:
    """Serialize integer cents as a two-place decimal string (118000 -> "1180.00")."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(CENT))


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _as_int(key: str, value: Any) -> int:
    # ids and counters only; money goes through to_cents before this point
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be a whole number")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text.lstrip("-").isdigit():
        raise ValidationError(f"{key} must be a whole number")
    return int(text)


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{key} must be true or false")


def _as_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        parsed = parse_iso_datetime(value) if isinstance(value, str) else None
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 date or datetime")
    return parsed


def _coerce_value(col, value: Any):
    if value is None:
        return None
    coltype = col.type
    if isinstance(coltype, Integer):
        return _as_int(col.key, value)
    if isinstance(coltype, Boolean):
        return _as_bool(col.key, value)
    if isinstance(coltype, DateTime):
        return _as_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        return str(value).strip()
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
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

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
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

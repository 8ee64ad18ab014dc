from __future__ import annotations
from datetime import datetime
from bizdesk.time_utils import normalize_datetime

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported for routes)
from .numbers import ZERO, to_decimal


# Maximum money/quantity value accepted from clients: 9,999,999,999.99
# This prevents database overflow issues and nonsensical values
MAX_AMOUNT = Decimal("9999999999.99")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Decimals - quantities and money
    if isinstance(coltype, Numeric):
        try:
            return to_decimal(value, col.key)
        except ValueError as e:
            raise ValidationError(str(e))

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        try:
            dt = normalize_datetime(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
        missing = sorted(f for f in required if f not in payload)
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


# =============================================================================
# SERVICE-LEVEL RULES
# Services are called directly (not only through routes), so each public
# operation validates its own arguments before any write.
# =============================================================================

def parse_amount(value, field: str, *, allow_negative: bool = False) -> Decimal:
    try:
        amount = to_decimal(value, field)
    except ValueError as e:
        raise ValidationError(str(e))
    if not allow_negative and amount < ZERO:
        raise ValidationError(f"{field} must be >= 0")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    return amount


def parse_optional_amount(value, field: str, default: Decimal = ZERO) -> Decimal:
    if value is None:
        return default
    return parse_amount(value, field)


def require_positive_pair(boxes, kg, *, box_field: str = "boxes", kg_field: str = "kg") -> tuple[Decimal, Decimal]:
    """boxes >= 0, kg >= 0 and at least one of them > 0."""
    b = parse_amount(boxes if boxes is not None else 0, box_field)
    k = parse_amount(kg if kg is not None else 0, kg_field)
    if b == ZERO and k == ZERO:
        raise ValidationError(f"{box_field} or {kg_field} must be greater than 0")
    return b, k


def require_nonzero_pair(boxes, kg, *, box_field: str, kg_field: str) -> tuple[Decimal, Decimal]:
    """Signed adjustments; at least one must be non-zero."""
    b = parse_amount(boxes if boxes is not None else 0, box_field, allow_negative=True)
    k = parse_amount(kg if kg is not None else 0, kg_field, allow_negative=True)
    if b == ZERO and k == ZERO:
        raise ValidationError(f"{box_field} or {kg_field} must be non-zero")
    return b, k


def require_text(value, field: str, *, max_length: int = 500) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def optional_text(value, field: str, *, max_length: int = 500) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text or None


def parse_datetime(value, field: str) -> datetime | None:
    try:
        return normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    ratio = patch.get("box_to_kg_ratio")
    if ratio is not None and ratio <= ZERO:
        raise ValidationError("box_to_kg_ratio must be > 0")

    for field in ("cost_per_box", "price_per_box", "quantity_box", "quantity_kg", "low_stock_threshold"):
        value = patch.get(field)
        if value is None:
            continue
        if value < ZERO:
            raise ValidationError(f"{field} must be >= 0")
        if value > MAX_AMOUNT:
            raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")


def require_id(value, field: str) -> int:
    """Positive integer id from an int or a digit string."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 1:
        raise ValidationError(f"{field} is required and must be a positive integer")
    return value

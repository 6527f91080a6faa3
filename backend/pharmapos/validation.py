from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import D, money2
from .time_utils import as_utc, parse_iso_datetime


# Largest value an Integer column holds on every backend
MAX_INT = 2**31 - 1

# Maximum unit amount: 99,999,999.99 (Numeric(10, 2) price columns)
MAX_AMOUNT = Decimal("99999999.99")
# Maximum line or document total: Numeric(12, 2) totals columns
MAX_TOTAL = Decimal("9999999999.99")
MAX_PERCENT = Decimal("100")


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


def _coerce_int(key: str, value: Any) -> int:
    n = _parse_int(key, value)
    if abs(n) > MAX_INT:
        raise ValidationError(f"{key} cannot exceed {MAX_INT}")
    return n


def _parse_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation and decimal points (e.g., "1e15", "12.5")
        if 'e' in stripped.lower() or '.' in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a decimal amount")
    try:
        dec = D(value)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a decimal amount")
    if not dec.is_finite():
        raise ValidationError(f"{key} must be a decimal amount")
    return money2(dec)


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return as_utc(datetime(value.year, value.month, value.day))
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return _coerce_decimal(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        return _coerce_datetime(col.key, value)

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")

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

        # Blank optional strings are stored as NULL (keeps unique barcode sane)
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_positive_int(value: Any, key: str = "quantity") -> int:
    if value is None:
        raise ValidationError(f"{key} is required")
    n = _coerce_int(key, value)
    if n <= 0:
        raise ValidationError(f"{key} must be > 0")
    return n


def require_amount(value: Any, key: str, *, maximum: Decimal = MAX_AMOUNT) -> Decimal:
    amount = _coerce_decimal(key, value)
    if amount < 0:
        raise ValidationError(f"{key} must be >= 0")
    if amount > maximum:
        raise ValidationError(f"{key} cannot exceed {maximum}")
    return amount


def require_percent(value: Any, key: str) -> Decimal:
    return require_amount(value, key, maximum=MAX_PERCENT)


def enforce_rules_medicine(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("pack_size") is not None and patch["pack_size"] <= 0:
        raise ValidationError("pack_size must be > 0")
    if patch.get("reorder_level") is not None and patch["reorder_level"] < 0:
        raise ValidationError("reorder_level must be >= 0")


def enforce_rules_batch(patch: dict) -> None:
    for key in ("purchase_price", "mrp", "selling_price"):
        if key in patch and patch[key] is not None:
            require_amount(patch[key], key)
    if patch.get("gst_percent") is not None:
        require_percent(patch["gst_percent"], "gst_percent")

    if patch.get("quantity") is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 0")
    if patch.get("initial_quantity") is not None and patch["initial_quantity"] < 0:
        raise ValidationError("initial_quantity must be >= 0")

    mrp = patch.get("mrp")
    selling = patch.get("selling_price")
    if mrp is not None and selling is not None and selling > mrp:
        raise ValidationError("selling_price cannot exceed mrp")

    expiry = patch.get("expiry_date")
    mfg = patch.get("manufacturing_date")
    if expiry is not None and mfg is not None and as_utc(mfg) >= as_utc(expiry):
        raise ValidationError("expiry_date must be after manufacturing_date")


def parse_date_param(value: Any, key: str) -> date | None:
    """Query-string date (YYYY-MM-DD). Missing or blank gives None."""
    if value is None or str(value).strip() == "":
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date (YYYY-MM-DD)")

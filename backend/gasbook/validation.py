from __future__ import annotations
from datetime import date, datetime
import re

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .money import to_decimal
from .time_utils import parse_iso_date, parse_iso_datetime


DSC_CODE_RE = re.compile(r"[0-9]{4}")
PHONE_RE = re.compile(r"\+?[0-9]+")
BOOK_ID_RE = re.compile(r"[A-Z0-9]{16}")

MAX_CYLINDERS_PER_CUSTOMER = 99
MAX_UNITS_PER_OPERATION = 500


class ValidationError(ValueError):
    """400-level input problem."""


class CapacityExceededError(ValidationError):
    """Booking asks for more cylinders than the customer is registered for."""


class TypeMismatchError(ValidationError):
    """Booking cylinder type differs from the customer's registered type."""


class InvalidDateError(ValidationError):
    """Delivery date is in the past (or unparseable)."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate phone)."""


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

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return require_int(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{col.key} must be a boolean")

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

    if isinstance(coltype, Date):
        return require_date(value, col.key)

    if isinstance(coltype, Numeric):
        try:
            return to_decimal(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")

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
# SCALAR HELPERS
# =============================================================================

def require_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_quantity(value: Any, field: str = "quantity") -> int:
    qty = require_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    if qty > MAX_UNITS_PER_OPERATION:
        raise ValidationError(f"{field} cannot exceed {MAX_UNITS_PER_OPERATION}")
    return qty


def require_choice(value: Any, choices, field: str) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def require_date(value: Any, field: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise InvalidDateError(f"{field} must be an ISO-8601 date")
    if parsed is None:
        raise InvalidDateError(f"{field} is required")
    return parsed


def require_dsc_code(value: Any) -> str:
    code = "" if value is None else str(value).strip()
    if not DSC_CODE_RE.fullmatch(code):
        raise ValidationError("dsc_code must be exactly 4 digits")
    return code


def normalize_book_id(value: Any) -> str | None:
    if value is None:
        return None
    book_id = str(value).strip().upper()
    if not book_id:
        return None
    if not BOOK_ID_RE.fullmatch(book_id):
        raise ValidationError("book_id must be exactly 16 letters or digits")
    return book_id


# =============================================================================
# BUSINESS RULES
# =============================================================================

def enforce_rules_customer(patch: dict, *, cylinder_types) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "category" in patch:
        from .models.customers import VALID_CATEGORIES
        require_choice(patch["category"], VALID_CATEGORIES, "category")

    if "cylinders" in patch:
        cylinders = patch["cylinders"]
        if cylinders <= 0:
            raise ValidationError("cylinders must be > 0")
        if cylinders > MAX_CYLINDERS_PER_CUSTOMER:
            raise ValidationError(f"cylinders cannot exceed {MAX_CYLINDERS_PER_CUSTOMER}")

    if "cylinder_type" in patch:
        require_choice(patch["cylinder_type"], tuple(cylinder_types), "cylinder_type")

    if "book_id" in patch:
        patch["book_id"] = normalize_book_id(patch["book_id"])

    if "phone" in patch:
        phone = patch["phone"].replace(" ", "")
        if not PHONE_RE.fullmatch(phone):
            raise ValidationError("phone must contain only digits")
        patch["phone"] = phone

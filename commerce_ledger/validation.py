from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported)


# Maximum amount: 999,999,999.99 DA
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT = Decimal("999999999.99")


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings (optional leading minus).
    Rejects bools, floats, decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, (float, Decimal)):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_positive_int(value: Any, field: str) -> int:
    n = coerce_int(value, field)
    if n <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return n


def coerce_decimal(
    value: Any,
    field: str,
    *,
    min_value: Decimal | None = None,
    max_value: Decimal | None = MAX_AMOUNT,
    allow_none: bool = False,
) -> Decimal | None:
    """
    Coerce a JSON-ish number into a Decimal.

    Floats go through str() so 0.1 stays 0.1. NaN / Infinity are rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if min_value is not None and number < min_value:
        raise ValidationError(f"{field} must be at least {min_value}")
    if max_value is not None and number > max_value:
        raise ValidationError(f"{field} must not exceed {max_value}")
    return number


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def require_choice(value: Any, field: str, choices) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of {sorted(choices)}")
    return value

"""Validation helpers for configuration values.

Each helper returns the normalized value or raises ValidationError naming
the offending field, so config loading can fail fast with a clear message.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from core.errors import ValidationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def validate_required(value: Any, field: str) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", field)
    return value


def validate_int(
    value: Any,
    field: str,
    *,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    """Parse an integer from an int or a decimal string."""

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field)
    if isinstance(value, str):
        value = value.strip()
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field) from None
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be an integer", field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field)
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must not exceed {maximum}", field)
    return number


def validate_number(
    value: Any,
    field: str,
    *,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field) from None
    if number != number:
        raise ValidationError(f"{field} must be a number", field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field)
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must not exceed {maximum}", field)
    return number


def validate_fraction(value: Any, field: str) -> float:
    """Accept a number in the half-open range (0, 1]."""

    number = validate_number(value, field, maximum=1.0)
    if number <= 0:
        raise ValidationError(f"{field} must be greater than 0", field)
    return number


def validate_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = list(choices)
    normalized = str(value).strip().lower()
    if normalized not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}", field)
    return normalized


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValidationError(f"{field} must be a boolean", field)

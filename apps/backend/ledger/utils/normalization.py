"""
금액/수량 정규화 유틸리티

Untyped request values (numbers, numeric strings) are parsed into
``Decimal`` and checked against a domain rule before anything is written.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ..core.config import settings
from ..core.errors import ValidationError


class NumberRule(str, Enum):
    POSITIVE = "positive"
    NON_NEGATIVE = "non_negative"


MAX_UNIT_LENGTH = 32

# column scales: Numeric(15, 2) money, Numeric(15, 3) loan quantities
MONEY_PLACES = 2
QUANTITY_PLACES = 3


def _parse_decimal(raw: Any) -> Decimal | None:
    # bool is an int subclass; never a quantity
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        return Decimal(str(raw))
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            return Decimal(text)
        except InvalidOperation:
            return None
    return None


def _fits_scale(value: Decimal, places: int) -> bool:
    try:
        return value == value.quantize(Decimal(1).scaleb(-places))
    except InvalidOperation:
        return False


def normalize_number(raw: Any, rule: NumberRule, field: str, places: int | None = None) -> Decimal:
    """
    숫자 입력 정규화

    Args:
        raw: number or numeric string from the request body
        rule: ``POSITIVE`` (> 0) or ``NON_NEGATIVE`` (>= 0)
        field: field name used in the error message
        places: decimal places the target column keeps; finer values are rejected

    Returns:
        Decimal value

    Raises:
        ValidationError: not a finite number, the rule is violated, or too many decimal places

    Example:
        >>> normalize_number("12.5", NumberRule.POSITIVE, "amount")
        Decimal('12.5')
        >>> normalize_number(0, NumberRule.NON_NEGATIVE, "estimated_value")
        Decimal('0')
    """
    value = _parse_decimal(raw)
    if value is None or not value.is_finite():
        raise ValidationError(f"{field} must be a number", code=f"invalid_{field}")

    if rule is NumberRule.POSITIVE and value <= 0:
        raise ValidationError(f"{field} must be greater than 0", code=f"invalid_{field}")
    if rule is NumberRule.NON_NEGATIVE and value < 0:
        raise ValidationError(f"{field} must be greater than or equal to 0", code=f"invalid_{field}")
    if places is not None and not _fits_scale(value, places):
        raise ValidationError(f"{field} allows at most {places} decimal places", code=f"invalid_{field}")
    return value


def optional_number(raw: Any, rule: NumberRule, field: str, places: int | None = None) -> Decimal | None:
    """Like :func:`normalize_number`, but ``None`` and blank strings mean "absent"."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return normalize_number(raw, rule, field, places)


def to_decimal(value: Any) -> Decimal:
    """Read a stored numeric (column value or SQL aggregate) as Decimal; unreadable → 0."""
    parsed = _parse_decimal(value)
    if parsed is None or not parsed.is_finite():
        return Decimal("0")
    return parsed


def normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


def normalize_unit(value: str | None) -> str:
    unit = normalize_text(value) or settings.DEFAULT_ITEM_UNIT
    if len(unit) > MAX_UNIT_LENGTH:
        raise ValidationError(f"unit must be 1-{MAX_UNIT_LENGTH} characters", code="invalid_unit")
    return unit


def require_name(value: str | None, field: str, max_length: int = 128) -> str:
    name = normalize_text(value)
    if not name:
        raise ValidationError(f"{field} is required", code=f"missing_{field}")
    if len(name) > max_length:
        raise ValidationError(f"{field} must be 1-{max_length} characters", code=f"invalid_{field}")
    return name

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple, Union

from .errors import ValidationError

Number = Union[str, int, float, Decimal]

THEMES = ("light", "dark", "system")
CENTS = Decimal("0.01")
MAX_AMOUNT = Decimal("1e10")


def _to_decimal(value: Optional[Number], field: str) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    try:
        # str() first so floats keep their printed value
        d = Decimal(str(value).strip())
        if not d.is_finite():
            raise ValidationError(f"{field} must be a number")
        d = d.quantize(CENTS)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    # amounts are stored as Numeric(12, 2)
    if abs(d) >= MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    return d


def positive_amount(value: Optional[Number], field: str = "amount") -> Decimal:
    d = _to_decimal(value, field)
    if d <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return d


def non_negative_amount(value: Optional[Number], field: str) -> Decimal:
    d = _to_decimal(value, field)
    if d < 0:
        raise ValidationError(f"{field} must not be negative")
    return d


def required_text(value: Optional[str], field: str, max_len: int) -> str:
    v = (value or "").strip()
    if not v:
        raise ValidationError(f"{field} is required")
    if len(v) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return v


def optional_text(value: Optional[str], max_len: int) -> Optional[str]:
    v = (value or "").strip()
    return v[:max_len] or None


def installments(current: Optional[int], total: Optional[int]) -> Tuple[int, int]:
    """Check 1 <= current <= total and return the pair."""
    if total is None:
        raise ValidationError("total_installments is required")
    if current is None:
        current = 1
    if total < 1:
        raise ValidationError("total_installments must be at least 1")
    if current < 1:
        raise ValidationError("current_installment must be at least 1")
    if current > total:
        raise ValidationError("current_installment cannot exceed total_installments")
    return current, total


def day_of_month(value: Optional[int], field: str) -> Optional[int]:
    if value is None:
        return None
    if not 1 <= value <= 31:
        raise ValidationError(f"{field} must be between 1 and 31")
    return value


def last_numbers(value: Optional[str]) -> Optional[str]:
    v = (value or "").strip()
    if not v:
        return None
    if len(v) != 4 or not v.isdigit():
        raise ValidationError("last_numbers must be exactly 4 digits")
    return v


def theme(value: Optional[str]) -> Optional[str]:
    v = (value or "").strip().lower()
    if not v:
        return None
    if v not in THEMES:
        raise ValidationError(f"theme must be one of {', '.join(THEMES)}")
    return v

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional
from fastapi import HTTPException, status

CENTS = Decimal("0.01")
# Numeric(10, 2) holds at most eight integer digits
MAX_PRICE = Decimal("100000000")


def parse_positive_int(value: Any, detail: str) -> int:
    """Parse a path/query identifier, rejecting anything but a positive integer."""
    if isinstance(value, bool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if parsed <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    return parsed


def parse_price(value: Any, detail: str = "Price must be a valid non-negative number") -> Decimal:
    if isinstance(value, bool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if not price.is_finite() or price < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    try:
        price = to_money(price)
    except ArithmeticError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if price >= MAX_PRICE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    return price


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_int(value: Any, default: int) -> int:
    """Lenient query-string integer: missing or unparsable falls back to default."""
    if value is None or value == "":
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def clamp(value: int, lower: int, upper: Optional[int] = None) -> int:
    value = max(value, lower)
    if upper is not None:
        value = min(value, upper)
    return value

"""
Farm2Home - Shared Helpers
=============================
Pure utility functions with NO database or module dependencies.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def safe_int(value: Optional[str]) -> Optional[int]:
    """Safely convert a string to int. Returns None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


def to_decimal(value) -> Decimal:
    """Convert a price-like value to Decimal; missing or malformed values count as 0."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def format_price(value) -> str:
    """Format a price with two decimals and comma separators."""
    return "{:,.2f}".format(to_decimal(value))


def format_date(value, fmt: str = "%d %b %Y") -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(fmt)
    return str(value)


def city_of(location: Optional[str]) -> str:
    """First comma segment of a free-text location ("Pune, MH" -> "Pune")."""
    return (location or "").split(",")[0].strip()

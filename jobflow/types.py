"""
Shared helpers for jobflow models.

Money is carried as ``Decimal`` quantized to cents everywhere; timestamps
are timezone-aware UTC datetimes and are serialized as ISO strings.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def utc_now() -> datetime:
    """Get current timestamp in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a row identifier."""
    return str(uuid.uuid4())


def to_money(value: Any) -> Decimal:
    """Convert a user or storage value to a cent-quantized Decimal.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Amount must be numeric, got {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Amount must be numeric, got {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal) -> str:
    """Render an amount the way the workspace displays it ($1,200.00)."""
    return f"${amount:,.2f}"


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO datetime string (or pass a datetime through)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def iso(value: Union[datetime, date, None]) -> Optional[str]:
    return value.isoformat() if value is not None else None

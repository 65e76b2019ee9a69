from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")


def to_money(value):
    """Coerce ``value`` to a Decimal rounded half-up to the smallest currency unit."""
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"not a monetary amount: {value!r}")


def utcnow():
    # naive UTC, matching how DateTime columns round-trip
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(dt):
    return dt.isoformat() + "Z" if dt else None

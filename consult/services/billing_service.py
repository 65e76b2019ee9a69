"""Per-minute billing.

Pure functions only: nothing here reads or writes the database, so the same
inputs always produce the same settlement.
"""
import math
from dataclasses import dataclass
from decimal import Decimal

from consult.utils.exceptions import ValidationFailed
from consult.utils.money import to_money


@dataclass(frozen=True)
class Settlement:
    duration_minutes: int
    rate_per_minute: Decimal
    total_amount: Decimal
    provider_earnings: Decimal
    platform_commission: Decimal


def billable_minutes(start_time, end_time):
    """Whole minutes between ``start_time`` and ``end_time``, rounded up.

    A session that was joined is always billed at least one minute.
    """
    if start_time is None or end_time is None:
        raise ValidationFailed("Session has no start or end time")
    seconds = (end_time - start_time).total_seconds()
    if seconds < 0:
        raise ValidationFailed("end_time is before start_time")
    return max(1, math.ceil(seconds / 60))


def compute_settlement(duration_minutes, rate_per_minute, commission_fraction):
    if duration_minutes is None or int(duration_minutes) < 0:
        raise ValidationFailed("duration_minutes must be non-negative")
    rate = to_money(rate_per_minute)
    if rate < 0:
        raise ValidationFailed("rate_per_minute must be non-negative")
    commission = Decimal(str(commission_fraction))
    if not Decimal("0") <= commission <= Decimal("1"):
        raise ValidationFailed("commission_fraction must be between 0 and 1")

    total = to_money(Decimal(int(duration_minutes)) * rate)
    earnings = to_money(total * (Decimal("1") - commission))
    return Settlement(
        duration_minutes=int(duration_minutes),
        rate_per_minute=rate,
        total_amount=total,
        provider_earnings=earnings,
        platform_commission=total - earnings,
    )

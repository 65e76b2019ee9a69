from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from consult.services.billing_service import billable_minutes, compute_settlement
from consult.utils.exceptions import ValidationFailed

START = datetime(2026, 3, 2, 9, 0, 0)


@pytest.mark.parametrize("elapsed, expected", [
    (timedelta(minutes=7), 7),
    (timedelta(minutes=7, seconds=1), 8),
    (timedelta(seconds=59), 1),
    (timedelta(0), 1),
])
def test_billable_minutes_rounds_up(elapsed, expected):
    assert billable_minutes(START, START + elapsed) == expected


def test_billable_minutes_rejects_end_before_start():
    with pytest.raises(ValidationFailed):
        billable_minutes(START, START - timedelta(seconds=1))


def test_billable_minutes_needs_both_times():
    with pytest.raises(ValidationFailed):
        billable_minutes(None, START)


def test_settlement_splits_total_by_commission():
    s = compute_settlement(7, 30, Decimal("0.20"))
    assert s.total_amount == Decimal("210.00")
    assert s.provider_earnings == Decimal("168.00")
    assert s.platform_commission == Decimal("42.00")


def test_settlement_parts_always_sum_to_total():
    s = compute_settlement(3, Decimal("3.33"), Decimal("0.15"))
    assert s.total_amount == Decimal("9.99")
    assert s.provider_earnings == Decimal("8.49")
    assert s.provider_earnings + s.platform_commission == s.total_amount


def test_zero_commission_pays_provider_everything():
    s = compute_settlement(4, 12.5, 0)
    assert s.provider_earnings == s.total_amount == Decimal("50.00")
    assert s.platform_commission == Decimal("0.00")


@pytest.mark.parametrize("duration, rate, commission", [
    (-1, 10, 0.2),
    (5, -1, 0.2),
    (5, 10, 1.5),
])
def test_settlement_rejects_bad_inputs(duration, rate, commission):
    with pytest.raises(ValidationFailed):
        compute_settlement(duration, rate, commission)

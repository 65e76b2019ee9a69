from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from consult.extensions import db
from consult.services.rate_limiter import RateLimiter, make_key
from consult.utils.exceptions import ServiceError

from conftest import T0

LEVELS = [(3, 3600), (2, 7200), (1, 14400)]


@pytest.fixture
def limiter(container):
    return container.limiter


def test_fourth_request_in_window_is_denied(limiter):
    key = make_key("cust-1", "session_create")
    results = [limiter.check_limit(key, 3, 3600, now=T0 + timedelta(minutes=i)) for i in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[3].retry_after == 57 * 60
    assert results[3].reset_at == T0 + timedelta(hours=1)


def test_new_window_starts_after_expiry(limiter):
    key = make_key("cust-1", "session_create")
    for i in range(4):
        limiter.check_limit(key, 3, 3600, now=T0 + timedelta(minutes=i))

    result = limiter.check_limit(key, 3, 3600, now=T0 + timedelta(hours=1, minutes=1))
    assert result.allowed
    assert result.total == 1


def test_keys_are_independent(limiter):
    for _ in range(3):
        limiter.check_limit(make_key("cust-1", "session_create"), 3, 3600, now=T0)
    assert limiter.check_limit(make_key("cust-2", "session_create"), 3, 3600, now=T0).allowed
    assert limiter.check_limit(make_key("cust-1", "payout_request"), 3, 3600, now=T0).allowed


def test_enforce_raises_with_retry_after(limiter):
    key = make_key("cust-1", "session_create")
    for _ in range(2):
        result = limiter.check_limit(key, 1, 60, now=T0)

    with pytest.raises(ServiceError) as exc:
        limiter.enforce(result, "session_create")
    assert exc.value.code == "RATE_LIMIT_EXCEEDED"
    assert exc.value.status == 429
    assert exc.value.details["retry_after"] == 60


def test_progressive_limit_tightens_for_repeat_offenders(limiter):
    key = make_key("prov-1", "payout_request")
    results = [limiter.check_progressive_limit(key, LEVELS, now=T0) for _ in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert results[3].level == 0

    # past the stricter level's window too, with one violation on record
    later = T0 + timedelta(hours=2, minutes=5)
    results = [limiter.check_progressive_limit(key, LEVELS, now=later) for _ in range(3)]
    assert [r.level for r in results] == [1, 1, 1]
    assert [r.allowed for r in results] == [True, True, False]


def test_violations_are_forgotten_after_a_day(limiter):
    key = make_key("prov-1", "payout_request")
    for _ in range(4):
        limiter.check_progressive_limit(key, LEVELS, now=T0)

    result = limiter.check_progressive_limit(key, LEVELS, now=T0 + timedelta(days=1, minutes=1))
    assert result.level == 0
    assert result.allowed


def test_store_failure_fails_closed_by_default(limiter, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("UPDATE rate_limits", {}, Exception("database is locked"))

    monkeypatch.setattr(limiter, "_hit", broken)
    with pytest.raises(ServiceError) as exc:
        limiter.check_limit(make_key("prov-1", "payout_request"), 3, 3600, now=T0)
    assert exc.value.code == "SERVICE_UNAVAILABLE"
    assert exc.value.status == 503


def test_store_failure_fails_open_for_configured_actions(app, monkeypatch):
    limiter = RateLimiter(db.session, fail_open_actions=["session_create"])

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE rate_limits", {}, Exception("database is locked"))

    monkeypatch.setattr(limiter, "_hit", broken)
    result = limiter.check_limit(make_key("cust-1", "session_create"), 3, 3600, now=T0)
    assert result.allowed
    assert result.reset_at == T0 + timedelta(hours=1)

    with pytest.raises(ServiceError):
        limiter.check_limit(make_key("cust-1", "payout_request"), 3, 3600, now=T0)


def test_reset_and_cleanup(limiter):
    old = make_key("cust-1", "session_create")
    fresh = make_key("cust-2", "session_create")
    limiter.check_limit(old, 3, 3600, now=T0)
    limiter.check_limit(fresh, 3, 3600, now=T0 + timedelta(days=2))

    removed = limiter.cleanup(24 * 3600, now=T0 + timedelta(days=2, minutes=1))
    assert removed == 1
    assert limiter.get_status(old) is None

    assert limiter.reset(fresh) is True
    assert limiter.get_status(fresh) is None
    assert limiter.reset(fresh) is False

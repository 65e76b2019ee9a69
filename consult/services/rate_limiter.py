"""Database-backed rate limiting.

Counters live in the shared ``rate_limits`` table so every process sees the
same numbers. Keys look like ``<identifier>:<action>``; repeat offenders get
a parallel ``<key>:violations`` counter that drives progressive limits.
"""
import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from consult.models.rate_limit import RateLimitRecord
from consult.utils.exceptions import ServiceError
from consult.utils.money import utcnow

logger = logging.getLogger(__name__)

VIOLATIONS_SUFFIX = ":violations"
_INSERT_RETRIES = 3


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime
    total: int
    retry_after: int = 0
    level: int = 0


def make_key(identifier, action):
    return f"{identifier}:{action}"


class RateLimiter:
    def __init__(self, session, fail_open_actions=(), violation_window_seconds=24 * 60 * 60):
        self.session = session
        self.fail_open_actions = set(fail_open_actions or ())
        self.violation_window = timedelta(seconds=violation_window_seconds)

    def check_limit(self, key, max_requests, window_seconds, now=None):
        """Count one request against ``key`` and report whether it fits.

        The increment is committed immediately so it survives whatever the
        caller does next. Call this before the request makes its own writes.
        """
        now = now or utcnow()
        window = timedelta(seconds=window_seconds)
        try:
            record = self._hit(key, now, now - window)
        except SQLAlchemyError:
            self.session.rollback()
            return self._store_failure(key, now, window)

        reset_at = record.window_start + window
        allowed = record.count <= max_requests
        retry_after = 0 if allowed else max(1, math.ceil((reset_at - now).total_seconds()))
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, max_requests - record.count),
            reset_at=reset_at,
            total=record.count,
            retry_after=retry_after,
        )

    def check_progressive_limit(self, key, levels, now=None):
        """Apply stricter ``(max, window_seconds)`` levels to repeat offenders."""
        now = now or utcnow()
        violation_key = key + VIOLATIONS_SUFFIX
        try:
            record = self._get(violation_key)
        except SQLAlchemyError:
            self.session.rollback()
            return self._store_failure(key, now, timedelta(seconds=levels[0][1]))

        level = 0
        if record and record.window_start > now - self.violation_window:
            level = min(record.count, len(levels) - 1)

        max_requests, window_seconds = levels[level]
        result = self.check_limit(key, max_requests, window_seconds, now=now)
        if not result.allowed:
            self._record_violation(violation_key, now)
        return replace(result, level=level)

    def enforce(self, result, action):
        if not result.allowed:
            logger.warning("Rate limit exceeded for %s (retry in %ss)", action, result.retry_after)
            raise ServiceError(
                "RATE_LIMIT_EXCEEDED",
                "Too many requests, please try again later",
                {"retry_after": result.retry_after, "level": result.level},
            )
        return result

    def get_status(self, key):
        return self._get(key)

    def reset(self, key):
        result = self.session.execute(
            delete(RateLimitRecord).where(RateLimitRecord.key.in_([key, key + VIOLATIONS_SUFFIX]))
        )
        self.session.commit()
        return result.rowcount > 0

    def cleanup(self, max_age_seconds, now=None):
        """Drop counters whose window started more than ``max_age_seconds`` ago."""
        now = now or utcnow()
        result = self.session.execute(
            delete(RateLimitRecord).where(
                RateLimitRecord.window_start < now - timedelta(seconds=max_age_seconds)
            )
        )
        self.session.commit()
        logger.info("Removed %s expired rate limit records", result.rowcount)
        return result.rowcount

    # ------------------------------------------------------------------
    def _get(self, key):
        stmt = (
            select(RateLimitRecord)
            .where(RateLimitRecord.key == key)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _hit(self, key, now, cutoff):
        for _ in range(_INSERT_RETRIES):
            # still inside the window: count it
            result = self.session.execute(
                update(RateLimitRecord)
                .where(RateLimitRecord.key == key, RateLimitRecord.window_start > cutoff)
                .values(count=RateLimitRecord.count + 1, last_request=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # window expired: start a new one
                result = self.session.execute(
                    update(RateLimitRecord)
                    .where(RateLimitRecord.key == key, RateLimitRecord.window_start <= cutoff)
                    .values(count=1, window_start=now, last_request=now)
                    .execution_options(synchronize_session=False)
                )
            if result.rowcount == 0:
                try:
                    self.session.execute(
                        insert(RateLimitRecord).values(
                            key=key, count=1, window_start=now, last_request=now
                        )
                    )
                except IntegrityError:
                    # another instance created it first
                    self.session.rollback()
                    continue
            record = self._get(key)
            self.session.commit()
            return record
        raise SQLAlchemyError(f"could not record hit for {key}")

    def _record_violation(self, violation_key, now):
        try:
            self._hit(violation_key, now, now - self.violation_window)
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Error recording rate limit violation for %s", violation_key)

    def _store_failure(self, key, now, window):
        action = key.rsplit(":", 1)[-1]
        if action in self.fail_open_actions:
            logger.error("Rate limiter store unavailable, failing open for %s", key)
            return RateLimitResult(allowed=True, remaining=0, reset_at=now + window, total=0)
        logger.error("Rate limiter store unavailable, failing closed for %s", key)
        raise ServiceError(
            "SERVICE_UNAVAILABLE",
            "Rate limiting is temporarily unavailable",
            {"action": action},
        )

import logging
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from consult.models.consultation_session import (
    CALL_KINDS,
    OPEN_STATUSES,
    SESSION_KINDS,
    ConsultationSession,
)
from consult.models.session_note import SessionNote
from consult.models.user import User
from consult.services.billing_service import billable_minutes, compute_settlement
from consult.services.rate_limiter import make_key
from consult.utils.exceptions import (
    AccessDenied,
    InsufficientBalance,
    InvalidState,
    NotFound,
    ServiceError,
    ValidationFailed,
)
from consult.utils.money import to_money, utcnow

logger = logging.getLogger(__name__)

# action -> statuses it may be applied from
ALLOWED_FROM = {
    "ring": ("pending",),
    "join": ("pending", "ringing"),
    "end": ("active",),
    "cancel": OPEN_STATUSES,
    "reject": ("pending", "ringing"),
    "add_notes": OPEN_STATUSES,
    "rate": ("completed",),
}

RESULTING_STATUS = {
    "ring": "ringing",
    "join": "active",
    "end": "completed",
    "cancel": "cancelled",
    "reject": "rejected",
}

MAX_NOTE_LENGTH = 5000
MAX_ID_LENGTH = 50


class SessionRegistry:
    """Creates consultation sessions and moves them through their lifecycle.

    Every state change is a conditional UPDATE keyed on the current status,
    so two requests racing on the same session can't both win.
    """

    def __init__(self, session, ledger, directory, limiter, minimum_billable_minutes=5,
                 create_limit=3, create_window_seconds=3600,
                 pending_timeout_seconds=300, ringing_timeout_seconds=60):
        self.session = session
        self.ledger = ledger
        self.directory = directory
        self.limiter = limiter
        self.minimum_billable_minutes = minimum_billable_minutes
        self.create_limit = create_limit
        self.create_window_seconds = create_window_seconds
        self.pending_timeout = timedelta(seconds=pending_timeout_seconds)
        self.ringing_timeout = timedelta(seconds=ringing_timeout_seconds)

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------
    def create(self, customer_id, provider_id, kind, now=None):
        """Open a session in ``pending``.

        Returns ``(session, created)``; ``created`` is False when an open
        session for the same pair already existed and was returned as is.
        """
        now = now or utcnow()
        self._check_id(customer_id, "customer_id")
        self._check_id(provider_id, "provider_id")
        if kind not in SESSION_KINDS:
            raise ValidationFailed("Invalid session kind", {"kind": kind, "allowed": list(SESSION_KINDS)})
        if customer_id == provider_id:
            raise ValidationFailed("Cannot book a session with yourself")

        quota = self.limiter.check_limit(
            make_key(customer_id, "session_create"),
            self.create_limit,
            self.create_window_seconds,
            now=now,
        )
        self.limiter.enforce(quota, "session_create")

        listing = self.directory.lookup(provider_id, kind)
        if not listing:
            raise NotFound("Provider")
        if not listing.approved or not listing.online:
            raise ServiceError(
                "UNAVAILABLE",
                "Provider is not available right now",
                {"online": listing.online, "approved": listing.approved},
            )

        customer = self.session.get(User, customer_id)
        if not customer or not customer.is_active:
            raise AccessDenied("Customer account is not active")

        self._expire(now, pair=(customer_id, provider_id))
        existing = self._open_session_for(customer_id, provider_id)
        if existing:
            self.session.commit()
            logger.info("Returning existing open session %s", existing.id)
            return existing, False

        required = to_money(listing.rate_per_minute * self.minimum_billable_minutes)
        available = self.ledger.available_balance(customer_id)
        if available < required:
            logger.warning(
                "Session refused for %s: needs %s, has %s", customer_id, required, available
            )
            raise InsufficientBalance(available=available, required=required)

        record = ConsultationSession(
            kind=kind,
            customer_id=customer_id,
            provider_id=provider_id,
            status="pending",
            rate_per_minute=listing.rate_per_minute,
            commission_fraction=listing.commission_fraction,
            created_at=now,
            updated_at=now,
        )
        self.session.add(record)
        try:
            self.session.commit()
        except IntegrityError:
            # lost the race against a concurrent create for the same pair
            self.session.rollback()
            existing = self._open_session_for(customer_id, provider_id)
            if existing:
                return existing, False
            raise

        logger.info(
            "Created %s session %s (%s -> %s) at %s/min",
            kind, record.id, customer_id, provider_id, record.rate_per_minute,
        )
        return record, True

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get(self, session_id, actor_id=None):
        record = self._load(session_id)
        if actor_id is not None and not record.is_participant(actor_id):
            raise AccessDenied("You are not a participant in this session")
        return record

    def list_query(self, actor_id, status=None, kind=None):
        q = ConsultationSession.query.filter(
            (ConsultationSession.customer_id == actor_id)
            | (ConsultationSession.provider_id == actor_id)
        )
        if status:
            q = q.filter(ConsultationSession.status == status)
        if kind:
            q = q.filter(ConsultationSession.kind == kind)
        return q.order_by(ConsultationSession.created_at.desc())

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def transition(self, session_id, actor_id, action, notes=None, rating=None, now=None):
        now = now or utcnow()
        if action not in ALLOWED_FROM:
            raise ValidationFailed("Unknown action", {"action": action, "allowed": sorted(ALLOWED_FROM)})

        record = self.get(session_id, actor_id)

        # a session left pending or ringing past its timeout is already over,
        # whether or not the sweep has run yet
        if self._expire(now, session_id=record.id):
            self.session.commit()
            logger.info("Session %s expired before %s", record.id, action)
            record = self._load(record.id)

        if action == "reject" and actor_id != record.provider_id:
            raise AccessDenied("Only the provider can reject a session")
        if action == "rate" and actor_id != record.customer_id:
            raise AccessDenied("Only the customer can rate a session")
        if action == "ring" and record.kind not in CALL_KINDS:
            raise ValidationFailed("Only calls can ring", {"kind": record.kind})
        if action == "add_notes":
            notes = self._clean_notes(notes)
        if action == "rate":
            rating = self._clean_rating(rating)

        if record.status not in ALLOWED_FROM[action]:
            raise InvalidState(
                f"Cannot {action} a session that is {record.status}",
                {"status": record.status, "action": action},
            )

        if action == "end" or (action == "cancel" and record.status == "active"):
            return self._settle(record, action, actor_id, now)
        if action == "add_notes":
            return self._add_note(record, actor_id, notes, now)
        if action == "rate":
            return self._rate(record, rating, now)

        values = {"status": RESULTING_STATUS[action], "updated_at": now}
        from_statuses = ALLOWED_FROM[action]
        if action == "ring":
            values["ringing_at"] = now
        elif action == "join":
            values["start_time"] = now
        elif action in ("cancel", "reject"):
            # never started, so nothing to bill
            from_statuses = ("pending", "ringing")
            values["end_time"] = now
            values["cancelled_by"] = actor_id
            if action == "cancel":
                values["cancel_reason"] = self._cancel_reason(record, actor_id)

        self._compare_and_set(record.id, action, from_statuses=from_statuses, **values)
        self.session.commit()
        logger.info("Session %s: %s by %s -> %s", record.id, action, actor_id, values["status"])
        return self._load(record.id)

    def expire_stale(self, now=None):
        """Cancel pending sessions and ringing calls nobody picked up."""
        now = now or utcnow()
        expired = self._expire(now)
        self.session.commit()
        if expired:
            logger.info("Expired %s stale sessions", expired)
        return expired

    # ------------------------------------------------------------------
    def _settle(self, record, action, actor_id, now):
        """Bill an active session up to ``now`` and post the settlement.

        Runs for ``end`` and for ``cancel`` once the session has started.
        Minutes the customer's wallet can't cover are not billed, so the
        session always closes instead of staying open on an unpaid bill.
        """
        elapsed = billable_minutes(record.start_time, now)
        duration = self._billable_within_balance(record, elapsed)
        settlement = compute_settlement(duration, record.rate_per_minute, record.commission_fraction)
        if duration < elapsed:
            logger.warning(
                "Session %s: customer %s covers %s of %s minutes",
                record.id, record.customer_id, duration, elapsed,
            )

        values = {
            "status": RESULTING_STATUS[action],
            "end_time": now,
            "updated_at": now,
            "duration_minutes": settlement.duration_minutes,
            "total_amount": settlement.total_amount,
            "provider_earnings": settlement.provider_earnings,
            "platform_commission": settlement.platform_commission,
        }
        if action == "cancel":
            values["cancelled_by"] = actor_id
            values["cancel_reason"] = self._cancel_reason(record, actor_id)

        label = f"{record.kind} session ({duration} minutes)"
        try:
            self._compare_and_set(record.id, action, from_statuses=("active",), **values)
            if settlement.total_amount > 0:
                self.ledger.debit(
                    record.customer_id, settlement.total_amount,
                    description=f"Payment for {label}", session_id=record.id,
                )
                self.ledger.credit(
                    record.provider_id, settlement.provider_earnings,
                    description=f"Earnings from {label}", session_id=record.id,
                )
                self.ledger.record(
                    None, "commission", settlement.platform_commission,
                    description=f"Platform commission for {label}", session_id=record.id,
                )
            self.session.commit()
        except (ServiceError, SQLAlchemyError):
            self.session.rollback()
            raise

        logger.info(
            "Session %s %s by %s: %s min, total %s, provider %s, commission %s",
            record.id, values["status"], actor_id, duration, settlement.total_amount,
            settlement.provider_earnings, settlement.platform_commission,
        )
        return self._load(record.id)

    def _billable_within_balance(self, record, minutes):
        rate = to_money(record.rate_per_minute)
        if rate <= 0:
            return minutes
        available = self.ledger.available_balance(record.customer_id)
        return min(minutes, int(available // rate))

    def _cancel_reason(self, record, actor_id):
        role = "customer" if actor_id == record.customer_id else "provider"
        return f"cancelled_by_{role}"

    def _add_note(self, record, actor_id, content, now):
        # touching the row under the status guard keeps a concurrent
        # end/cancel from slipping in between the check and the insert
        self._compare_and_set(record.id, "add_notes", updated_at=now)
        self.session.add(SessionNote(
            session_id=record.id, author_id=actor_id, content=content, created_at=now,
        ))
        self.session.commit()
        return self._load(record.id)

    def _rate(self, record, rating, now):
        result = self.session.execute(
            update(ConsultationSession)
            .where(
                ConsultationSession.id == record.id,
                ConsultationSession.status == "completed",
                ConsultationSession.customer_rating.is_(None),
            )
            .values(customer_rating=rating, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise InvalidState("Session has already been rated", {"action": "rate"})
        self.session.commit()
        return self._load(record.id)

    def _compare_and_set(self, session_id, action, from_statuses=None, **values):
        result = self.session.execute(
            update(ConsultationSession)
            .where(
                ConsultationSession.id == session_id,
                ConsultationSession.status.in_(from_statuses or ALLOWED_FROM[action]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            current = self._load(session_id)
            raise InvalidState(
                f"Cannot {action} a session that is {current.status}",
                {"status": current.status, "action": action},
            )

    def _expire(self, now, pair=None, session_id=None):
        expired = 0
        for status, column, timeout in (
            ("pending", ConsultationSession.created_at, self.pending_timeout),
            ("ringing", ConsultationSession.ringing_at, self.ringing_timeout),
        ):
            stmt = (
                update(ConsultationSession)
                .where(ConsultationSession.status == status, column < now - timeout)
                .values(status="cancelled", cancel_reason="expired", end_time=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if pair:
                stmt = stmt.where(
                    ConsultationSession.customer_id == pair[0],
                    ConsultationSession.provider_id == pair[1],
                )
            if session_id:
                stmt = stmt.where(ConsultationSession.id == session_id)
            expired += self.session.execute(stmt).rowcount
        return expired

    def _open_session_for(self, customer_id, provider_id):
        stmt = (
            select(ConsultationSession)
            .where(
                ConsultationSession.customer_id == customer_id,
                ConsultationSession.provider_id == provider_id,
                ConsultationSession.status.in_(OPEN_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalars().first()

    def _load(self, session_id):
        stmt = (
            select(ConsultationSession)
            .where(ConsultationSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        record = self.session.execute(stmt).scalar_one_or_none()
        if not record:
            raise NotFound("Session")
        return record

    def _check_id(self, value, field):
        if not isinstance(value, str) or not value.strip() or len(value) > MAX_ID_LENGTH:
            raise ValidationFailed(f"Invalid {field}", {"field": field})

    def _clean_notes(self, notes):
        if not isinstance(notes, str) or not notes.strip():
            raise ValidationFailed("notes are required for add_notes", {"field": "notes"})
        notes = notes.strip()
        if len(notes) > MAX_NOTE_LENGTH:
            raise ValidationFailed("notes are too long", {"max_length": MAX_NOTE_LENGTH})
        return notes

    def _clean_rating(self, rating):
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationFailed("rating must be an integer from 1 to 5", {"field": "rating"})
        return rating

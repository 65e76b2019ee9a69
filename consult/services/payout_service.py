import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from consult.models.ledger_entry import LedgerEntry
from consult.models.payment_method import REQUIRED_DETAILS, PayoutMethod
from consult.models.withdrawal_request import WithdrawalRequest
from consult.services.rate_limiter import make_key
from consult.utils.exceptions import InvalidState, NotFound, ServiceError, ValidationFailed
from consult.utils.money import to_money, utcnow

logger = logging.getLogger(__name__)

# preferred when the caller doesn't name a method
METHOD_PREFERENCE = ("upi", "bank_transfer")


def pending_exists_error():
    return ServiceError(
        "PENDING_REQUEST_EXISTS",
        "You already have a pending payout request. Please wait for it to be processed.",
    )


class PayoutWorkflow:
    def __init__(self, session, ledger, limiter, min_amount, max_amount, rate_limits):
        self.session = session
        self.ledger = ledger
        self.limiter = limiter
        self.min_amount = to_money(min_amount)
        self.max_amount = to_money(max_amount)
        self.rate_limits = rate_limits

    # ------------------------------------------------------------------
    # withdrawal requests
    # ------------------------------------------------------------------
    def request(self, owner_id, amount, method=None, account_details=None, now=None):
        """Reserve ``amount`` and file a pending withdrawal for ``owner_id``.

        Returns ``(withdrawal, remaining_balance)``.
        """
        now = now or utcnow()
        try:
            amount = to_money(amount)
        except ValueError:
            raise ValidationFailed("Amount must be numeric", {"field": "amount"})
        if not self.min_amount <= amount <= self.max_amount:
            raise ValidationFailed(
                "Payout amount is out of bounds",
                {"min": float(self.min_amount), "max": float(self.max_amount)},
            )
        payout_method = self._resolve_method(owner_id, method, account_details)

        quota = self.limiter.check_progressive_limit(
            make_key(owner_id, "payout_request"), self.rate_limits, now=now
        )
        self.limiter.enforce(quota, "payout_request")

        if self.get_pending(owner_id):
            raise pending_exists_error()

        try:
            wallet = self.ledger.reserve(owner_id, amount)
            withdrawal = WithdrawalRequest(
                owner_id=owner_id,
                amount=amount,
                method=payout_method.method,
                account_details=dict(payout_method.details or {}),
                status="pending",
                requested_at=now,
            )
            self.session.add(withdrawal)
            self.session.flush()
            self.ledger.record(
                owner_id, "withdrawal", amount, status="pending",
                description=f"Payout request - {payout_method.method.upper()}",
                withdrawal_id=withdrawal.id,
            )
            self.session.commit()
        except IntegrityError:
            # the one-pending-per-owner index caught a concurrent request
            self.session.rollback()
            raise pending_exists_error()
        except (ServiceError, SQLAlchemyError):
            self.session.rollback()
            raise

        remaining = to_money(wallet.available_balance)
        logger.info("Payout %s requested by %s for %s", withdrawal.id, owner_id, amount)
        return withdrawal, remaining

    def get_pending(self, owner_id):
        return WithdrawalRequest.query.filter_by(owner_id=owner_id, status="pending").first()

    def list_query(self, owner_id=None, status=None):
        q = WithdrawalRequest.query
        if owner_id:
            q = q.filter(WithdrawalRequest.owner_id == owner_id)
        if status:
            q = q.filter(WithdrawalRequest.status == status)
        return q.order_by(WithdrawalRequest.requested_at.desc())

    def resolve(self, request_id, admin_id, disposition, reason=None, now=None):
        """Approve (pay out) or reject a pending withdrawal."""
        now = now or utcnow()
        if disposition not in ("approved", "rejected"):
            raise ValidationFailed("Unknown disposition", {"disposition": disposition})

        withdrawal = self.session.get(WithdrawalRequest, request_id)
        if not withdrawal:
            raise NotFound("Withdrawal")

        new_status = "paid" if disposition == "approved" else "rejected"
        try:
            result = self.session.execute(
                update(WithdrawalRequest)
                .where(WithdrawalRequest.id == request_id, WithdrawalRequest.status == "pending")
                .values(
                    status=new_status,
                    processed_at=now,
                    processed_by=admin_id,
                    rejection_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState(
                    "Only pending withdrawals can be processed",
                    {"status": withdrawal.status},
                )
            self.ledger.settle(withdrawal.owner_id, withdrawal.amount, disposition)
            self.session.execute(
                update(LedgerEntry)
                .where(LedgerEntry.withdrawal_id == request_id, LedgerEntry.type == "withdrawal")
                .values(
                    status="completed" if disposition == "approved" else "reversed",
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        except (ServiceError, SQLAlchemyError):
            self.session.rollback()
            raise

        self.session.refresh(withdrawal)
        logger.info("Withdrawal %s %s by %s", request_id, new_status, admin_id)
        return withdrawal

    # ------------------------------------------------------------------
    # payout methods
    # ------------------------------------------------------------------
    def add_method(self, owner_id, method, details, is_default=False):
        if method not in REQUIRED_DETAILS:
            raise ValidationFailed("Unsupported payout method", {"allowed": list(REQUIRED_DETAILS)})
        pm = PayoutMethod(owner_id=owner_id, method=method, details=details or {})
        if not pm.is_usable:
            raise ValidationFailed(
                "Payout details are incomplete",
                {"required": list(REQUIRED_DETAILS[method])},
            )
        if is_default or not self.list_methods(owner_id):
            PayoutMethod.query.filter_by(owner_id=owner_id, is_default=True).update({"is_default": False})
            pm.is_default = True
        self.session.add(pm)
        self.session.commit()
        return pm

    def list_methods(self, owner_id):
        return (
            PayoutMethod.query.filter_by(owner_id=owner_id)
            .order_by(PayoutMethod.is_default.desc(), PayoutMethod.created_at)
            .all()
        )

    def set_default(self, owner_id, method_id):
        pm = PayoutMethod.query.filter_by(id=method_id, owner_id=owner_id).first()
        if not pm:
            raise NotFound("Payout method")
        PayoutMethod.query.filter_by(owner_id=owner_id).update({"is_default": False})
        pm.is_default = True
        self.session.commit()
        return pm

    def _resolve_method(self, owner_id, method, account_details):
        usable = [m for m in self.list_methods(owner_id) if m.is_usable]
        if method:
            if method not in REQUIRED_DETAILS:
                raise ValidationFailed("Unsupported payout method", {"allowed": list(REQUIRED_DETAILS)})
            usable = [m for m in usable if m.method == method]
        if account_details:
            usable = [
                m for m in usable
                if all(str((m.details or {}).get(k)) == str(v) for k, v in account_details.items())
            ]
        if not usable:
            raise ValidationFailed(
                "Please add UPI or bank account details before requesting a payout",
                {"reason": "NO_PAYOUT_METHOD"},
            )
        defaults = [m for m in usable if m.is_default]
        if defaults:
            return defaults[0]
        return sorted(usable, key=lambda m: METHOD_PREFERENCE.index(m.method))[0]

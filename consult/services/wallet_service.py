import logging
from decimal import Decimal

from sqlalchemy import select, update

from consult.models.ledger_entry import LedgerEntry
from consult.models.wallet import Wallet
from consult.utils.exceptions import InsufficientBalance, NotFound, ValidationFailed
from consult.utils.money import to_money, utcnow

logger = logging.getLogger(__name__)


class WalletLedger:
    """Balance and reservation bookkeeping for every account.

    Each mutation is one conditional UPDATE so the check and the write can't
    be separated by a concurrent caller. Nothing here commits: the caller
    owns the transaction so multi-step settlements stay all-or-nothing.
    """

    def __init__(self, session, currency="INR"):
        self.session = session
        self.currency = currency

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_wallet(self, owner_id):
        stmt = (
            select(Wallet)
            .where(Wallet.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def available_balance(self, owner_id):
        wallet = self.get_wallet(owner_id)
        if not wallet:
            return Decimal("0.00")
        return to_money(wallet.available_balance)

    def get_summary(self, owner_id):
        wallet = self.get_wallet(owner_id)
        if not wallet:
            return {
                "balance": 0.0,
                "reserved_balance": 0.0,
                "available_balance": 0.0,
                "currency": self.currency,
            }
        return {
            "balance": float(wallet.balance),
            "reserved_balance": float(wallet.reserved_balance),
            "available_balance": float(wallet.available_balance),
            "currency": wallet.currency,
        }

    def entries_query(self, owner_id, entry_type=None):
        q = LedgerEntry.query.filter_by(owner_id=owner_id)
        if entry_type:
            q = q.filter(LedgerEntry.type == entry_type)
        return q.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())

    # ------------------------------------------------------------------
    # accounts
    # ------------------------------------------------------------------
    def open_account(self, owner_id, opening_balance=0):
        wallet = self.get_wallet(owner_id)
        if wallet:
            return wallet
        wallet = Wallet(
            owner_id=owner_id,
            balance=to_money(opening_balance),
            reserved_balance=Decimal("0.00"),
            currency=self.currency,
        )
        self.session.add(wallet)
        self.session.flush()
        return wallet

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    def reserve(self, owner_id, amount):
        amount = self._positive(amount)
        result = self.session.execute(
            update(Wallet)
            .where(
                Wallet.owner_id == owner_id,
                Wallet.balance - Wallet.reserved_balance >= amount,
            )
            .values(reserved_balance=Wallet.reserved_balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._raise_shortfall(owner_id, amount)
        logger.info("Reserved %s for %s", amount, owner_id)
        return self.get_wallet(owner_id)

    def release(self, owner_id, amount):
        amount = self._positive(amount)
        result = self.session.execute(
            update(Wallet)
            .where(Wallet.owner_id == owner_id, Wallet.reserved_balance >= amount)
            .values(reserved_balance=Wallet.reserved_balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationFailed(
                "Release exceeds reserved balance",
                {"owner_id": owner_id, "amount": float(amount)},
            )
        logger.info("Released reservation of %s for %s", amount, owner_id)
        return self.get_wallet(owner_id)

    def settle(self, owner_id, amount, disposition):
        """Finish a reservation: ``approved`` pays it out, ``rejected`` frees it."""
        amount = self._positive(amount)
        if disposition == "rejected":
            return self.release(owner_id, amount)
        if disposition != "approved":
            raise ValidationFailed(f"Unknown disposition: {disposition}")

        result = self.session.execute(
            update(Wallet)
            .where(
                Wallet.owner_id == owner_id,
                Wallet.reserved_balance >= amount,
                Wallet.balance >= amount,
            )
            .values(
                balance=Wallet.balance - amount,
                reserved_balance=Wallet.reserved_balance - amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationFailed(
                "Settlement exceeds reserved balance",
                {"owner_id": owner_id, "amount": float(amount)},
            )
        logger.info("Settled payout of %s for %s", amount, owner_id)
        return self.get_wallet(owner_id)

    def credit(self, owner_id, amount, description="", session_id=None):
        amount = self._positive(amount, allow_zero=True)
        result = self.session.execute(
            update(Wallet)
            .where(Wallet.owner_id == owner_id)
            .values(balance=Wallet.balance + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # first money in; a racing insert fails the unique key and the
            # whole transaction rolls back
            self.open_account(owner_id, opening_balance=amount)
        entry = self.record(owner_id, "credit", amount, description=description, session_id=session_id)
        logger.info("Credited %s to %s", amount, owner_id)
        return entry

    def debit(self, owner_id, amount, description="", session_id=None):
        amount = self._positive(amount, allow_zero=True)
        result = self.session.execute(
            update(Wallet)
            .where(
                Wallet.owner_id == owner_id,
                Wallet.balance - Wallet.reserved_balance >= amount,
            )
            .values(balance=Wallet.balance - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = self.available_balance(owner_id)
            logger.warning("Debit of %s refused for %s (available %s)", amount, owner_id, available)
            raise InsufficientBalance(available=available, required=amount)
        entry = self.record(owner_id, "debit", amount, description=description, session_id=session_id)
        logger.info("Debited %s from %s", amount, owner_id)
        return entry

    def record(self, owner_id, entry_type, amount, status="completed", description="",
               session_id=None, withdrawal_id=None):
        entry = LedgerEntry(
            owner_id=owner_id,
            type=entry_type,
            amount=to_money(amount),
            status=status,
            description=description,
            session_id=session_id,
            withdrawal_id=withdrawal_id,
            created_at=utcnow(),
        )
        self.session.add(entry)
        return entry

    # ------------------------------------------------------------------
    def _positive(self, amount, allow_zero=False):
        try:
            amount = to_money(amount)
        except ValueError:
            raise ValidationFailed("Amount must be numeric", {"amount": str(amount)})
        if amount < 0 or (amount == 0 and not allow_zero):
            raise ValidationFailed("Amount must be positive", {"amount": float(amount)})
        return amount

    def _raise_shortfall(self, owner_id, amount):
        wallet = self.get_wallet(owner_id)
        if not wallet:
            raise NotFound("Wallet")
        logger.warning(
            "Reservation of %s refused for %s (available %s)",
            amount, owner_id, wallet.available_balance,
        )
        raise InsufficientBalance(available=wallet.available_balance, required=amount)

from decimal import Decimal

import pytest

from consult.extensions import db
from consult.models.ledger_entry import LedgerEntry
from consult.utils.exceptions import InsufficientBalance, NotFound, ValidationFailed


@pytest.fixture
def ledger(container):
    return container.ledger


def test_reserve_then_release_restores_available(ledger, make_user):
    make_user("prov-1", role="provider", balance=1000)

    wallet = ledger.reserve("prov-1", 400)
    db.session.commit()
    assert wallet.reserved_balance == Decimal("400.00")
    assert ledger.available_balance("prov-1") == Decimal("600.00")

    wallet = ledger.release("prov-1", 400)
    db.session.commit()
    assert wallet.balance == Decimal("1000.00")
    assert wallet.reserved_balance == Decimal("0.00")


def test_reserve_more_than_available_changes_nothing(ledger, make_user):
    make_user("prov-1", role="provider", balance=1000)

    with pytest.raises(InsufficientBalance) as exc:
        ledger.reserve("prov-1", 1500)
    assert exc.value.details == {"available": 1000.0, "required": 1500.0}

    wallet = ledger.get_wallet("prov-1")
    assert wallet.balance == Decimal("1000.00")
    assert wallet.reserved_balance == Decimal("0.00")


def test_reserve_without_wallet_is_not_found(ledger, make_user):
    make_user("prov-1", role="provider")
    with pytest.raises(NotFound):
        ledger.reserve("prov-1", 10)


def test_settle_approved_removes_funds(ledger, make_user):
    make_user("prov-1", role="provider", balance=1000)
    ledger.reserve("prov-1", 500)

    wallet = ledger.settle("prov-1", 500, "approved")
    db.session.commit()
    assert wallet.balance == Decimal("500.00")
    assert wallet.reserved_balance == Decimal("0.00")


def test_settle_more_than_reserved_is_refused(ledger, make_user):
    make_user("prov-1", role="provider", balance=1000)
    ledger.reserve("prov-1", 100)

    with pytest.raises(ValidationFailed):
        ledger.settle("prov-1", 200, "approved")
    with pytest.raises(ValidationFailed):
        ledger.settle("prov-1", 200, "rejected")

    wallet = ledger.get_wallet("prov-1")
    assert wallet.reserved_balance <= wallet.balance


def test_reserved_never_exceeds_balance_across_sequence(ledger, make_user):
    make_user("prov-1", role="provider", balance=300)
    steps = [
        ("reserve", 100), ("reserve", 150), ("settle", 100),
        ("reserve", 60), ("release", 150), ("reserve", 140),
    ]
    for op, amount in steps:
        if op == "reserve":
            try:
                ledger.reserve("prov-1", amount)
            except InsufficientBalance:
                pass
        elif op == "settle":
            ledger.settle("prov-1", amount, "approved")
        else:
            ledger.release("prov-1", amount)
        db.session.commit()
        wallet = ledger.get_wallet("prov-1")
        assert Decimal("0") <= wallet.reserved_balance <= wallet.balance

    wallet = ledger.get_wallet("prov-1")
    assert wallet.balance == Decimal("200.00")
    assert wallet.reserved_balance == Decimal("140.00")


def test_credit_opens_account_on_first_deposit(ledger, make_user):
    make_user("prov-1", role="provider")

    ledger.credit("prov-1", 168, description="Earnings")
    db.session.commit()

    assert ledger.get_wallet("prov-1").balance == Decimal("168.00")
    entry = LedgerEntry.query.filter_by(owner_id="prov-1").one()
    assert entry.type == "credit"
    assert entry.amount == Decimal("168.00")


def test_debit_respects_reservations(ledger, make_user):
    make_user("cust-1", balance=100)
    ledger.reserve("cust-1", 60)

    with pytest.raises(InsufficientBalance):
        ledger.debit("cust-1", 50)

    ledger.debit("cust-1", 40)
    db.session.commit()
    wallet = ledger.get_wallet("cust-1")
    assert wallet.balance == Decimal("60.00")
    assert wallet.reserved_balance == Decimal("60.00")


def test_amounts_must_be_positive(ledger, make_user):
    make_user("cust-1", balance=100)
    with pytest.raises(ValidationFailed):
        ledger.reserve("cust-1", 0)
    with pytest.raises(ValidationFailed):
        ledger.credit("cust-1", -5)
    with pytest.raises(ValidationFailed):
        ledger.reserve("cust-1", "ten")


def test_summary_for_unknown_owner_is_zero(ledger):
    assert ledger.get_summary("nobody") == {
        "balance": 0.0,
        "reserved_balance": 0.0,
        "available_balance": 0.0,
        "currency": "INR",
    }

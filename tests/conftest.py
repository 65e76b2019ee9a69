from datetime import datetime
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from consult.config import TestingConfig
from consult.extensions import db
from consult.main import create_app
from consult.models.payment_method import PayoutMethod
from consult.models.provider_profile import ProviderProfile
from consult.models.user import User
from consult.models.wallet import Wallet

T0 = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def container(app):
    return app.container


@pytest.fixture
def make_user(app):
    def _make(user_id, role="customer", balance=None, account_status="active"):
        user = User(
            id=user_id,
            email=f"{user_id}@example.com",
            full_name=user_id.replace("-", " ").title(),
            role=role,
            account_status=account_status,
        )
        db.session.add(user)
        if balance is not None:
            db.session.add(Wallet(owner_id=user_id, balance=Decimal(str(balance)), reserved_balance=0))
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_provider(make_user):
    def _make(user_id="prov-1", chat_rate=30, online=True, approved=True, commission=None, balance=None):
        user = make_user(user_id, role="provider", balance=balance)
        db.session.add(ProviderProfile(
            user_id=user_id,
            chat_rate=Decimal(str(chat_rate)) if chat_rate is not None else None,
            voice_call_rate=Decimal("40"),
            video_call_rate=Decimal("50"),
            commission_fraction=Decimal(str(commission)) if commission is not None else None,
            is_online=online,
            is_approved=approved,
        ))
        db.session.commit()
        return user
    return _make


@pytest.fixture
def add_upi(app):
    def _add(owner_id, upi_id="provider@upi"):
        pm = PayoutMethod(owner_id=owner_id, method="upi", details={"upi_id": upi_id}, is_default=True)
        db.session.add(pm)
        db.session.commit()
        return pm
    return _add


@pytest.fixture
def auth_headers(app):
    def _headers(user_id, role):
        token = create_access_token(identity=user_id, additional_claims={"role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers

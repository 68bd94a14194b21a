"""
Pytest configuration for the payment scheduler.

Provides fixtures for:
- An application bound to an in-memory SQLite database
- Landlord/tenant users and a contract factory
- JWT auth headers and a scheduler with a frozen clock
"""

from __future__ import annotations

import itertools
from datetime import date, datetime
from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta
from flask_jwt_extended import create_access_token

from rentalbiz import create_app
from rentalbiz.config import TestingConfig
from rentalbiz.extensions import db as _db
from rentalbiz.models import Contract, Payment, User
from rentalbiz.services.payment_scheduler import PaymentScheduler

FROZEN_NOW = datetime(2024, 1, 15, 9, 30)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.config["CLOCK"] = lambda: FROZEN_NOW
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


def _make_user(email, role):
    user = User(email=email, full_name=email.split("@")[0].title(), role=role)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture
def landlord(app):
    return _make_user("landlord@example.com", "landlord")


@pytest.fixture
def other_landlord(app):
    return _make_user("other.landlord@example.com", "landlord")


@pytest.fixture
def tenant(app):
    return _make_user("tenant@example.com", "tenant")


@pytest.fixture
def make_contract(landlord, tenant):
    counter = itertools.count(1)

    def _make(
        start_date=date(2024, 3, 10),
        payment_day=5,
        monthly_rent="1000.00",
        status="active",
        landlord_id=None,
    ):
        contract = Contract(
            contract_number=f"CTR-TEST-{next(counter):05d}",
            landlord_id=landlord_id or landlord.id,
            tenant_id=tenant.id,
            start_date=start_date,
            end_date=start_date + relativedelta(years=1),
            monthly_rent=Decimal(monthly_rent),
            payment_day=payment_day,
            status=status,
        )
        _db.session.add(contract)
        _db.session.commit()
        return contract

    return _make


@pytest.fixture
def contract(make_contract):
    """start 2024-03-10, rent 1000 due on the 5th."""
    return make_contract()


@pytest.fixture
def add_payment(tenant):
    def _add(contract, due_date, payment_type="rent", amount="1000.00", is_automatic=False):
        payment = Payment(
            contract_id=contract.id,
            user_id=tenant.id,
            type=payment_type,
            amount=Decimal(amount),
            due_date=due_date,
            status="pending",
            is_automatic=is_automatic,
        )
        _db.session.add(payment)
        _db.session.commit()
        return payment

    return _add


@pytest.fixture
def scheduler(app):
    return PaymentScheduler(clock=lambda: FROZEN_NOW, currency=app.config["PAYMENT_CURRENCY"])


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=user.id, additional_claims={"role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return _headers

"""
Pytest fixtures for the billing test suite.

Every test runs inside an application context bound to a fresh in-memory
SQLite database. Services accept an injected ``today``; tests use ``TODAY``
so date arithmetic is deterministic.
"""
import itertools
from datetime import date, timedelta

import pytest

from app import create_app
from models import db, Customer, Package

TODAY = date(2026, 3, 15)
CRON_SECRET = 'test-cron-secret'


def days(n):
    return timedelta(days=n)


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'CRON_SECRET_KEY': CRON_SECRET,
        'REMINDER_CHANNEL': 'log',
        'LOG_LEVEL': 'WARNING',
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_package(app):
    def _make(name='Basic 10 Mbps', monthly_price=600, validity_days=30, speed_mbps=10):
        package = Package(name=name, monthly_price=monthly_price, validity_days=validity_days, speed_mbps=speed_mbps)
        db.session.add(package)
        db.session.commit()
        return package
    return _make


@pytest.fixture
def make_customer(app, make_package):
    counter = itertools.count(1)

    def _make(expiry_date=TODAY, total_due=0, status='active', package='default',
              user_id=None, password='secret', phone='01712345678'):
        if package == 'default':
            package = make_package()
        n = next(counter)
        customer = Customer(
            user_id=user_id or f"user{n:03d}",
            full_name=f"Customer {n}",
            phone=phone,
            status=status,
            expiry_date=expiry_date,
            total_due=total_due,
            package=package,
            billing_start_date=expiry_date - days(30),
        )
        customer.set_password(password)
        db.session.add(customer)
        db.session.commit()
        return customer
    return _make

# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import time
import uuid
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("SECRET_KEY", "testing-secret")


# =====================================================================================
# Flask app on a temporary SQLite file, schema created once per session
# =====================================================================================
@pytest.fixture(scope="session")
def app():
    from config import TestingConfig
    from rigdzen_app import create_app
    from rigdzen_app.extensions import db

    fd, db_path = tempfile.mkstemp(prefix="rigdzen_test_", suffix=".sqlite")
    os.close(fd)

    class _Cfg(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"

    app = create_app(_Cfg)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.remove(db_path)
    except OSError:
        pass


# =====================================================================================
# Each test starts from empty tables
# =====================================================================================
@pytest.fixture(autouse=True)
def _clean_tables(app):
    yield
    from rigdzen_app.extensions import db
    with app.app_context():
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from rigdzen_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()


# =====================================================================================
# No network: every outbound HTTP call fails loudly unless a test stubs it
# =====================================================================================
@pytest.fixture(autouse=True)
def _mock_externals(monkeypatch):
    import requests

    def _blocked(*a, **k):
        raise AssertionError(f"unexpected network call: {a}")

    monkeypatch.setattr(requests, "get", _blocked)
    monkeypatch.setattr(requests, "post", _blocked)
    monkeypatch.setattr(requests, "request", _blocked)
    yield


class FakePayPal:
    """Stands in for rigdzen_app.services.paypal inside the payment service."""

    def __init__(self):
        self.created = []
        self.captured = []
        self.capture_amount = None
        self.capture_status = "COMPLETED"
        self.order_id = "PAYPAL-ORDER-1"

    def create_order(self, amount, currency, description, return_url, cancel_url):
        from rigdzen_app.services.paypal import CreatedOrder
        self.created.append(dict(amount=amount, currency=currency, return_url=return_url, cancel_url=cancel_url))
        return CreatedOrder(order_id=self.order_id, approval_url=f"https://paypal.test/approve/{self.order_id}")

    def capture_order(self, order_id):
        from rigdzen_app.services.paypal import CaptureResult
        self.captured.append(order_id)
        return CaptureResult(
            order_id=order_id,
            capture_id=f"CAP-{len(self.captured)}",
            status=self.capture_status,
            amount=Decimal(str(self.capture_amount)),
            currency="CAD",
            payer_id="PAYER-1",
        )


@pytest.fixture
def fake_paypal(monkeypatch):
    from rigdzen_app.services import paypal
    fake = FakePayPal()
    monkeypatch.setattr(paypal, "create_order", fake.create_order)
    monkeypatch.setattr(paypal, "capture_order", fake.capture_order)
    return fake


# =====================================================================================
# Model factories
# =====================================================================================
class Factory:
    def __init__(self, session):
        self.s = session

    def _save(self, obj):
        self.s.add(obj)
        self.s.commit()
        return obj

    def user(self, role="PARTICIPANT", **kw):
        from rigdzen_app.models import User
        kw.setdefault("email", f"user+{uuid.uuid4().hex[:6]}@test.com")
        kw.setdefault("name", "Participant")
        kw.setdefault("profile_completed", True)
        return self._save(User(role=role, **kw))

    def retreat(self, **kw):
        from rigdzen_app.models import Retreat
        start = kw.pop("start_date", datetime.utcnow() + timedelta(days=30))
        kw.setdefault("name", "Summer Retreat")
        kw.setdefault("end_date", start + timedelta(days=3))
        return self._save(Retreat(start_date=start, **kw))

    def meal(self, retreat, price="20.00", **kw):
        from rigdzen_app.models import Meal
        kw.setdefault("name", "Lunch")
        kw.setdefault("meal_date", retreat.start_date + timedelta(hours=12))
        return self._save(Meal(retreat_id=retreat.id, price=Decimal(price), **kw))

    def menu_item(self, meal, requires_quantity=False, **kw):
        from rigdzen_app.models import MenuItem
        kw.setdefault("name", "Soup")
        return self._save(MenuItem(meal_id=meal.id, requires_quantity=requires_quantity, **kw))

    def order(self, user, meal, selections=(), status="PENDING"):
        from rigdzen_app.models import MealOrder, MealOrderMenuItem
        order = MealOrder(user_id=user.id, meal_id=meal.id, retreat_id=meal.retreat_id, status=status)
        for item, qty in selections:
            order.menu_items.append(MealOrderMenuItem(menu_item_id=item.id, quantity=qty))
        return self._save(order)

    def tracking(self, user, ref="PAYPAL-ORDER-1", amount="0", meal_order=None):
        from rigdzen_app.models import Payment
        return self._save(Payment(
            user_id=user.id, meal_order_id=meal_order.id if meal_order else None,
            amount=Decimal(amount), currency="CAD", external_order_ref=ref, status="PENDING",
        ))

    def duty(self, retreat, **kw):
        from rigdzen_app.models import Duty
        kw.setdefault("title", "Kitchen")
        return self._save(Duty(retreat_id=retreat.id, **kw))

    def registration(self, user, retreat, status="REGISTERED"):
        from rigdzen_app.models import RetreatRegistration
        return self._save(RetreatRegistration(user_id=user.id, retreat_id=retreat.id, status=status))


@pytest.fixture
def make(db_session):
    return Factory(db_session)


# =====================================================================================
# Users and logged-in clients (real signed session cookies)
# =====================================================================================
def sign_in(app, client, user, expires_in_ms=None):
    from rigdzen_app.services.sessions import SessionData, encode_token, DAY_MS
    expires_at = int(time.time() * 1000) + (expires_in_ms if expires_in_ms is not None else 7 * DAY_MS)
    with app.test_request_context():
        token = encode_token(SessionData(user.id, user.email, user.role, expires_at))
    client.set_cookie(app.config["AUTH_COOKIE_NAME"], token)
    return token


@pytest.fixture
def user_admin(make):
    return make.user(role="ADMIN", name="Admin", email=f"admin+{uuid.uuid4().hex[:6]}@test.com")


@pytest.fixture
def user_normal(make):
    return make.user(name="Tenzin")


@pytest.fixture
def logged_client_admin(app, client, user_admin):
    sign_in(app, client, user_admin)
    return client


@pytest.fixture
def logged_client_user(app, client, user_normal):
    sign_in(app, client, user_normal)
    return client


@pytest.fixture
def impersonation_on(app, monkeypatch):
    monkeypatch.setitem(app.config, "IMPERSONATION_ENABLED", True)
    yield


@pytest.fixture
def login(app, client):
    """login(user) signs the shared test client in as ``user``."""
    return lambda user, **kw: sign_in(app, client, user, **kw)

# conftest.py
import time
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from foodorder.config import Settings
from foodorder.db import Database
from foodorder.main import create_app
from foodorder.services import coupons
from foodorder.services.checkout import Cart, CartLine, CustomerInfo, checkout
from foodorder.util.security import create_token


class FakeCodegen:
    """Stands in for the QR renderer; flip `fail` or `delay` to simulate a bad generator."""

    def __init__(self):
        self.fail = False
        self.delay = 0.0
        self.calls = []

    def generate(self, url: str) -> str:
        self.calls.append(url)
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("renderer unavailable")
        return f"data:text/plain,{url}#{len(self.calls)}"


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        APP_ENV="test",
        APP_SECRET="test-secret",
        DB_URL=f"sqlite:///{tmp_path / 'foodorder.db'}",
        DB_TIMEOUT_SEC=10,
        PUBLIC_BASE_URL="http://menu.test",
        CODEGEN_TIMEOUT_SEC=2,
        LOG_LEVEL="DEBUG",
        _env_file=None,
    )


@pytest.fixture()
def database(settings):
    d = Database(settings)
    d.create_all()
    yield d
    d.dispose()


@pytest.fixture()
def db(database):
    with database.session() as s:
        yield s


@pytest.fixture()
def codegen():
    return FakeCodegen()


@pytest.fixture()
def client(settings, codegen):
    app = create_app(settings, codegen=codegen)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def auth_headers(settings):
    return {"Authorization": f"Bearer {create_token('staff-1', settings)}"}


@pytest.fixture()
def future():
    return datetime.now(timezone.utc) + timedelta(days=30)


@pytest.fixture()
def make_coupon(db, future):
    def _make(code="SAVE10", discount_type="percentage", value=10, **extra):
        data = {"code": code, "discount_type": discount_type, "value": value, "expiry_date": future}
        data.update(extra)
        return coupons.create_coupon(db, data, actor="staff-1")
    return _make


@pytest.fixture()
def place_order(db, settings):
    """95.24 + 5% gst is exactly 100.00, which keeps discount arithmetic readable."""
    def _place(phone="9000000001", coupon_code=None, unit_price="95.24", quantity=1, session=None, **info):
        cart = Cart(lines=[CartLine("p-1", "Paneer Tikka", unit_price, quantity)])
        customer = CustomerInfo(name=info.pop("name", "Asha"), phone=phone, **info)
        return checkout(session or db, cart, customer, coupon_code, settings=settings)
    return _place

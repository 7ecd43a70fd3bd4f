"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Settings are read at import time; point them at SQLite before anything loads
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pos_api.main import app
from pos_api.models import Addon, Base, DiningTable, MenuItem, Outlet
from pos_api.services.domain import OrderService
from pos_api.services.events import RealtimeNotifier, get_notifier
from shared.config.constants import OrderMode, PaymentMethod, RoundingRule
from shared.infrastructure.db import get_db
from shared.infrastructure.events import reset_publish_breaker
from shared.security.auth import sign_jwt
from shared.security.rate_limit import limiter
from shared.utils.schemas import (
    CreatePosOrderRequest,
    CreateQrOrderRequest,
    OrderItemInput,
)


# SQLite in-memory database shared by every connection of a test
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

QR_TOKEN = "tbl-1-7f3a9c"


class RecordingNotifier(RealtimeNotifier):
    """Keeps published events in memory instead of sending them to Redis."""

    def __init__(self):
        self.events = []

    async def publish_event(self, event):
        self.events.append(event)
        return 1

    def types(self) -> list[str]:
        return [e.type for e in self.events]


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _reset_publish_breaker():
    reset_publish_breaker()
    yield
    reset_publish_breaker()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def client(db_session, notifier):
    """
    Test client with database and notifier overrides.

    The lifespan is not entered, so no table creation against the
    application engine and no Redis connection.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    limiter.enabled = False

    yield TestClient(app)

    limiter.enabled = True
    app.dependency_overrides.clear()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_outlet(db_session):
    """Outlet with 10% tax, 5% service and rounding to the nearest 100."""
    outlet = Outlet(
        id=1,
        company_id=1,
        name="Warung Orixa",
        tax_rate=10,
        service_rate=5,
        rounding=RoundingRule.NEAREST_100,
        order_mode=OrderMode.QR_AND_POS,
        enabled_payment_methods=[PaymentMethod.CASH, PaymentMethod.TRANSFER, PaymentMethod.QR],
        transfer_bank_name="BCA",
        transfer_account_name="PT Orixa",
        transfer_account_number="1234567890",
        qr_image_url="https://cdn.example.com/qris.png",
    )
    db_session.add(outlet)
    db_session.commit()
    db_session.refresh(outlet)
    return outlet


@pytest.fixture
def seed_table(db_session, seed_outlet):
    table = DiningTable(id=1, outlet_id=seed_outlet.id, name="T1", qr_token=QR_TOKEN)
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def seed_menu(db_session, seed_outlet):
    """
    Two menu items and one addon.

    - Nasi Goreng 25000, variant "Large" +5000, accepts the egg addon
    - Es Teh 8000, no addons
    - Extra Egg addon 4000
    """
    egg = Addon(id=1, outlet_id=seed_outlet.id, name="Extra Egg", price=4000)
    nasi = MenuItem(
        id=1,
        outlet_id=seed_outlet.id,
        name="Nasi Goreng",
        category="Mains",
        price=25000,
        variants=[{"name": "Large", "price_delta": 5000}],
        allowed_addon_ids=[1],
    )
    teh = MenuItem(
        id=2,
        outlet_id=seed_outlet.id,
        name="Es Teh",
        category="Drinks",
        price=8000,
        allowed_addon_ids=[],
    )
    db_session.add_all([egg, nasi, teh])
    db_session.commit()
    return {"nasi": nasi, "teh": teh, "egg": egg}


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def make_headers():
    """Factory for staff Authorization headers."""
    def _make(roles=("CASHIER",), outlet_ids=(1,), user_id=1):
        token = sign_jwt(
            {
                "sub": str(user_id),
                "company_id": 1,
                "outlet_ids": list(outlet_ids),
                "roles": list(roles),
            }
        )
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def cashier_headers(make_headers):
    return make_headers(roles=("CASHIER",))


@pytest.fixture
def kitchen_headers(make_headers):
    return make_headers(roles=("KITCHEN",), user_id=2)


@pytest.fixture
def admin_headers(make_headers):
    return make_headers(roles=("ADMIN",), user_id=3)


@pytest.fixture
def cashier():
    return {"user_id": 1, "role": "CASHIER"}


@pytest.fixture
def place_qr_order(db_session, seed_table, seed_menu):
    """Place a QR order of one Nasi Goreng and one Es Teh (total 38000)."""
    def _place(payment_method=PaymentMethod.TRANSFER, items=None):
        request = CreateQrOrderRequest(
            qr_token=QR_TOKEN,
            items=items if items is not None else [
                OrderItemInput(menu_item_id=1, qty=1),
                OrderItemInput(menu_item_id=2, qty=1),
            ],
            payment_method=payment_method,
        )
        return OrderService(db_session).create_qr_order(request)
    return _place


@pytest.fixture
def place_pos_order(db_session, seed_table, seed_menu, cashier):
    def _place(payment_method=PaymentMethod.CASH, mark_as_paid=False, discount=0, items=None):
        request = CreatePosOrderRequest(
            outlet_id=1,
            table_id=1,
            items=items or [OrderItemInput(menu_item_id=1, qty=1)],
            payment_method=payment_method,
            mark_as_paid=mark_as_paid,
            discount=discount,
        )
        return OrderService(db_session).create_pos_order(request, cashier)
    return _place

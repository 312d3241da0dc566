import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ.setdefault("JWT_SECRET", "test-secret")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront_payments.main import app as fastapi_app
from storefront_payments.database import Base
from storefront_payments.models import Order
from storefront_payments.rate_limit import limiter

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MOOLRE_API_USER", "MOOLRE_API_PUBKEY", "MOOLRE_API_KEY",
                 "MOOLRE_SMS_API_USER", "MOOLRE_SMS_API_PUBKEY", "MOOLRE_SMS_API_KEY",
                 "RESEND_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def client(monkeypatch):
    # Every module that opens its own session talks to the test database
    monkeypatch.setattr("storefront_payments.main.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("storefront_payments.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("storefront_payments.side_effects.SessionLocal", TestingSessionLocal)
    limiter.reset()
    with TestClient(fastapi_app) as c:
        yield c
    limiter.reset()


@pytest.fixture
def side_effects(mocker):
    """Patch the collaborators of the dispatcher and count their calls."""
    stats = mocker.patch("storefront_payments.side_effects.record_customer_order")
    notify = mocker.patch(
        "storefront_payments.side_effects.send_order_confirmation",
        new_callable=mocker.AsyncMock,
    )
    return stats, notify


@pytest.fixture
def make_order():
    def _make_order(order_number="SL-1001", total="150.00", payment_status="unpaid",
                    status="pending", email="ama@example.com", phone="0244123456", meta=None):
        db = TestingSessionLocal()
        order = Order(
            order_number=order_number,
            total=Decimal(total),
            payment_status=payment_status,
            status=status,
            email=email,
            phone=phone,
            shipping_address={"full_name": "Ama Mensah"},
            meta=meta or {},
        )
        db.add(order)
        db.commit()
        db.close()
        return order_number
    return _make_order


@pytest.fixture
def load_order():
    def _load_order(order_number):
        db = TestingSessionLocal()
        try:
            return db.query(Order).filter_by(order_number=order_number).first()
        finally:
            db.close()
    return _load_order

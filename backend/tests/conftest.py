"""
Shared fixtures: a fresh SQLite file database per test, factories for the
rows most tests need, and a TestClient wired to the test database.
"""

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from core.config import settings
from core.database import Base, build_engine, get_db
from app.main import app
from modules.customers.models.customer_models import Customer, CustomerSource
from modules.loyalty.schemas.loyalty_schemas import LoyaltySettingsUpdate, TierThresholds
from modules.loyalty.services.settings_resolver import LoyaltySettingsResolver
from modules.orders.enums.order_enums import OrderStatus, OrderType
from modules.orders.models.order_models import Order
from modules.orders.services.order_number_service import OrderNumberAllocator


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """Short backoff and a little more headroom for threaded tests"""
    monkeypatch.setattr(settings, "db_retry_initial_delay", 0.01)
    monkeypatch.setattr(settings, "db_retry_max_delay", 0.1)
    monkeypatch.setattr(settings, "db_max_retries", 10)


@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed so that threads get real, separate connections"""
    test_engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a fresh database session for each test."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """Create a test client with database dependency override."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_customer(db_session):
    def _make(business_id=1, email="guest@example.com", phone=None,
              first_name="Test", last_name="Guest"):
        customer = Customer(
            business_id=business_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            source=CustomerSource.MANUAL.value,
            total_visits=0,
            total_spent=Decimal("0.00"),
            average_spend=Decimal("0.00"),
        )
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer

    return _make


@pytest.fixture
def make_order(db_session):
    """Insert an order with a known total, bypassing cart pricing"""
    def _make(business_id=1, total=Decimal("25.00"), customer_name="Test Guest",
              customer_email="guest@example.com", customer_phone=None,
              customer_id=None, status=OrderStatus.PENDING):
        total = Decimal(str(total))
        order = Order(
            business_id=business_id,
            order_number=OrderNumberAllocator(db_session).allocate(business_id),
            order_type=OrderType.TAKEOUT.value,
            status=status.value,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            subtotal=total,
            tax_amount=Decimal("0.00"),
            total_amount=total,
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make


@pytest.fixture
def loyalty_program(db_session):
    """Enable loyalty for a business"""
    def _make(business_id=1, is_enabled=True, points_per_dollar=1,
              minimum_spend=Decimal("10.00"), tier_thresholds=None):
        thresholds = tier_thresholds or TierThresholds(silver=500, gold=1000, platinum=2500)
        return LoyaltySettingsResolver(db_session).upsert(
            business_id,
            LoyaltySettingsUpdate(
                is_enabled=is_enabled,
                points_per_dollar=points_per_dollar,
                minimum_spend=minimum_spend,
                tier_thresholds=thresholds,
            ),
        )

    return _make

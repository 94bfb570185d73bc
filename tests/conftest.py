"""Pytest configuration and fixtures."""

import os
import threading
from types import SimpleNamespace

# Keep the module-level app off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import create_app
from utils.database import Base, build_engine
from utils.auth import get_password_hash, create_access_token
# Import all models to ensure they're registered with Base.metadata
from models import *
from models.restaurant import Restaurant
from models.table_management import Table
from models.menu_management import MenuCategory, MenuItem
from models.user import User, UserRole
from services.change_feed import ChangeFeed
from services.notifications import NotificationService
from services.session_registry import SessionRegistry
from services.order_ledger import OrderSessionLedger
from services.receipts import ReceiptService
from services.dual_payment import DualPaymentCoordinator
from services.payment_gateways import default_gateways

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


class FakeClock:
    """Controllable naive-UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 10, 19, 18, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def change_feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def sent_notifications() -> list:
    return []


@pytest.fixture
def notifier(session_factory, change_feed, sent_notifications) -> NotificationService:
    return NotificationService(session_factory, change_feed, sender=sent_notifications.append)


@pytest.fixture
def registry(session_factory, change_feed, clock) -> SessionRegistry:
    return SessionRegistry(session_factory, change_feed, clock=clock)


@pytest.fixture
def ledger(session_factory, change_feed, notifier, clock) -> OrderSessionLedger:
    return OrderSessionLedger(session_factory, change_feed, notifier, tax_rate=0.10, service_charge_rate=0.05, clock=clock)


@pytest.fixture
def receipts(session_factory) -> ReceiptService:
    return ReceiptService(session_factory)


@pytest.fixture
def payments(session_factory, registry, receipts, change_feed, notifier, clock) -> DualPaymentCoordinator:
    return DualPaymentCoordinator(
        session_factory,
        registry,
        receipts,
        gateways=default_gateways(card_decline_rate=0.0),
        change_feed=change_feed,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def test_restaurant(db_session: Session) -> Restaurant:
    """Create a test restaurant."""
    restaurant = Restaurant(name="Saffron House", phone="+15550100", is_active=True)
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def other_restaurant(db_session: Session) -> Restaurant:
    restaurant = Restaurant(name="Blue Door", is_active=True)
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


def _make_table(db_session: Session, restaurant: Restaurant, number: str) -> Table:
    table = Table(restaurant_id=restaurant.id, table_number=number, capacity=4)
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def table_5(db_session: Session, test_restaurant: Restaurant) -> Table:
    return _make_table(db_session, test_restaurant, "5")


@pytest.fixture
def table_9(db_session: Session, test_restaurant: Restaurant) -> Table:
    return _make_table(db_session, test_restaurant, "9")


@pytest.fixture
def menu(db_session: Session, test_restaurant: Restaurant) -> dict:
    """Burger $10, pasta $20 (extra cheese +$1.50), and an unavailable special."""
    category = MenuCategory(restaurant_id=test_restaurant.id, name="Mains")
    db_session.add(category)
    db_session.flush()

    items = {
        "burger": MenuItem(restaurant_id=test_restaurant.id, category_id=category.id, name="Burger", price=10.0),
        "pasta": MenuItem(
            restaurant_id=test_restaurant.id,
            category_id=category.id,
            name="Pasta",
            price=20.0,
            customization_options=[{"name": "Extra cheese", "price": 1.5}, {"name": "No garlic", "price": 0}],
        ),
        "special": MenuItem(
            restaurant_id=test_restaurant.id, category_id=category.id, name="Chef Special", price=30.0, is_available=False
        ),
    }
    db_session.add_all(items.values())
    db_session.commit()
    for item in items.values():
        db_session.refresh(item)
    return items


@pytest.fixture
def open_session(registry: SessionRegistry, table_5: Table):
    """An active session at table 5."""
    result = registry.create_session(table_5.id, "Asha", customer_phone="+15550123456")
    assert result.success
    return result


@pytest.fixture
def file_dining(tmp_path):
    """Services over an on-disk SQLite database with one open session, for tests racing real connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'dining.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = factory()
    restaurant = Restaurant(name="Race Cafe")
    db.add(restaurant)
    db.flush()
    table = Table(restaurant_id=restaurant.id, table_number="1")
    burger = MenuItem(restaurant_id=restaurant.id, name="Burger", price=10.0)
    db.add_all([table, burger])
    db.commit()
    table_id, burger_id = table.id, burger.id
    db.close()

    registry = SessionRegistry(factory)
    ledger = OrderSessionLedger(factory, tax_rate=0.10, service_charge_rate=0.05)
    payments = DualPaymentCoordinator(
        factory, registry, ReceiptService(factory), gateways=default_gateways(card_decline_rate=0.0)
    )
    session = registry.create_session(table_id, "Asha")
    assert session.success

    yield SimpleNamespace(
        factory=factory,
        registry=registry,
        ledger=ledger,
        payments=payments,
        session_id=session.session_id,
        burger_id=burger_id,
    )
    engine.dispose()


@pytest.fixture
def run_concurrently():
    """Release every call at once, each on its own thread; results come back in call order."""
    def run(*calls):
        barrier = threading.Barrier(len(calls))
        results = [None] * len(calls)

        def worker(index, call):
            barrier.wait()
            results[index] = call()

        threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results

    return run


@pytest.fixture(scope="function")
def app(session_factory):
    return create_app(session_factory)


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def _staff_user(db_session: Session, username: str, role: UserRole, restaurant_id=None) -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        hashed_password=get_password_hash("testpass123"),
        role=role,
        restaurant_id=restaurant_id,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def auth_headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": user.username, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_user(db_session: Session, test_restaurant: Restaurant) -> User:
    return _staff_user(db_session, "manager", UserRole.MANAGER, test_restaurant.id)


@pytest.fixture
def waiter_user(db_session: Session, test_restaurant: Restaurant) -> User:
    return _staff_user(db_session, "waiter", UserRole.WAITER, test_restaurant.id)


@pytest.fixture
def kitchen_user(db_session: Session, test_restaurant: Restaurant) -> User:
    return _staff_user(db_session, "kitchen", UserRole.KITCHEN, test_restaurant.id)


@pytest.fixture
def manager_headers(manager_user: User) -> dict:
    return auth_headers_for(manager_user)


@pytest.fixture
def waiter_headers(waiter_user: User) -> dict:
    return auth_headers_for(waiter_user)


@pytest.fixture
def kitchen_headers(kitchen_user: User) -> dict:
    return auth_headers_for(kitchen_user)

"""Pytest fixtures for duplicate detection testing.

Provides reusable test fixtures for:
- Database session on an in-memory SQLite database
- Detection settings and order snapshot factories

Usage:
    def test_flag(db_session, make_order):
        order = make_order("1001", customer_email="a@example.com")
"""

import sys
import os
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCK_BACKEND", "memory")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from typing import Callable, Generator

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

# Import directly from modules (avoid relative import issues)
from database import build_engine, create_session_factory, create_tables
from models.base import Base
from models.shop_order import ShopOrder  # noqa: F401
from models.detection_settings import DetectionSettingsRecord  # noqa: F401
from models.duplicate_audit_log import DuplicateAuditLog  # noqa: F401
from models.webhook_delivery import WebhookDelivery  # noqa: F401
from domain.duplicate_detection.models import Address, LineItem, OrderSnapshot


SHOP = "demo-store.myshopify.com"
BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

test_engine = build_engine("sqlite://")

TestingSessionLocal = create_session_factory(test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    create_tables(test_engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def shop_domain() -> str:
    return SHOP


@pytest.fixture
def make_order() -> Callable[..., OrderSnapshot]:
    """Factory for order snapshots.

    ``minutes_ago`` is relative to a fixed reference time, so orders created
    by one test line up deterministically.
    """
    def _make(
        order_id: str,
        minutes_ago: int = 0,
        shop_domain: str = SHOP,
        skus=(),
        address: Address = None,
        **fields,
    ) -> OrderSnapshot:
        return OrderSnapshot(
            order_id=order_id,
            shop_domain=shop_domain,
            created_at=BASE_TIME - timedelta(minutes=minutes_ago),
            shipping_address=address,
            line_items=tuple(LineItem(sku=sku) for sku in skus),
            **fields,
        )

    return _make


@pytest.fixture
def home_address() -> Address:
    return Address(
        address1="12 Main St.",
        address2="Apt 4",
        city="Springfield",
        province="IL",
        zip="62701",
        country="US",
    )

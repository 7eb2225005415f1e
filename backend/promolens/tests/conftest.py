"""
Root test configuration and fixtures.

Provides an in-memory SQLite store with per-test transaction rollback,
plus factories for owners, codes, customers, orders and snapshots.
"""

import os
import tempfile
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Generator, Optional

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

from promolens.config.anomaly_thresholds import AnomalyThresholdsLoader
from promolens.db_base import Base
from promolens.models import (
    CodeRedemption,
    Customer,
    MetricsSnapshot,
    Order,
    Owner,
    OwnerType,
    PromoCode,
)


@pytest.fixture(scope="session")
def db_engine():
    """SQLite in-memory engine shared by the whole test session."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Create database session with transaction rollback for test isolation.

    session.commit() inside code under test does not commit the outer
    transaction, so every test starts from empty tables.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=connection)
    session = SessionLocal()

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


@pytest.fixture(autouse=True)
def _reset_threshold_loader():
    """Each test sees a freshly loaded thresholds singleton."""
    AnomalyThresholdsLoader.reset_instance()
    yield
    AnomalyThresholdsLoader.reset_instance()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")


# =============================================================================
# Factories
# =============================================================================


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_owner(db_session):
    def _make(name: str = "Jordan Lee", owner_type: OwnerType = OwnerType.INFLUENCER, **kwargs) -> Owner:
        owner = Owner(type=owner_type.value, name=name, **kwargs)
        db_session.add(owner)
        db_session.flush()
        return owner
    return _make


@pytest.fixture
def make_code(db_session, make_owner):
    def _make(
        code: str = "SAVE10",
        owner: Optional[Owner] = None,
        is_active: bool = True,
        **kwargs,
    ) -> PromoCode:
        owner = owner or make_owner()
        promo = PromoCode(
            code=code,
            owner_id=owner.id,
            issued_at=utc(2024, 1, 1),
            channel=kwargs.pop("channel", "Instagram"),
            is_active=is_active,
            **kwargs,
        )
        db_session.add(promo)
        db_session.flush()
        return promo
    return _make


@pytest.fixture
def make_customer(db_session):
    counter = {"n": 0}

    def _make(first_order_at: datetime, email: Optional[str] = None) -> Customer:
        counter["n"] += 1
        customer = Customer(
            email=email or f"customer{counter['n']}@shopper.io",
            first_order_at=first_order_at,
            lifetime_value=Decimal("0"),
        )
        db_session.add(customer)
        db_session.flush()
        return customer
    return _make


@pytest.fixture
def make_redemption(db_session, make_customer):
    """
    Create an order and its redemption of `code`.

    The redemption is timestamped with the order's created_at.
    """
    counter = {"n": 0}

    def _make(
        code: PromoCode,
        created_at: datetime,
        total: str = "100.00",
        discount: str = "10.00",
        customer: Optional[Customer] = None,
    ) -> CodeRedemption:
        counter["n"] += 1
        customer = customer or make_customer(first_order_at=created_at)
        order = Order(
            external_id=f"test_{counter['n']}",
            customer_id=customer.id,
            total=Decimal(total),
            discount_value=Decimal(discount),
            coupon=code.code,
            channel="Direct",
            owner_id=code.owner_id,
            created_at=created_at,
        )
        db_session.add(order)
        db_session.flush()
        redemption = CodeRedemption(code_id=code.id, order_id=order.id, created_at=created_at)
        db_session.add(redemption)
        db_session.flush()
        return redemption
    return _make


@pytest.fixture
def make_snapshot(db_session):
    def _make(code: PromoCode, day: date, **values) -> MetricsSnapshot:
        snapshot = MetricsSnapshot(code_id=code.id, date=day, **values)
        db_session.add(snapshot)
        db_session.flush()
        return snapshot
    return _make


# =============================================================================
# Config fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("anomaly_thresholds.yml", {"leakage": {...}})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make

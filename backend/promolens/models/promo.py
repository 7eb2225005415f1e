"""
Promo attribution models.

Provides SQLAlchemy models for:
- Owner: influencer, sales rep, campaign or partner a code is attributed to
- PromoCode: a redeemable code string issued to an owner
- Customer: storefront customer keyed by email
- Order: normalized order row produced by ingestion
- CodeRedemption: join row, one per order that used a code

These rows are written by ingestion and read by the metrics and
anomaly services. The metrics layer never mutates them.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Numeric, Index,
)
from sqlalchemy.orm import relationship

from promolens.db_base import Base
from promolens.models.base import TimestampMixin, generate_uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OwnerType(str, Enum):
    """Who a promo code is attributed to."""
    INFLUENCER = "INFLUENCER"
    REP = "REP"
    CAMPAIGN = "CAMPAIGN"
    PARTNER = "PARTNER"


class Owner(Base, TimestampMixin):
    """Attribution target for one or more promo codes."""

    __tablename__ = "owners"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    type = Column(String(20), nullable=False, comment="OwnerType value")
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    channel = Column(String(100), nullable=True)

    codes = relationship("PromoCode", back_populates="owner")


class PromoCode(Base, TimestampMixin):
    """
    A promo code issued to an owner.

    The code string is unique across the store; ingestion resolves
    coupons on incoming orders against it.
    """

    __tablename__ = "codes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(100), nullable=False, unique=True, index=True)
    owner_id = Column(String(36), ForeignKey("owners.id"), nullable=False, index=True)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    channel = Column(String(100), nullable=False, default="Direct")
    campaign = Column(String(255), nullable=True)
    budget = Column(Numeric(12, 2), nullable=True, comment="Optional allocated budget")
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    owner = relationship("Owner", back_populates="codes")
    redemptions = relationship("CodeRedemption", back_populates="code")


class Customer(Base, TimestampMixin):
    """
    Storefront customer.

    first_order_at anchors new-customer classification.
    lifetime_value is accumulated by ingestion on every new order.
    """

    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    first_order_at = Column(DateTime(timezone=True), nullable=False)
    lifetime_value = Column(Numeric(12, 2), nullable=False, default=0)

    orders = relationship("Order", back_populates="customer")


class Order(Base):
    """
    Normalized order row.

    total is the amount paid after discounts; discount_value is the sum
    of discount code amounts. coupon holds the first code string used.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    external_id = Column(
        String(255),
        nullable=True,
        unique=True,
        index=True,
        comment="Source-prefixed id used for idempotent ingestion (shopify_123, ga4_...)"
    )
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    coupon = Column(String(100), nullable=True)
    channel = Column(String(100), nullable=False, default="Direct")
    owner_id = Column(String(36), ForeignKey("owners.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    customer = relationship("Customer", back_populates="orders")
    redemptions = relationship("CodeRedemption", back_populates="order")


class CodeRedemption(Base):
    """One row per order that used a given code."""

    __tablename__ = "code_redemptions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code_id = Column(String(36), ForeignKey("codes.id"), nullable=False)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    code = relationship("PromoCode", back_populates="redemptions")
    order = relationship("Order", back_populates="redemptions")

    __table_args__ = (
        Index("ix_code_redemptions_code_created", "code_id", "created_at"),
    )

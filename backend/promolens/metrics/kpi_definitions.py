"""
KPI definitions for promo code performance.

Pure, deterministic functions with no I/O. Every ratio guards its
denominator: a zero denominator yields 0, never inf or NaN.

Used by:
- PromoMetricsService (per-code, per-owner and dashboard aggregates)
- SnapshotService (daily materialized metrics)
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Union

Number = Union[int, float, Decimal]

NEW_CUSTOMER_WINDOW = timedelta(days=1)


def to_float(value: Optional[Number]) -> float:
    """Coerce a DB numeric (Decimal/None) to float. Missing values count as 0."""
    if value is None:
        return 0.0
    return float(value)


def to_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calculate_roi(revenue: Number, discount_value: Number) -> float:
    """
    Calculate promo ROI.

    Definition: revenue from promo orders / total discount value
    Rule: IF discount_value = 0 THEN 0

    Args:
        revenue: Total revenue of orders that used the code.
        discount_value: Total discount given on those orders.

    Returns:
        ROI ratio as float.
    """
    discount = to_float(discount_value)
    if discount == 0:
        return 0.0
    return to_float(revenue) / discount


def calculate_pvi(
    new_customer_revenue: Number,
    discount_value: Number,
    budget_allocation: Number = 0,
) -> float:
    """
    Calculate the Promotional Value Index.

    Definition: new customer revenue / (discount value + budget allocation)
    Rule: IF promo spend = 0 THEN 0

    Args:
        new_customer_revenue: Revenue from orders classified as new-customer orders.
        discount_value: Total discount given.
        budget_allocation: Extra budget attributed to the promotion.

    Returns:
        PVI as float.
    """
    promo_spend = to_float(discount_value) + to_float(budget_allocation)
    if promo_spend == 0:
        return 0.0
    return to_float(new_customer_revenue) / promo_spend


def calculate_leakage(total_uses: int, new_customer_uses: int) -> float:
    """
    Calculate redemption leakage.

    Definition: 1 - new_customer_uses / total_uses, clamped to >= 0
    Rule: IF total_uses = 0 THEN 0

    The clamp keeps upstream inconsistencies (more new-customer uses than
    total uses) from producing negative leakage.

    Returns:
        Leakage as a fraction in [0, 1].
    """
    if total_uses == 0:
        return 0.0
    return max(0.0, 1 - (new_customer_uses / total_uses))


def is_new_customer(order_date: datetime, first_order_date: datetime) -> bool:
    """
    Classify an order as a new-customer order.

    True iff the order was placed between the customer's first recorded
    order and 24 hours after it (both ends inclusive). This is a proxy:
    several orders inside the same 24h window all count as new.
    """
    elapsed = to_utc(order_date) - to_utc(first_order_date)
    return timedelta(0) <= elapsed <= NEW_CUSTOMER_WINDOW

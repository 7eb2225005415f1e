"""
Database models for promo attribution, metrics snapshots and anomaly flags.
"""

from promolens.models.base import TimestampMixin, generate_uuid
from promolens.models.promo import (
    Owner,
    OwnerType,
    PromoCode,
    Customer,
    Order,
    CodeRedemption,
)
from promolens.models.metrics_snapshot import MetricsSnapshot
from promolens.models.anomaly_flag import AnomalyFlag, AnomalyType, AnomalySeverity

__all__ = [
    "TimestampMixin",
    "generate_uuid",
    # Attribution
    "Owner",
    "OwnerType",
    "PromoCode",
    "Customer",
    "Order",
    "CodeRedemption",
    # Snapshots
    "MetricsSnapshot",
    # Anomalies
    "AnomalyFlag",
    "AnomalyType",
    "AnomalySeverity",
]

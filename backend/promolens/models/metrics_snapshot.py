"""
Daily metrics snapshot model.

One row per code per calendar day, written by the snapshot job and
read by the anomaly detectors. Rows are upserted on (code_id, date):
recomputing a day overwrites it.
"""

from sqlalchemy import (
    Column, String, Integer, Float, Date, ForeignKey, Numeric, UniqueConstraint,
)

from promolens.db_base import Base
from promolens.models.base import TimestampMixin, generate_uuid


class MetricsSnapshot(Base, TimestampMixin):
    """Materialized per-day aggregate metrics for a single code."""

    __tablename__ = "metrics_snapshots"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code_id = Column(String(36), ForeignKey("codes.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)

    total_uses = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Numeric(12, 2), nullable=False, default=0)
    total_discount = Column(Numeric(12, 2), nullable=False, default=0)
    new_customer_uses = Column(Integer, nullable=False, default=0)
    new_customer_revenue = Column(Numeric(12, 2), nullable=False, default=0)

    # Derived ratios
    roi = Column(Float, nullable=False, default=0.0)
    pvi = Column(Float, nullable=False, default=0.0)
    leakage = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        UniqueConstraint("code_id", "date", name="uq_metrics_snapshots_code_date"),
    )

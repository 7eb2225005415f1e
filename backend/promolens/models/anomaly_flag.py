"""
Anomaly flag model.

Append-only record of detector output. Resolution is a separate,
externally-driven mutation (is_resolved / resolved_at).
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Column, String, Boolean, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from promolens.db_base import Base
from promolens.models.base import JSONType, generate_uuid


class AnomalyType(str, Enum):
    """Kinds of anomalies the detectors emit."""
    SPIKE_REDEMPTION = "SPIKE_REDEMPTION"
    LEAKAGE_DETECTED = "LEAKAGE_DETECTED"
    LOW_PVI = "LOW_PVI"
    UNUSUAL_PATTERN = "UNUSUAL_PATTERN"


class AnomalySeverity(str, Enum):
    """Anomaly severity levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AnomalyFlag(Base):
    """Persisted anomaly for a code."""

    __tablename__ = "anomaly_flags"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code_id = Column(String(36), ForeignKey("codes.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    severity = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    flag_metadata = Column("metadata", JSONType, nullable=False, default=dict)

    is_resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    code = relationship("PromoCode")

    __table_args__ = (
        Index("ix_anomaly_flags_resolved_created", "is_resolved", "created_at"),
    )

"""
Response models for the promo metrics API.

PromoMetricsResponse.leakage is a fraction (0-1);
DashboardKPIsResponse.leakage is a percentage (0-100).
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PromoMetricsResponse(BaseModel):
    """Aggregate metrics for one code."""
    code_id: str
    total_uses: int
    total_revenue: float
    total_discount: float
    new_customer_uses: int
    new_customer_revenue: float
    roi: float
    pvi: float
    leakage: float = Field(description="Fraction of uses not from new customers (0-1)")


class OwnerMetricsResponse(BaseModel):
    """Aggregate metrics for one owner."""
    owner_id: str
    owner_name: str
    owner_type: str
    total_codes: int
    total_uses: int
    total_revenue: float
    new_customer_uses: int
    avg_pvi: float = Field(description="Unweighted mean of per-code PVI")
    avg_roi: float = Field(description="Unweighted mean of per-code ROI")


class DashboardKPIsResponse(BaseModel):
    """Portfolio-wide KPIs."""
    total_promo_spend: float
    incremental_revenue: float
    avg_pvi: float
    leakage: float = Field(description="Percentage of redemptions not from new customers (0-100)")
    total_redemptions: int
    new_customer_redemptions: int


class CodeSummary(BaseModel):
    id: str
    code: str
    owner_id: str
    owner_name: Optional[str] = None
    channel: str
    campaign: Optional[str] = None
    issued_at: Optional[datetime] = None
    is_active: bool


class CodeWithMetricsResponse(BaseModel):
    code: CodeSummary
    metrics: PromoMetricsResponse


class OwnerSummary(BaseModel):
    id: str
    type: str
    name: str
    email: Optional[str] = None
    channel: Optional[str] = None


class OwnerWithMetricsResponse(BaseModel):
    owner: OwnerSummary
    metrics: OwnerMetricsResponse


class CodeMetricsListResponse(BaseModel):
    codes: List[CodeWithMetricsResponse]
    count: int


class OwnerMetricsListResponse(BaseModel):
    owners: List[OwnerWithMetricsResponse]
    count: int


class SnapshotRunRequest(BaseModel):
    snapshot_date: Optional[date] = Field(
        None, description="Day to materialize (default: yesterday, UTC)"
    )


class SnapshotRunResponse(BaseModel):
    date: date
    codes_processed: int
    snapshots_written: int
    codes_skipped: int

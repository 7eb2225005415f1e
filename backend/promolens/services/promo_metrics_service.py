"""
Promo metrics aggregation service.

Provides:
- Per-code metrics (uses, revenue, discount, new-customer split, ROI, PVI, leakage)
- Per-owner metrics (portfolio totals, unweighted mean of per-code ROI/PVI)
- Portfolio-wide dashboard KPIs

Error policies:
- Fail-soft: code metrics and dashboard KPIs. fetch_* methods return an
  explicit FetchResult; calculate_code_metrics / get_dashboard_kpis are
  the decision point that logs a failed fetch and degrades it to the
  zero-valued record.
- Fail-loud: owner metrics. A missing owner raises OwnerNotFoundError,
  and store errors propagate unchanged.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from sqlalchemy.orm import Session

from promolens.metrics.kpi_definitions import (
    calculate_roi,
    calculate_pvi,
    calculate_leakage,
    is_new_customer,
    to_float,
)
from promolens.models.promo import CodeRedemption, Owner, PromoCode
from promolens.repositories.promo_repo import PromoRepository, PromoStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PromoMetricsError(Exception):
    """Base exception for promo metrics errors."""
    pass


class OwnerNotFoundError(PromoMetricsError):
    """Owner does not exist."""

    def __init__(self, owner_id: str):
        super().__init__(f"Owner {owner_id} not found")
        self.owner_id = owner_id


@dataclass
class FetchResult(Generic[T]):
    """Either a computed value or the store error that prevented it."""
    value: Optional[T] = None
    error: Optional[PromoStoreError] = None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PromoStoreError) -> "FetchResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default


@dataclass
class PromoMetrics:
    """Aggregate metrics for one code."""
    code_id: str
    total_uses: int
    total_revenue: float
    total_discount: float
    new_customer_uses: int
    new_customer_revenue: float
    roi: float
    pvi: float
    leakage: float

    @classmethod
    def zero(cls, code_id: str) -> "PromoMetrics":
        return cls(
            code_id=code_id,
            total_uses=0,
            total_revenue=0.0,
            total_discount=0.0,
            new_customer_uses=0,
            new_customer_revenue=0.0,
            roi=0.0,
            pvi=0.0,
            leakage=0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OwnerMetrics:
    """Aggregate metrics for one owner across all of their codes."""
    owner_id: str
    owner_name: str
    owner_type: str
    total_codes: int
    total_uses: int
    total_revenue: float
    new_customer_uses: int
    avg_pvi: float
    avg_roi: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DashboardKPIs:
    """
    Portfolio-wide KPIs.

    leakage is a percentage (0-100), unlike PromoMetrics.leakage which
    is a fraction.
    """
    total_promo_spend: float
    incremental_revenue: float
    avg_pvi: float
    leakage: float
    total_redemptions: int
    new_customer_redemptions: int

    @classmethod
    def zero(cls) -> "DashboardKPIs":
        return cls(
            total_promo_spend=0.0,
            incremental_revenue=0.0,
            avg_pvi=0.0,
            leakage=0.0,
            total_redemptions=0,
            new_customer_redemptions=0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_new_customer_redemption(redemption: CodeRedemption) -> bool:
    """True if the redemption's order is a new-customer order."""
    order = redemption.order
    if order is None or order.customer is None:
        return False
    return is_new_customer(order.created_at, order.customer.first_order_at)


def _order_total(redemption: CodeRedemption) -> float:
    return to_float(redemption.order.total) if redemption.order is not None else 0.0


def _order_discount(redemption: CodeRedemption) -> float:
    return to_float(redemption.order.discount_value) if redemption.order is not None else 0.0


def summarize_redemptions(code_id: str, redemptions: Iterable[CodeRedemption]) -> PromoMetrics:
    """
    Fold joined redemption rows into one PromoMetrics record.

    Budget allocation is not applied at this layer (PVI uses discount only).
    """
    redemptions = list(redemptions)
    new_customer = [r for r in redemptions if is_new_customer_redemption(r)]

    total_uses = len(redemptions)
    total_revenue = sum(_order_total(r) for r in redemptions)
    total_discount = sum(_order_discount(r) for r in redemptions)
    new_customer_uses = len(new_customer)
    new_customer_revenue = sum(_order_total(r) for r in new_customer)

    return PromoMetrics(
        code_id=code_id,
        total_uses=total_uses,
        total_revenue=total_revenue,
        total_discount=total_discount,
        new_customer_uses=new_customer_uses,
        new_customer_revenue=new_customer_revenue,
        roi=calculate_roi(total_revenue, total_discount),
        pvi=calculate_pvi(new_customer_revenue, total_discount),
        leakage=calculate_leakage(total_uses, new_customer_uses),
    )


def summarize_dashboard(redemptions: Iterable[CodeRedemption]) -> DashboardKPIs:
    """Single pass over all redemptions in range, no per-code grouping."""
    redemptions = list(redemptions)
    new_customer = [r for r in redemptions if is_new_customer_redemption(r)]

    total_promo_spend = sum(_order_discount(r) for r in redemptions)
    incremental_revenue = sum(_order_total(r) for r in new_customer)

    return DashboardKPIs(
        total_promo_spend=total_promo_spend,
        incremental_revenue=incremental_revenue,
        avg_pvi=calculate_pvi(incremental_revenue, total_promo_spend),
        leakage=calculate_leakage(len(redemptions), len(new_customer)) * 100,
        total_redemptions=len(redemptions),
        new_customer_redemptions=len(new_customer),
    )


class PromoMetricsService:
    """
    Aggregates redemption, order and customer rows into promo KPIs.
    """

    def __init__(self, db_session: Session, repository: Optional[PromoRepository] = None):
        """
        Initialize metrics service.

        Args:
            db_session: Database session
            repository: Optional repository override (defaults to PromoRepository(db_session))
        """
        self.db = db_session
        self.repository = repository or PromoRepository(db_session)

    # -------------------------------------------------------------------------
    # Code metrics
    # -------------------------------------------------------------------------

    def fetch_code_metrics(
        self,
        code_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> FetchResult[PromoMetrics]:
        """Compute metrics for a code, reporting a store failure as an error result."""
        try:
            redemptions = self.repository.get_redemptions(code_id, start_date, end_date)
        except PromoStoreError as e:
            return FetchResult.failure(e)
        return FetchResult.success(summarize_redemptions(code_id, redemptions))

    def calculate_code_metrics(
        self,
        code_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> PromoMetrics:
        """
        Compute metrics for a code, degrading store failures to zeros.

        Date bounds are inclusive on redemption created_at.
        """
        result = self.fetch_code_metrics(code_id, start_date, end_date)
        if not result.ok:
            logger.error(
                "Code metrics fetch failed, returning zero metrics",
                extra={
                    "code_id": code_id,
                    "start_date": start_date.isoformat() if start_date else None,
                    "end_date": end_date.isoformat() if end_date else None,
                    "error": result.error.message,
                },
            )
        return result.unwrap_or(PromoMetrics.zero(code_id))

    # -------------------------------------------------------------------------
    # Owner metrics
    # -------------------------------------------------------------------------

    def calculate_owner_metrics(
        self,
        owner_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> OwnerMetrics:
        """
        Compute metrics for an owner across all of their codes.

        avg_pvi / avg_roi are the unweighted mean of per-code values: a
        low-volume code weighs as much as a high-volume one.

        Raises:
            OwnerNotFoundError: If the owner does not exist
            PromoStoreError: If owner, code or redemption reads fail
        """
        owner = self.repository.get_owner(owner_id)
        if owner is None:
            raise OwnerNotFoundError(owner_id)

        codes = self.repository.get_codes_by_owner(owner_id)

        redemptions: List[CodeRedemption] = []
        for code in codes:
            redemptions.extend(self.repository.get_redemptions(code.id, start_date, end_date))

        new_customer_uses = sum(1 for r in redemptions if is_new_customer_redemption(r))

        code_metrics = [
            self.calculate_code_metrics(code.id, start_date, end_date) for code in codes
        ]
        avg_pvi = (
            sum(m.pvi for m in code_metrics) / len(code_metrics) if code_metrics else 0.0
        )
        avg_roi = (
            sum(m.roi for m in code_metrics) / len(code_metrics) if code_metrics else 0.0
        )

        return OwnerMetrics(
            owner_id=owner.id,
            owner_name=owner.name,
            owner_type=owner.type,
            total_codes=len(codes),
            total_uses=len(redemptions),
            total_revenue=sum(_order_total(r) for r in redemptions),
            new_customer_uses=new_customer_uses,
            avg_pvi=avg_pvi,
            avg_roi=avg_roi,
        )

    # -------------------------------------------------------------------------
    # Dashboard KPIs
    # -------------------------------------------------------------------------

    def fetch_dashboard_kpis(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> FetchResult[DashboardKPIs]:
        try:
            redemptions = self.repository.get_redemptions(None, start_date, end_date)
        except PromoStoreError as e:
            return FetchResult.failure(e)
        return FetchResult.success(summarize_dashboard(redemptions))

    def get_dashboard_kpis(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> DashboardKPIs:
        """Portfolio KPIs; a failed fetch yields the all-zero KPI record."""
        result = self.fetch_dashboard_kpis(start_date, end_date)
        if not result.ok:
            logger.error(
                "Dashboard KPI fetch failed, returning zero KPIs",
                extra={"error": result.error.message},
            )
        return result.unwrap_or(DashboardKPIs.zero())

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def list_code_metrics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Tuple[PromoCode, PromoMetrics]]:
        """Every code paired with its (fail-soft) metrics."""
        return [
            (code, self.calculate_code_metrics(code.id, start_date, end_date))
            for code in self.repository.list_codes()
        ]

    def list_owner_metrics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Tuple[Owner, OwnerMetrics]]:
        """Every owner paired with their metrics."""
        return [
            (owner, self.calculate_owner_metrics(owner.id, start_date, end_date))
            for owner in self.repository.list_owners()
        ]

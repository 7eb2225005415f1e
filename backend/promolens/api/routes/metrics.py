"""
Promo metrics API routes.

Provides endpoints for:
- Portfolio dashboard KPIs
- Per-code and per-owner metrics
- Code and owner listings with metrics
- Daily snapshot materialization

Code metrics and dashboard KPIs are fail-soft: a store failure yields
zero-valued metrics, not an error. Owner metrics are fail-loud.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status

from promolens.api.dependencies import get_metrics_service, get_snapshot_service
from promolens.api.schemas.metrics import (
    CodeMetricsListResponse,
    CodeSummary,
    CodeWithMetricsResponse,
    DashboardKPIsResponse,
    OwnerMetricsListResponse,
    OwnerMetricsResponse,
    OwnerSummary,
    OwnerWithMetricsResponse,
    PromoMetricsResponse,
    SnapshotRunRequest,
    SnapshotRunResponse,
)
from promolens.metrics.kpi_definitions import to_utc
from promolens.repositories.promo_repo import PromoStoreError
from promolens.services.promo_metrics_service import (
    OwnerNotFoundError,
    PromoMetricsService,
)
from promolens.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


def validate_date_range(
    start_date: Optional[datetime], end_date: Optional[datetime]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Normalize both bounds to UTC (naive values are taken as UTC).

    Raises 400 if the range is inverted.
    """
    start_date = to_utc(start_date) if start_date else None
    end_date = to_utc(end_date) if end_date else None
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date",
        )
    return start_date, end_date


def store_unavailable(e: PromoStoreError) -> HTTPException:
    logger.error("Metrics store unavailable", extra={"operation": e.operation, "error": e.message})
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Metrics store unavailable",
    )


@router.get("/dashboard", response_model=DashboardKPIsResponse)
async def get_dashboard_kpis(
    start_date: Optional[datetime] = Query(None, description="Inclusive lower bound (ISO-8601)"),
    end_date: Optional[datetime] = Query(None, description="Inclusive upper bound (ISO-8601)"),
    service: PromoMetricsService = Depends(get_metrics_service),
):
    """Portfolio-wide KPIs. Leakage is reported as a percentage."""
    start_date, end_date = validate_date_range(start_date, end_date)
    kpis = service.get_dashboard_kpis(start_date, end_date)
    return DashboardKPIsResponse(**kpis.to_dict())


@router.get("/codes", response_model=CodeMetricsListResponse)
async def list_code_metrics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: PromoMetricsService = Depends(get_metrics_service),
):
    """Every code with its metrics for the range."""
    start_date, end_date = validate_date_range(start_date, end_date)
    try:
        pairs = service.list_code_metrics(start_date, end_date)
    except PromoStoreError as e:
        raise store_unavailable(e)

    codes = [
        CodeWithMetricsResponse(
            code=CodeSummary(
                id=code.id,
                code=code.code,
                owner_id=code.owner_id,
                owner_name=code.owner.name if code.owner else None,
                channel=code.channel,
                campaign=code.campaign,
                issued_at=code.issued_at,
                is_active=code.is_active,
            ),
            metrics=PromoMetricsResponse(**metrics.to_dict()),
        )
        for code, metrics in pairs
    ]
    return CodeMetricsListResponse(codes=codes, count=len(codes))


@router.get("/codes/{code_id}", response_model=PromoMetricsResponse)
async def get_code_metrics(
    code_id: str,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: PromoMetricsService = Depends(get_metrics_service),
):
    """Metrics for one code. Unknown codes and store failures yield zeros."""
    start_date, end_date = validate_date_range(start_date, end_date)
    metrics = service.calculate_code_metrics(code_id, start_date, end_date)
    return PromoMetricsResponse(**metrics.to_dict())


@router.get("/owners", response_model=OwnerMetricsListResponse)
async def list_owner_metrics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: PromoMetricsService = Depends(get_metrics_service),
):
    start_date, end_date = validate_date_range(start_date, end_date)
    try:
        pairs = service.list_owner_metrics(start_date, end_date)
    except PromoStoreError as e:
        raise store_unavailable(e)

    owners = [
        OwnerWithMetricsResponse(
            owner=OwnerSummary(
                id=owner.id,
                type=owner.type,
                name=owner.name,
                email=owner.email,
                channel=owner.channel,
            ),
            metrics=OwnerMetricsResponse(**metrics.to_dict()),
        )
        for owner, metrics in pairs
    ]
    return OwnerMetricsListResponse(owners=owners, count=len(owners))


@router.get("/owners/{owner_id}", response_model=OwnerMetricsResponse)
async def get_owner_metrics(
    owner_id: str,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: PromoMetricsService = Depends(get_metrics_service),
):
    """
    Metrics for one owner.

    Returns 404 if the owner does not exist, 503 if the store fails.
    """
    start_date, end_date = validate_date_range(start_date, end_date)
    try:
        metrics = service.calculate_owner_metrics(owner_id, start_date, end_date)
    except OwnerNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PromoStoreError as e:
        raise store_unavailable(e)
    return OwnerMetricsResponse(**metrics.to_dict())


@router.post("/snapshots", response_model=SnapshotRunResponse)
async def calculate_snapshots(
    body: Optional[SnapshotRunRequest] = None,
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Materialize daily snapshots for every active code."""
    snapshot_date = body.snapshot_date if body else None
    try:
        run = service.calculate_snapshots(snapshot_date)
    except PromoStoreError as e:
        raise store_unavailable(e)
    return SnapshotRunResponse(**run.to_dict())

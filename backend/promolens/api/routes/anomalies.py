"""
Anomaly flag API routes.

Provides:
- GET /api/anomalies - list flags (unresolved by default)
- POST /api/anomalies/run - run detection over active codes
- POST /api/anomalies/{flag_id}/resolve - mark a flag resolved
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from promolens.api.dependencies import get_anomaly_service
from promolens.api.routes.metrics import store_unavailable, validate_date_range
from promolens.api.schemas.anomalies import (
    AnomalyFlagResponse,
    AnomalyListResponse,
    AnomalyRunResponse,
)
from promolens.database.session import get_db_session
from promolens.models.anomaly_flag import AnomalyFlag
from promolens.repositories.promo_repo import PromoRepository, PromoStoreError
from promolens.services.anomaly_service import AnomalyDetectionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/anomalies", tags=["anomalies"])


def _flag_to_response(flag: AnomalyFlag) -> AnomalyFlagResponse:
    code = flag.code
    return AnomalyFlagResponse(
        id=flag.id,
        code_id=flag.code_id,
        code=code.code if code else None,
        owner_name=code.owner.name if code and code.owner else None,
        type=flag.type,
        severity=flag.severity,
        message=flag.message,
        metadata=flag.flag_metadata or {},
        is_resolved=flag.is_resolved,
        created_at=flag.created_at,
        resolved_at=flag.resolved_at,
    )


@router.get("", response_model=AnomalyListResponse)
async def list_anomalies(
    is_resolved: Optional[bool] = Query(False, description="Filter by resolution state"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db_session: Session = Depends(get_db_session),
):
    start_date, end_date = validate_date_range(start_date, end_date)
    try:
        flags = PromoRepository(db_session).list_anomaly_flags(is_resolved, start_date, end_date)
    except PromoStoreError as e:
        raise store_unavailable(e)

    anomalies = [_flag_to_response(f) for f in flags]
    return AnomalyListResponse(anomalies=anomalies, count=len(anomalies))


@router.post("/run", response_model=AnomalyRunResponse)
async def run_anomaly_detection(
    service: AnomalyDetectionService = Depends(get_anomaly_service),
):
    """Detect anomalies for all active codes and persist new flags."""
    try:
        run = service.run_anomaly_detection()
    except PromoStoreError as e:
        raise store_unavailable(e)
    return AnomalyRunResponse(**run.stats())


@router.post("/{flag_id}/resolve", response_model=AnomalyFlagResponse)
async def resolve_anomaly(
    flag_id: str,
    db_session: Session = Depends(get_db_session),
):
    try:
        flag = PromoRepository(db_session).resolve_anomaly_flag(flag_id)
    except PromoStoreError as e:
        raise store_unavailable(e)

    if flag is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Anomaly flag {flag_id} not found",
        )

    logger.info("Anomaly flag resolved", extra={"flag_id": flag_id})
    return _flag_to_response(flag)

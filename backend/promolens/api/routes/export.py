"""
CSV export routes.

GET /api/export/{codes|orders|owners|anomalies}

Date bounds apply to orders and anomalies. An export with no rows
returns 404 rather than an empty file.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from promolens.api.dependencies import get_export_service
from promolens.api.routes.metrics import store_unavailable, validate_date_range
from promolens.repositories.promo_repo import PromoStoreError
from promolens.services.export_service import ExportService, ExportType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["export"])


@router.get("/{export_type}")
async def export_csv(
    export_type: ExportType,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    service: ExportService = Depends(get_export_service),
):
    start_date, end_date = validate_date_range(start_date, end_date)
    try:
        result = service.export(export_type, start_date, end_date)
    except PromoStoreError as e:
        raise store_unavailable(e)

    if result.record_count == 0:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No data to export",
        )

    return Response(
        content=result.content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )

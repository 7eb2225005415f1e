"""
Shared FastAPI dependencies for route handlers.

Settings are built from the environment once per process and injected;
services are built per request around the request's database session.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from promolens.config.settings import AppSettings, ConnectorSettings
from promolens.database.session import get_db_session
from promolens.services.anomaly_service import AnomalyDetectionService
from promolens.services.export_service import ExportService
from promolens.services.order_ingestion import OrderIngestionService
from promolens.services.promo_metrics_service import PromoMetricsService
from promolens.services.snapshot_service import SnapshotService


@lru_cache
def get_app_settings() -> AppSettings:
    return AppSettings.from_env()


@lru_cache
def get_connector_settings() -> ConnectorSettings:
    return ConnectorSettings.from_env()


def get_metrics_service(db_session: Session = Depends(get_db_session)) -> PromoMetricsService:
    return PromoMetricsService(db_session)


def get_anomaly_service(
    db_session: Session = Depends(get_db_session),
    app_settings: AppSettings = Depends(get_app_settings),
) -> AnomalyDetectionService:
    return AnomalyDetectionService(
        db_session, reporting_timezone=app_settings.reporting_timezone
    )


def get_snapshot_service(db_session: Session = Depends(get_db_session)) -> SnapshotService:
    return SnapshotService(db_session)


def get_export_service(db_session: Session = Depends(get_db_session)) -> ExportService:
    return ExportService(db_session)


def get_ingestion_service(
    db_session: Session = Depends(get_db_session),
    settings: ConnectorSettings = Depends(get_connector_settings),
) -> OrderIngestionService:
    return OrderIngestionService(db_session, settings)

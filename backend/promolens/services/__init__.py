"""
Business logic services.
"""

from promolens.services.promo_metrics_service import PromoMetricsService
from promolens.services.anomaly_service import AnomalyDetectionService
from promolens.services.snapshot_service import SnapshotService
from promolens.services.order_ingestion import OrderIngestionService
from promolens.services.export_service import ExportService

__all__ = [
    "PromoMetricsService",
    "AnomalyDetectionService",
    "SnapshotService",
    "OrderIngestionService",
    "ExportService",
]

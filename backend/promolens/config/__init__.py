"""Configuration: environment settings and detector thresholds."""

from promolens.config.settings import AppSettings, ConnectorSettings
from promolens.config.anomaly_thresholds import (
    AnomalyThresholds,
    DEFAULT_THRESHOLDS,
    get_anomaly_thresholds_loader,
)

__all__ = [
    "AppSettings",
    "ConnectorSettings",
    "AnomalyThresholds",
    "DEFAULT_THRESHOLDS",
    "get_anomaly_thresholds_loader",
]

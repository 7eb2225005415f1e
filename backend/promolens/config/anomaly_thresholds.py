"""
Anomaly threshold configuration loader.

Loads detector thresholds from config/anomaly_thresholds.yml. The
orchestrator passes the loaded values to the detectors as explicit
arguments; the detectors themselves read no configuration.

Consumers:
  - AnomalyDetectionService: per-run detector arguments

Usage:
    from promolens.config.anomaly_thresholds import get_anomaly_thresholds_loader

    thresholds = get_anomaly_thresholds_loader().get_thresholds()
    thresholds.spike_z_threshold  # 2.5
"""

import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnomalyThresholds:
    """Detector arguments. Defaults are the production defaults."""

    spike_z_threshold: float = 2.5
    spike_min_snapshots: int = 7
    low_pvi_threshold: float = 0.5
    low_pvi_days: int = 3
    leakage_threshold: float = 0.7
    leakage_min_snapshots: int = 3
    pattern_min_redemptions: int = 10
    business_hours_start: int = 9
    business_hours_end: int = 17
    business_hours_min_ratio: float = 0.3
    rapid_fire_gap_seconds: float = 60.0
    rapid_fire_max_pairs: int = 3

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_THRESHOLDS = AnomalyThresholds()

# YAML section -> {yaml key: dataclass field}
_FIELD_MAP = {
    "redemption_spike": {
        "z_threshold": "spike_z_threshold",
        "min_snapshots": "spike_min_snapshots",
    },
    "low_pvi": {
        "threshold": "low_pvi_threshold",
        "days": "low_pvi_days",
    },
    "leakage": {
        "threshold": "leakage_threshold",
        "min_snapshots": "leakage_min_snapshots",
    },
    "unusual_pattern": {
        "min_redemptions": "pattern_min_redemptions",
        "business_hours_start": "business_hours_start",
        "business_hours_end": "business_hours_end",
        "business_hours_min_ratio": "business_hours_min_ratio",
        "rapid_fire_gap_seconds": "rapid_fire_gap_seconds",
        "rapid_fire_max_pairs": "rapid_fire_max_pairs",
    },
}


def parse_thresholds(raw: Dict[str, Any]) -> AnomalyThresholds:
    """Build AnomalyThresholds from a parsed YAML dict, keeping defaults for missing keys."""
    values = DEFAULT_THRESHOLDS.to_dict()
    for section, keys in _FIELD_MAP.items():
        section_cfg = raw.get(section) or {}
        for yaml_key, field_name in keys.items():
            if yaml_key in section_cfg:
                default = values[field_name]
                values[field_name] = type(default)(section_cfg[yaml_key])
    return AnomalyThresholds(**values)


class AnomalyThresholdsLoader:
    """
    Thread-safe singleton loader for config/anomaly_thresholds.yml.
    """

    _instance: Optional["AnomalyThresholdsLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path
        self._thresholds: AnomalyThresholds = DEFAULT_THRESHOLDS
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)

        candidates = [
            Path(__file__).parent.parent.parent.parent / "config" / "anomaly_thresholds.yml",
            Path(os.getcwd()) / "config" / "anomaly_thresholds.yml",
        ]

        for p in candidates:
            resolved = p.resolve()
            if resolved.exists():
                return resolved

        raise FileNotFoundError(
            f"anomaly_thresholds.yml not found in: {[str(p) for p in candidates]}"
        )

    def _load(self) -> None:
        with self._load_lock:
            try:
                path = self._resolve_path()
                logger.info("Loading anomaly thresholds from %s", path)

                with open(path, "r") as f:
                    raw = yaml.safe_load(f) or {}

                self._thresholds = parse_thresholds(raw)
                logger.info("Loaded anomaly thresholds", extra=self._thresholds.to_dict())
            except FileNotFoundError:
                logger.warning("anomaly_thresholds.yml not found, using defaults")
                self._thresholds = DEFAULT_THRESHOLDS

    def reload(self) -> None:
        """Re-read the YAML from disk."""
        self._load()

    def get_thresholds(self) -> AnomalyThresholds:
        return self._thresholds

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton. Used by tests."""
        with cls._lock:
            cls._instance = None


def get_anomaly_thresholds_loader(config_path: Optional[str] = None) -> AnomalyThresholdsLoader:
    """Return the singleton loader."""
    return AnomalyThresholdsLoader(config_path)

"""
Anomaly detection orchestration.

Fetches snapshot history and redemption timestamps for a code, runs the
pure detectors in anomaly_detection with thresholds from
config/anomaly_thresholds.yml, and persists results as AnomalyFlag rows.

Persistence is strictly additive: a rerun over unchanged data creates
new flags alongside existing unresolved ones of the same type.

Store errors (reads and writes) propagate to the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from promolens.config.anomaly_thresholds import (
    AnomalyThresholds,
    get_anomaly_thresholds_loader,
)
from promolens.config.settings import DEFAULT_REPORTING_TIMEZONE
from promolens.models.anomaly_flag import AnomalyFlag
from promolens.repositories.promo_repo import PromoRepository
from promolens.services import anomaly_detection
from promolens.services.anomaly_detection import AnomalyDetectionResult

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> tzinfo:
    """Map an IANA name to a tzinfo, short-circuiting UTC."""
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


@dataclass
class AnomalyRunResult:
    """Outcome of a detection run over all active codes."""
    codes_checked: int = 0
    anomalies_detected: int = 0
    flags: List[AnomalyFlag] = field(default_factory=list)

    def stats(self) -> Dict[str, Any]:
        return {
            "codes_checked": self.codes_checked,
            "anomalies_detected": self.anomalies_detected,
            "flags_created": len(self.flags),
        }


class AnomalyDetectionService:
    """
    Runs promo anomaly detectors for one code or for all active codes.
    """

    def __init__(
        self,
        db_session: Session,
        repository: Optional[PromoRepository] = None,
        thresholds: Optional[AnomalyThresholds] = None,
        reporting_timezone: str = DEFAULT_REPORTING_TIMEZONE,
    ):
        """
        Initialize anomaly detection service.

        Args:
            db_session: Database session
            repository: Optional repository override
            thresholds: Detector thresholds (default: loaded from YAML)
            reporting_timezone: IANA zone used for the business-hours check
        """
        self.db = db_session
        self.repository = repository or PromoRepository(db_session)
        self.thresholds = thresholds or get_anomaly_thresholds_loader().get_thresholds()
        self.tz = resolve_timezone(reporting_timezone)

    # -------------------------------------------------------------------------
    # Single-detector entry points
    # -------------------------------------------------------------------------

    def detect_redemption_spikes(
        self, code_id: str, threshold: Optional[float] = None
    ) -> List[AnomalyDetectionResult]:
        snapshots = self.repository.get_snapshots(code_id)
        return anomaly_detection.detect_redemption_spikes(
            code_id,
            snapshots,
            threshold=self.thresholds.spike_z_threshold if threshold is None else threshold,
            min_snapshots=self.thresholds.spike_min_snapshots,
        )

    def detect_low_pvi(
        self,
        code_id: str,
        threshold: Optional[float] = None,
        consecutive_days: Optional[int] = None,
    ) -> List[AnomalyDetectionResult]:
        snapshots = self.repository.get_snapshots(code_id)
        return anomaly_detection.detect_low_pvi(
            code_id,
            snapshots,
            threshold=self.thresholds.low_pvi_threshold if threshold is None else threshold,
            consecutive_days=(
                self.thresholds.low_pvi_days if consecutive_days is None else consecutive_days
            ),
        )

    def detect_leakage(
        self, code_id: str, threshold: Optional[float] = None
    ) -> List[AnomalyDetectionResult]:
        snapshots = self.repository.get_snapshots(code_id)
        return anomaly_detection.detect_leakage(
            code_id,
            snapshots,
            threshold=self.thresholds.leakage_threshold if threshold is None else threshold,
            min_snapshots=self.thresholds.leakage_min_snapshots,
        )

    def detect_unusual_patterns(self, code_id: str) -> List[AnomalyDetectionResult]:
        redemptions = self.repository.get_redemptions(code_id)
        return self._run_pattern_detector(code_id, redemptions)

    def _run_pattern_detector(self, code_id: str, redemptions) -> List[AnomalyDetectionResult]:
        t = self.thresholds
        return anomaly_detection.detect_unusual_patterns(
            code_id,
            redemptions,
            tz=self.tz,
            min_redemptions=t.pattern_min_redemptions,
            business_hours_start=t.business_hours_start,
            business_hours_end=t.business_hours_end,
            business_hours_min_ratio=t.business_hours_min_ratio,
            rapid_fire_gap_seconds=t.rapid_fire_gap_seconds,
            rapid_fire_max_pairs=t.rapid_fire_max_pairs,
        )

    # -------------------------------------------------------------------------
    # Orchestration
    # -------------------------------------------------------------------------

    def detect_anomalies(self, code_id: str) -> List[AnomalyDetectionResult]:
        """
        Run all four detectors for a code and concatenate their results.

        History is fetched once and shared; detectors are independent of
        each other and the order of the returned list is not significant.
        """
        t = self.thresholds
        snapshots = self.repository.get_snapshots(code_id)
        redemptions = self.repository.get_redemptions(code_id)

        results: List[AnomalyDetectionResult] = []
        results.extend(anomaly_detection.detect_redemption_spikes(
            code_id, snapshots,
            threshold=t.spike_z_threshold,
            min_snapshots=t.spike_min_snapshots,
        ))
        results.extend(anomaly_detection.detect_low_pvi(
            code_id, snapshots,
            threshold=t.low_pvi_threshold,
            consecutive_days=t.low_pvi_days,
        ))
        results.extend(anomaly_detection.detect_leakage(
            code_id, snapshots,
            threshold=t.leakage_threshold,
            min_snapshots=t.leakage_min_snapshots,
        ))
        results.extend(self._run_pattern_detector(code_id, redemptions))

        if results:
            logger.info(
                "Anomalies detected for code",
                extra={
                    "code_id": code_id,
                    "anomaly_count": len(results),
                    "types": sorted({r.type.value for r in results}),
                },
            )
        return results

    def run_anomaly_detection(self) -> AnomalyRunResult:
        """
        Detect anomalies for every active code and persist each one as a
        new AnomalyFlag. Codes are processed sequentially.

        Raises:
            PromoStoreError: If any read or flag write fails
        """
        run = AnomalyRunResult()

        for code in self.repository.get_active_codes():
            anomalies = self.detect_anomalies(code.id)
            run.codes_checked += 1
            run.anomalies_detected += len(anomalies)

            for anomaly in anomalies:
                flag = self.repository.create_anomaly_flag(
                    code_id=anomaly.code_id,
                    anomaly_type=anomaly.type.value,
                    severity=anomaly.severity.value,
                    message=anomaly.message,
                    metadata=anomaly.metadata,
                )
                run.flags.append(flag)

        logger.info("Anomaly detection run complete", extra=run.stats())
        return run

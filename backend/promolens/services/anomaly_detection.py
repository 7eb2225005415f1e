"""
Anomaly detectors over promo code history.

Each detector is a pure function of already-fetched rows and returns zero
or more AnomalyDetectionResult. None of them touch the store; fetching
and persisting is done by AnomalyDetectionService.

Every detector sorts its input by timestamp, newest first, before
reading it. Caller order is never trusted.

Detectors:
- detect_redemption_spikes: z-score of the newest day's uses vs. all history
- detect_low_pvi: days with PVI under threshold across all history
- detect_leakage: average leakage over all history
- detect_unusual_patterns: off-hours ratio and rapid-fire redemptions
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Dict, List, Protocol, Sequence

from promolens.metrics.kpi_definitions import to_float, to_utc
from promolens.models.anomaly_flag import AnomalyType, AnomalySeverity


class SnapshotLike(Protocol):
    date: date
    total_uses: int
    new_customer_uses: int
    pvi: float
    leakage: float


class TimestampedLike(Protocol):
    created_at: datetime


@dataclass
class AnomalyDetectionResult:
    """One detected anomaly, ready to be persisted as an AnomalyFlag."""
    code_id: str
    type: AnomalyType
    severity: AnomalySeverity
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code_id": self.code_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "metadata": self.metadata,
        }


def _newest_first_snapshots(snapshots: Sequence[SnapshotLike]) -> List[SnapshotLike]:
    return sorted(snapshots, key=lambda s: s.date, reverse=True)


def _newest_first_events(events: Sequence[TimestampedLike]) -> List[TimestampedLike]:
    return sorted(events, key=lambda e: to_utc(e.created_at), reverse=True)


def detect_redemption_spikes(
    code_id: str,
    snapshots: Sequence[SnapshotLike],
    threshold: float = 2.5,
    min_snapshots: int = 7,
) -> List[AnomalyDetectionResult]:
    """
    Flag the newest day if its uses sit more than `threshold` population
    standard deviations above the mean of all snapshots.

    Severity: z > 4 CRITICAL, z > 3 HIGH, else MEDIUM.
    """
    if len(snapshots) < min_snapshots:
        return []

    ordered = _newest_first_snapshots(snapshots)
    uses = [int(s.total_uses) for s in ordered]
    mean = sum(uses) / len(uses)
    variance = sum((u - mean) ** 2 for u in uses) / len(uses)
    std_dev = math.sqrt(variance)

    if std_dev == 0:
        return []

    latest = uses[0]
    z_score = (latest - mean) / std_dev
    if z_score <= threshold:
        return []

    if z_score > 4:
        severity = AnomalySeverity.CRITICAL
    elif z_score > 3:
        severity = AnomalySeverity.HIGH
    else:
        severity = AnomalySeverity.MEDIUM

    return [AnomalyDetectionResult(
        code_id=code_id,
        type=AnomalyType.SPIKE_REDEMPTION,
        severity=severity,
        message=f"Unusual spike in redemptions detected ({z_score:.2f}σ above mean)",
        metadata={
            "z_score": z_score,
            "normal_rate": mean,
            "actual_rate": latest,
            "spike_factor": latest / mean,
            "snapshot_date": ordered[0].date.isoformat(),
        },
    )]


def detect_low_pvi(
    code_id: str,
    snapshots: Sequence[SnapshotLike],
    threshold: float = 0.5,
    consecutive_days: int = 3,
) -> List[AnomalyDetectionResult]:
    """
    Flag a code whose PVI was under `threshold` on at least
    `consecutive_days` days of its history.

    The days are counted across all history, not as an unbroken run.
    Severity uses the average PVI over all snapshots:
    < 0.2 CRITICAL, < 0.3 HIGH, else MEDIUM.
    """
    if len(snapshots) < consecutive_days:
        return []

    ordered = _newest_first_snapshots(snapshots)
    low_pvi_days = sum(1 for s in ordered if to_float(s.pvi) < threshold)
    if low_pvi_days < consecutive_days:
        return []

    avg_pvi = sum(to_float(s.pvi) for s in ordered) / len(ordered)

    if avg_pvi < 0.2:
        severity = AnomalySeverity.CRITICAL
    elif avg_pvi < 0.3:
        severity = AnomalySeverity.HIGH
    else:
        severity = AnomalySeverity.MEDIUM

    return [AnomalyDetectionResult(
        code_id=code_id,
        type=AnomalyType.LOW_PVI,
        severity=severity,
        message=f"PVI below threshold for {consecutive_days} consecutive days",
        metadata={
            "current_pvi": avg_pvi,
            "threshold": threshold,
            "consecutive_days": consecutive_days,
            "low_pvi_days": low_pvi_days,
        },
    )]


def detect_leakage(
    code_id: str,
    snapshots: Sequence[SnapshotLike],
    threshold: float = 0.7,
    min_snapshots: int = 3,
) -> List[AnomalyDetectionResult]:
    """
    Flag a code whose average leakage exceeds `threshold`.

    Severity: > 0.9 CRITICAL, > 0.8 HIGH, else MEDIUM.
    """
    if len(snapshots) < min_snapshots:
        return []

    ordered = _newest_first_snapshots(snapshots)
    avg_leakage = sum(to_float(s.leakage) for s in ordered) / len(ordered)
    if avg_leakage <= threshold:
        return []

    if avg_leakage > 0.9:
        severity = AnomalySeverity.CRITICAL
    elif avg_leakage > 0.8:
        severity = AnomalySeverity.HIGH
    else:
        severity = AnomalySeverity.MEDIUM

    return [AnomalyDetectionResult(
        code_id=code_id,
        type=AnomalyType.LEAKAGE_DETECTED,
        severity=severity,
        message="High leakage rate detected - possible code sharing",
        metadata={
            "leakage_rate": avg_leakage,
            "threshold": threshold,
            "total_uses": sum(int(s.total_uses) for s in ordered),
            "new_customer_uses": sum(int(s.new_customer_uses) for s in ordered),
        },
    )]


def detect_unusual_patterns(
    code_id: str,
    redemptions: Sequence[TimestampedLike],
    tz: tzinfo = timezone.utc,
    min_redemptions: int = 10,
    business_hours_start: int = 9,
    business_hours_end: int = 17,
    business_hours_min_ratio: float = 0.3,
    rapid_fire_gap_seconds: float = 60.0,
    rapid_fire_max_pairs: int = 3,
) -> List[AnomalyDetectionResult]:
    """
    Two independent checks over raw redemption timestamps; both may fire.

    - Off-hours: fewer than `business_hours_min_ratio` of redemptions fall
      inside [business_hours_start, business_hours_end] local hour -> MEDIUM.
    - Rapid-fire: more than `rapid_fire_max_pairs` adjacent pairs (in
      time order) closer than `rapid_fire_gap_seconds` -> HIGH.
    """
    if len(redemptions) < min_redemptions:
        return []

    ordered = _newest_first_events(redemptions)
    timestamps = [to_utc(r.created_at) for r in ordered]
    results: List[AnomalyDetectionResult] = []

    business_hours_count = sum(
        1 for ts in timestamps
        if business_hours_start <= ts.astimezone(tz).hour <= business_hours_end
    )
    business_hours_ratio = business_hours_count / len(timestamps)

    if business_hours_ratio < business_hours_min_ratio:
        results.append(AnomalyDetectionResult(
            code_id=code_id,
            type=AnomalyType.UNUSUAL_PATTERN,
            severity=AnomalySeverity.MEDIUM,
            message="Unusual redemption pattern - mostly outside business hours",
            metadata={
                "business_hours_ratio": business_hours_ratio,
                "total_redemptions": len(timestamps),
                "business_hours_redemptions": business_hours_count,
            },
        ))

    rapid_pairs = sum(
        1 for newer, older in zip(timestamps, timestamps[1:])
        if (newer - older).total_seconds() < rapid_fire_gap_seconds
    )

    if rapid_pairs > rapid_fire_max_pairs:
        results.append(AnomalyDetectionResult(
            code_id=code_id,
            type=AnomalyType.UNUSUAL_PATTERN,
            severity=AnomalySeverity.HIGH,
            message="Rapid-fire redemptions detected - possible bot activity",
            metadata={
                "rapid_redemptions": rapid_pairs,
                "total_redemptions": len(timestamps),
            },
        ))

    return results

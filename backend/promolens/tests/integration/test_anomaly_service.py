"""
Tests for anomaly detection orchestration and flag persistence.

Tests:
- Detection run flags active codes only
- Flags are appended on every run (no deduplication)
- Thresholds are passed through to the detectors
- Resolution marks a flag and timestamps it

Run with: pytest backend/promolens/tests/integration/test_anomaly_service.py -v
"""

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from promolens.config.anomaly_thresholds import DEFAULT_THRESHOLDS
from promolens.models import AnomalyFlag
from promolens.repositories.promo_repo import PromoRepository
from promolens.services.anomaly_service import AnomalyDetectionService, resolve_timezone

LATEST = date(2024, 6, 30)


@pytest.fixture
def leaky_code(make_code, make_snapshot):
    """Three days of 95% leakage with healthy PVI."""
    code = make_code(code="SHARED")
    for i in range(3):
        make_snapshot(
            code,
            LATEST - timedelta(days=i),
            total_uses=20,
            new_customer_uses=1,
            pvi=2.0,
            leakage=0.95,
        )
    return code


@pytest.fixture
def service(db_session):
    return AnomalyDetectionService(db_session, thresholds=DEFAULT_THRESHOLDS)


class TestDetectAnomalies:

    def test_leakage_detected_for_code(self, service, leaky_code):
        results = service.detect_anomalies(leaky_code.id)

        assert [r.type.value for r in results] == ["LEAKAGE_DETECTED"]
        assert results[0].severity.value == "CRITICAL"
        assert results[0].code_id == leaky_code.id

    def test_single_detector_threshold_override(self, service, leaky_code):
        assert service.detect_leakage(leaky_code.id, threshold=0.96) == []
        assert len(service.detect_leakage(leaky_code.id)) == 1

    def test_configured_thresholds_reach_detectors(self, db_session, leaky_code):
        lenient = replace(DEFAULT_THRESHOLDS, leakage_threshold=0.99)
        service = AnomalyDetectionService(db_session, thresholds=lenient)

        assert service.detect_anomalies(leaky_code.id) == []

    def test_low_pvi_wrapper(self, service, make_code, make_snapshot):
        code = make_code(code="WEAK")
        for i in range(3):
            make_snapshot(code, LATEST - timedelta(days=i), pvi=0.1)

        results = service.detect_low_pvi(code.id)

        assert len(results) == 1
        assert results[0].severity.value == "CRITICAL"

    def test_pattern_wrapper_reads_redemptions(self, service, make_code, make_redemption):
        code = make_code(code="NIGHTOWL")
        start = datetime(2024, 6, 1, 2, 0, tzinfo=timezone.utc)
        for i in range(10):
            make_redemption(code, created_at=start + timedelta(days=i))

        results = service.detect_unusual_patterns(code.id)

        assert len(results) == 1
        assert results[0].metadata["business_hours_ratio"] == 0.0

    def test_spike_wrapper_needs_history(self, service, leaky_code):
        assert service.detect_redemption_spikes(leaky_code.id) == []


class TestRunAnomalyDetection:

    def test_persists_flags(self, db_session, service, leaky_code):
        run = service.run_anomaly_detection()

        assert run.stats() == {"codes_checked": 1, "anomalies_detected": 1, "flags_created": 1}
        flag = db_session.query(AnomalyFlag).one()
        assert flag.code_id == leaky_code.id
        assert flag.type == "LEAKAGE_DETECTED"
        assert flag.is_resolved is False
        assert flag.flag_metadata["threshold"] == 0.7

    def test_reruns_append_duplicate_flags(self, db_session, service, leaky_code):
        service.run_anomaly_detection()
        service.run_anomaly_detection()

        flags = db_session.query(AnomalyFlag).filter(AnomalyFlag.is_resolved.is_(False)).all()
        assert len(flags) == 2
        assert {f.type for f in flags} == {"LEAKAGE_DETECTED"}

    def test_inactive_codes_not_checked(self, db_session, service, make_code, make_snapshot):
        retired = make_code(code="OLD", is_active=False)
        for i in range(3):
            make_snapshot(retired, LATEST - timedelta(days=i), leakage=1.0, pvi=2.0)

        run = service.run_anomaly_detection()

        assert run.codes_checked == 0
        assert db_session.query(AnomalyFlag).count() == 0


class TestResolveFlag:

    def test_resolve_sets_timestamp(self, db_session, service, leaky_code):
        flag = service.run_anomaly_detection().flags[0]
        repository = PromoRepository(db_session)

        resolved = repository.resolve_anomaly_flag(flag.id)

        assert resolved.is_resolved is True
        assert resolved.resolved_at is not None
        assert repository.list_anomaly_flags(is_resolved=False) == []
        assert len(repository.list_anomaly_flags(is_resolved=True)) == 1

    def test_resolve_missing_flag(self, db_session):
        assert PromoRepository(db_session).resolve_anomaly_flag("missing") is None


class TestResolveTimezone:

    def test_utc_short_circuit(self):
        assert resolve_timezone("UTC") is timezone.utc
        assert resolve_timezone("utc") is timezone.utc

    def test_named_zone(self):
        tz = resolve_timezone("America/New_York")
        offset = datetime(2024, 1, 15, 12, 0, tzinfo=tz).utcoffset()
        assert offset == timedelta(hours=-5)

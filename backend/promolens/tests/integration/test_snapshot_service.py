"""
Tests for daily snapshot materialization.

Tests:
- One snapshot per active code for the requested day
- Re-running a day overwrites instead of duplicating
- Inactive codes are ignored
- A failed metrics fetch skips the code
- Default date is yesterday (UTC)

Run with: pytest backend/promolens/tests/integration/test_snapshot_service.py -v
"""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from promolens.models import MetricsSnapshot
from promolens.repositories.promo_repo import PromoStoreError
from promolens.services.promo_metrics_service import FetchResult, PromoMetrics
from promolens.services.snapshot_service import (
    SnapshotService,
    day_bounds,
    default_snapshot_date,
)

DAY = date(2024, 5, 14)
MIDDAY = datetime(2024, 5, 14, 12, 0, tzinfo=timezone.utc)


def snapshots_for(db_session, code_id):
    return db_session.query(MetricsSnapshot).filter(MetricsSnapshot.code_id == code_id).all()


class TestDayHelpers:

    def test_day_bounds_cover_whole_day(self):
        start, end = day_bounds(DAY)

        assert start == datetime(2024, 5, 14, 0, 0, tzinfo=timezone.utc)
        assert end.date() == DAY
        assert end.hour == 23 and end.minute == 59 and end.second == 59

    def test_default_is_yesterday_utc(self):
        now = datetime(2024, 5, 15, 0, 30, tzinfo=timezone.utc)

        assert default_snapshot_date(now) == DAY

    def test_default_converts_to_utc(self):
        pacific = timezone(timedelta(hours=-7))
        now = datetime(2024, 5, 14, 20, 0, tzinfo=pacific)  # 03:00 UTC on the 15th

        assert default_snapshot_date(now) == DAY


class TestCalculateSnapshots:

    def test_writes_day_metrics(self, db_session, make_code, make_redemption):
        code = make_code(code="SUMMER")
        make_redemption(code, created_at=MIDDAY, total="80.00", discount="20.00")
        make_redemption(code, created_at=MIDDAY - timedelta(days=1), total="999.00")

        run = SnapshotService(db_session).calculate_snapshots(DAY)

        assert run.codes_processed == 1
        assert run.snapshots_written == 1
        rows = snapshots_for(db_session, code.id)
        assert len(rows) == 1
        snapshot = rows[0]
        assert snapshot.date == DAY
        assert snapshot.total_uses == 1
        assert float(snapshot.total_revenue) == pytest.approx(80.0)
        assert float(snapshot.total_discount) == pytest.approx(20.0)
        assert snapshot.new_customer_uses == 1
        assert snapshot.roi == pytest.approx(4.0)
        assert snapshot.pvi == pytest.approx(4.0)
        assert snapshot.leakage == 0.0

    def test_rerun_overwrites_same_day(self, db_session, make_code, make_redemption):
        code = make_code(code="SUMMER")
        make_redemption(code, created_at=MIDDAY)
        service = SnapshotService(db_session)
        service.calculate_snapshots(DAY)

        make_redemption(code, created_at=MIDDAY + timedelta(hours=1))
        service.calculate_snapshots(DAY)

        rows = snapshots_for(db_session, code.id)
        assert len(rows) == 1
        assert rows[0].total_uses == 2

    def test_inactive_codes_skipped(self, db_session, make_code):
        make_code(code="RETIRED", is_active=False)
        active = make_code(code="LIVE")

        run = SnapshotService(db_session).calculate_snapshots(DAY)

        assert run.codes_processed == 1
        assert len(snapshots_for(db_session, active.id)) == 1

    def test_failed_fetch_skips_code(self, db_session, make_code):
        broken = make_code(code="BROKEN")
        healthy = make_code(code="HEALTHY")
        metrics_service = MagicMock()
        metrics_service.fetch_code_metrics.side_effect = lambda code_id, start, end: (
            FetchResult.failure(PromoStoreError("read failed", "get_redemptions"))
            if code_id == broken.id
            else FetchResult.success(PromoMetrics.zero(code_id))
        )

        run = SnapshotService(db_session, metrics_service=metrics_service).calculate_snapshots(DAY)

        assert run.codes_skipped == [broken.id]
        assert run.snapshots_written == 1
        assert snapshots_for(db_session, broken.id) == []
        assert len(snapshots_for(db_session, healthy.id)) == 1
        assert run.to_dict() == {
            "date": "2024-05-14",
            "codes_processed": 2,
            "snapshots_written": 1,
            "codes_skipped": 1,
        }

    def test_write_failure_propagates(self, db_session):
        repository = MagicMock()
        repository.get_active_codes.return_value = [MagicMock(id="code-1")]
        repository.upsert_snapshot.side_effect = PromoStoreError("write failed", "upsert_snapshot")
        metrics_service = MagicMock()
        metrics_service.fetch_code_metrics.return_value = FetchResult.success(
            PromoMetrics.zero("code-1")
        )
        service = SnapshotService(
            db_session, repository=repository, metrics_service=metrics_service
        )

        with pytest.raises(PromoStoreError):
            service.calculate_snapshots(DAY)

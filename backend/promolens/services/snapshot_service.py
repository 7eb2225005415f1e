"""
Daily metrics snapshot materialization.

For every active code, computes code metrics over one calendar day (UTC)
and upserts one MetricsSnapshot keyed on (code_id, date). Rerunning a day
overwrites that day's rows.

A code whose metrics fetch fails is skipped rather than written as zeros,
so a transient read failure cannot plant a fake zero-use day into the
history the anomaly detectors read. Write failures propagate.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from promolens.repositories.promo_repo import PromoRepository
from promolens.services.promo_metrics_service import PromoMetricsService

logger = logging.getLogger(__name__)


def day_bounds(snapshot_date: date) -> tuple[datetime, datetime]:
    """Inclusive UTC bounds covering one calendar day."""
    start = datetime.combine(snapshot_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(snapshot_date, time.max, tzinfo=timezone.utc)
    return start, end


def default_snapshot_date(now: Optional[datetime] = None) -> date:
    """Yesterday in UTC."""
    now = now or datetime.now(timezone.utc)
    return (now.astimezone(timezone.utc) - timedelta(days=1)).date()


@dataclass
class SnapshotRunResult:
    """Outcome of one snapshot materialization run."""
    snapshot_date: date
    codes_processed: int = 0
    snapshots_written: int = 0
    codes_skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.snapshot_date.isoformat(),
            "codes_processed": self.codes_processed,
            "snapshots_written": self.snapshots_written,
            "codes_skipped": len(self.codes_skipped),
        }


class SnapshotService:
    """Materializes one MetricsSnapshot per active code per day."""

    def __init__(
        self,
        db_session: Session,
        repository: Optional[PromoRepository] = None,
        metrics_service: Optional[PromoMetricsService] = None,
    ):
        self.db = db_session
        self.repository = repository or PromoRepository(db_session)
        self.metrics_service = metrics_service or PromoMetricsService(
            db_session, repository=self.repository
        )

    def calculate_snapshots(self, snapshot_date: Optional[date] = None) -> SnapshotRunResult:
        """
        Compute and upsert snapshots for every active code.

        Args:
            snapshot_date: Day to materialize (default: yesterday, UTC)

        Returns:
            SnapshotRunResult with per-run counts

        Raises:
            PromoStoreError: If listing active codes or writing a snapshot fails
        """
        snapshot_date = snapshot_date or default_snapshot_date()
        start, end = day_bounds(snapshot_date)
        run = SnapshotRunResult(snapshot_date=snapshot_date)

        for code in self.repository.get_active_codes():
            run.codes_processed += 1

            result = self.metrics_service.fetch_code_metrics(code.id, start, end)
            if not result.ok:
                logger.warning(
                    "Skipping snapshot for code, metrics fetch failed",
                    extra={
                        "code_id": code.id,
                        "date": snapshot_date.isoformat(),
                        "error": result.error.message,
                    },
                )
                run.codes_skipped.append(code.id)
                continue

            metrics = result.value
            self.repository.upsert_snapshot(
                code_id=code.id,
                snapshot_date=snapshot_date,
                values={
                    "total_uses": metrics.total_uses,
                    "total_revenue": metrics.total_revenue,
                    "total_discount": metrics.total_discount,
                    "new_customer_uses": metrics.new_customer_uses,
                    "new_customer_revenue": metrics.new_customer_revenue,
                    "roi": metrics.roi,
                    "pvi": metrics.pvi,
                    "leakage": metrics.leakage,
                },
            )
            run.snapshots_written += 1

        logger.info("Snapshot run complete", extra=run.to_dict())
        return run

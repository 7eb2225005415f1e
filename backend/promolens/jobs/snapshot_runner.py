"""
Daily snapshot job.

Materializes one MetricsSnapshot per active code for a calendar day.
Schedule it shortly after midnight UTC so yesterday is complete.

Run as a cron job:
    python -m promolens.jobs.snapshot_runner
    python -m promolens.jobs.snapshot_runner --date 2024-03-01
"""

import argparse
import logging
import sys
from datetime import date
from typing import List, Optional

from promolens.database.session import get_db_session_sync
from promolens.services.snapshot_service import SnapshotService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Materialize daily promo metrics snapshots")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Day to materialize, YYYY-MM-DD (default: yesterday UTC)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Main entry point for the snapshot job."""
    args = parse_args(argv)
    logger.info("Snapshot Runner starting")

    try:
        for session in get_db_session_sync():
            run = SnapshotService(session).calculate_snapshots(args.date)
            logger.info("Snapshot Runner stats", extra=run.to_dict())
    except Exception as e:
        logger.error("Snapshot Runner failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)

    logger.info("Snapshot Runner finished")


if __name__ == "__main__":
    main()

"""
Anomaly detection job.

Runs all detectors over every active code and persists new flags.
Flags are not deduplicated: each run adds a flag for every anomaly it
finds, even if an unresolved flag of the same type already exists.

Run as a cron job (after the snapshot job):
    python -m promolens.jobs.anomaly_runner
"""

import logging
import sys

from promolens.config.settings import AppSettings
from promolens.database.session import get_db_session_sync
from promolens.services.anomaly_service import AnomalyDetectionService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Main entry point for the anomaly detection job."""
    logger.info("Anomaly Runner starting")
    settings = AppSettings.from_env()

    try:
        for session in get_db_session_sync():
            service = AnomalyDetectionService(
                session, reporting_timezone=settings.reporting_timezone
            )
            run = service.run_anomaly_detection()
            logger.info("Anomaly Runner stats", extra=run.stats())
    except Exception as e:
        logger.error("Anomaly Runner failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)

    logger.info("Anomaly Runner finished")


if __name__ == "__main__":
    main()

"""
Data Retention Job

Deletes rate-limit windows past their stale point and verification attempts
older than ATTEMPT_RETENTION_DAYS.

Run command:
    python -m smsauth.jobs.data_retention
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from ..core.config import settings
from ..db import get_session_local
from ..models import RateLimitWindowRow, VerificationAttemptRow

logger = logging.getLogger(__name__)


def run_data_retention(db: Session, now: datetime = None, retention_days: int = None):
    """
    Run data retention cleanup:
    - Delete rate_limit_windows whose stale_after has passed
    - Delete verification_attempts older than retention_days (default 7)
    """
    now = now or datetime.now(timezone.utc)
    retention_days = settings.ATTEMPT_RETENTION_DAYS if retention_days is None else retention_days

    # 1. Windows at least one full window past expiry
    deleted_windows = db.query(RateLimitWindowRow).filter(
        RateLimitWindowRow.stale_after <= now
    ).delete(synchronize_session=False)
    logger.info(f"Deleted {deleted_windows} rate_limit_windows past stale_after")

    # 2. Attempts older than the retention period
    cutoff_attempts = now - timedelta(days=retention_days)
    deleted_attempts = db.query(VerificationAttemptRow).filter(
        VerificationAttemptRow.created_at < cutoff_attempts
    ).delete(synchronize_session=False)
    logger.info(f"Deleted {deleted_attempts} verification_attempts older than {retention_days} days")

    db.commit()

    return {
        "deleted_rate_limit_windows": deleted_windows,
        "deleted_verification_attempts": deleted_attempts,
    }


def main():
    """Main entry point for data retention job"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    db = get_session_local()()
    try:
        logger.info("Starting data retention job...")
        results = run_data_retention(db)
        logger.info(f"Data retention job completed: {results}")
    except Exception as e:
        logger.error(f"Data retention job failed: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()

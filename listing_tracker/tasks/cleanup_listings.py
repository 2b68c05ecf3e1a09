"""Retention sweep: drop durable listing rows older than the retention window.

Only the durable mirror is touched; the in-memory store of the API process
ages out on its own through eviction.
"""

import logging
from datetime import datetime, timedelta

from listing_tracker.config import settings
from listing_tracker.repository import ListingRepository
from listing_tracker.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def sweep_old_listings(repository: ListingRepository, retention_days: int) -> int:
    cutoff = datetime.utcnow() - timedelta(days=retention_days)
    deleted = repository.delete_older_than(cutoff)
    if deleted:
        logger.info(f"Deleted {deleted} listings listed before {cutoff:%Y-%m-%d %H:%M}")
    return deleted


@celery_app.task(bind=True, max_retries=3)
def cleanup_old_listings(self, retention_days: int = None):
    """Delete sniper_listings rows listed before now - retention_days."""
    days = retention_days or settings.listing_retention_days
    logger.info(f"Starting retention sweep ({days} days)")
    try:
        deleted = sweep_old_listings(ListingRepository(), days)
        return {"status": "success", "deleted": deleted, "retention_days": days}
    except Exception as e:
        logger.error(f"Retention sweep failed: {e}")
        self.retry(exc=e, countdown=60)

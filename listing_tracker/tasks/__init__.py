"""Celery tasks."""

from listing_tracker.tasks.celery_app import celery_app
from listing_tracker.tasks.cleanup_listings import cleanup_old_listings

__all__ = [
    "celery_app",
    "cleanup_old_listings",
]

"""
Celery tasks for the booking lifecycle.
"""
from celery import shared_task
from django.db import DatabaseError
import logging

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=10)
def expire_stalled_cash_bookings(self):
    """
    Cancel kiosk bookings still waiting for cash after the timeout.
    Runs every minute from Celery beat.
    """
    from .services import get_lifecycle_manager

    try:
        expired = get_lifecycle_manager().expire_stalled_cash_bookings()
    except DatabaseError as e:
        logger.error(f"Cash expiry failed, retrying: {e}")
        raise self.retry(exc=e)

    if expired:
        logger.info(f"Cancelled {expired} booking(s) with no cash received")
    return f"Cancelled {expired} stalled cash booking(s)"

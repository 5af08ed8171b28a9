"""
Wiring for the booking lifecycle.
"""
from datetime import timedelta

from django.conf import settings

from payments.gateway import StripeGateway
from .lifecycle import BookingLifecycleManager
from .notifications import SignalNotifier
from .store import BookingStore


def get_lifecycle_manager():
    """Build a manager from settings. Called per request or task run, never cached."""
    return BookingLifecycleManager(
        store=BookingStore(),
        gateway=StripeGateway.from_settings(),
        notifier=SignalNotifier(),
        currency=settings.BOOKING_CURRENCY,
        cash_timeout=timedelta(minutes=settings.CASH_PAYMENT_TIMEOUT_MINUTES),
    )

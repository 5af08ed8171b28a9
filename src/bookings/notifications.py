"""
Change notifications for the admin dashboard.

The lifecycle manager publishes a RecordChange after every mutation. The
default notifier fires the `record_changed` signal once the surrounding
transaction commits; dashboards subscribe for a single session date.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from functools import partial
from typing import Optional

from django.db import transaction
from django.dispatch import Signal
from django.utils import timezone

logger = logging.getLogger(__name__)

# Sent with sender=RecordChange and a `change` keyword argument
record_changed = Signal()


@dataclass(frozen=True)
class RecordChange:
    table: str
    action: str
    record_id: int
    session_date: Optional[date]
    fields: dict = field(default_factory=dict)


class SignalNotifier:
    """Deliver changes through `record_changed` after commit."""

    def publish(self, change):
        transaction.on_commit(partial(self._send, change))

    def _send(self, change):
        logger.debug(f"{change.table} {change.record_id} {change.action}")
        record_changed.send_robust(sender=RecordChange, change=change)


def subscribe_dashboard(handler, session_date=None):
    """
    Call `handler(change)` for changes to one session date (today by default).

    Returns the connected receiver; pass it to `record_changed.disconnect`
    to unsubscribe.
    """
    session_date = session_date or timezone.localdate()

    def receiver(sender, change, **kwargs):
        if change.session_date == session_date:
            handler(change)

    record_changed.connect(receiver, sender=RecordChange, weak=False)
    return receiver

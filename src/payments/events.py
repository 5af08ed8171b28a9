"""
Stripe webhook events as seen by the lifecycle manager.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    PAYMENT_SUCCEEDED = 'payment_intent.succeeded'
    PAYMENT_FAILED = 'payment_intent.payment_failed'
    CHARGE_REFUNDED = 'charge.refunded'

    @classmethod
    def parse(cls, tag):
        """Returns None for event types we do not handle."""
        try:
            return cls(tag)
        except ValueError:
            return None


def to_minor_units(amount):
    """Decimal pounds to integer pence."""
    return int((Decimal(amount) * 100).quantize(Decimal('1')))


def from_minor_units(value):
    if value is None:
        return None
    return (Decimal(value) / 100).quantize(Decimal('0.01'))


@dataclass(frozen=True)
class PaymentEvent:
    id: str
    type: Optional[EventType]
    raw_type: str
    created: datetime
    data: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload):
        """Build from a decoded Stripe event body."""
        created = payload.get('created')
        if created is not None:
            created = datetime.fromtimestamp(int(created), tz=timezone.utc)
        else:
            created = datetime.now(tz=timezone.utc)
        raw_type = payload.get('type', '')
        data = payload.get('data')
        data = data.get('object') if isinstance(data, dict) else None
        return cls(
            id=payload.get('id', ''),
            type=EventType.parse(raw_type),
            raw_type=raw_type,
            created=created,
            data=data if isinstance(data, dict) else {},
        )

    @property
    def metadata(self):
        return self.data.get('metadata') or {}

    @property
    def booking_id(self):
        """Booking id from the PaymentIntent metadata, or None."""
        value = self.metadata.get('booking_id') or self.metadata.get('bookingId')
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def transaction_id(self):
        """The PaymentIntent id, for both intent and charge events."""
        if self.data.get('object') == 'charge':
            return self.data.get('payment_intent')
        return self.data.get('id')

    @property
    def currency(self):
        return self.data.get('currency')

    @property
    def amount_received(self):
        return from_minor_units(self.data.get('amount_received'))

    @property
    def amount_refunded(self):
        return from_minor_units(self.data.get('amount_refunded'))

from django.db import models

from gymdesk.exceptions import InvalidTransitionError
from members.models import Member
from schedule.models import GymClass


class BookingStatus(models.TextChoices):
    CONFIRMED = 'confirmed', 'Confirmed'
    CANCELLED = 'cancelled', 'Cancelled'
    ATTENDED = 'attended', 'Attended'
    NO_SHOW = 'no_show', 'No Show'


class BookingPaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    REFUNDED = 'refunded', 'Refunded'
    WAIVED = 'waived', 'Waived'


class BookingType(models.TextChoices):
    DROP_IN = 'drop_in', 'Drop-in'
    MEMBERSHIP = 'membership', 'Membership'
    TRIAL = 'trial', 'Trial'


class BookingChannel(models.TextChoices):
    KIOSK = 'kiosk', 'Kiosk'
    ADMIN = 'admin', 'Admin'
    ONLINE = 'online', 'Online'


# Attended and no-show are terminal. A cancelled booking comes back when a
# later card payment succeeds or staff take cash for it.
ALLOWED_TRANSITIONS = {
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.ATTENDED, BookingStatus.NO_SHOW},
    BookingStatus.CANCELLED: {BookingStatus.CONFIRMED},
    BookingStatus.ATTENDED: set(),
    BookingStatus.NO_SHOW: set(),
}

SETTLED_PAYMENT_STATUSES = {BookingPaymentStatus.PAID, BookingPaymentStatus.WAIVED}


class Booking(models.Model):
    """One member's place in one occurrence of a class."""
    member = models.ForeignKey(Member, on_delete=models.PROTECT, related_name='bookings')
    gym_class = models.ForeignKey(GymClass, on_delete=models.PROTECT, related_name='bookings')

    # Session occurrence
    session_date = models.DateField()
    session_start_time = models.TimeField()

    booking_type = models.CharField(max_length=20, choices=BookingType.choices, default=BookingType.DROP_IN)
    channel = models.CharField(max_length=10, choices=BookingChannel.choices, default=BookingChannel.KIOSK)

    # Status tracking
    status = models.CharField(max_length=20, choices=BookingStatus.choices, default=BookingStatus.CONFIRMED)
    payment_status = models.CharField(max_length=20, choices=BookingPaymentStatus.choices,
                                      default=BookingPaymentStatus.PENDING)
    amount = models.DecimalField(max_digits=8, decimal_places=2,
                                 help_text="Drop-in price of the class when the booking was made")
    payment_intent_id = models.CharField(max_length=255, blank=True)
    payment_event_at = models.DateTimeField(null=True, blank=True,
                                            help_text="Creation time of the last payment event applied")
    cash_requested_at = models.DateTimeField(null=True, blank=True,
                                             help_text="Set while the member is paying cash at the desk")
    checked_in_at = models.DateTimeField(null=True, blank=True)

    # Cancellation
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.member} - {self.gym_class.name} on {self.session_date}"

    @property
    def is_settled(self):
        return self.payment_status in SETTLED_PAYMENT_STATUSES

    @property
    def can_check_in(self):
        return self.status == BookingStatus.CONFIRMED and self.is_settled

    def can_transition_to(self, status):
        return status == self.status or status in ALLOWED_TRANSITIONS[BookingStatus(self.status)]

    def transition_to(self, status):
        """Move to a new status, raising InvalidTransitionError if the graph forbids it."""
        status = BookingStatus(status)
        if not self.can_transition_to(status):
            raise InvalidTransitionError(
                f"Booking {self.pk} cannot move from {self.status} to {status.value}"
            )
        self.status = status

    def mark_attended(self, now):
        """Check the member in. Only confirmed and paid (or waived) bookings qualify."""
        if self.status != BookingStatus.CONFIRMED:
            raise InvalidTransitionError(f"Booking {self.pk} is {self.status}, only confirmed bookings can be checked in")
        if not self.is_settled:
            raise InvalidTransitionError(f"Booking {self.pk} has not been paid")
        self.transition_to(BookingStatus.ATTENDED)
        if not self.checked_in_at:
            self.checked_in_at = now

    def cancel(self, now, reason=''):
        self.transition_to(BookingStatus.CANCELLED)
        self.cancelled_at = now
        self.cancellation_reason = reason

    class Meta:
        ordering = ['-session_date', 'session_start_time']
        indexes = [
            models.Index(fields=['gym_class', 'session_date', 'session_start_time'], name='booking_slot_idx'),
            models.Index(fields=['session_date'], name='booking_session_date_idx'),
        ]

"""
Store handle passed to the lifecycle manager.

Thin wrapper over the ORM so the manager never touches model managers
directly and tests can swap the store when they need to.
"""
from django.db import transaction

from members.models import Member
from payments.models import Payment
from schedule.models import GymClass
from .models import Booking, BookingStatus, BookingPaymentStatus


class BookingStore:
    """Reads and writes Member, GymClass, Booking and Payment rows."""

    def atomic(self):
        return transaction.atomic()

    # Members & classes
    def get_member(self, member_id):
        return Member.objects.filter(pk=member_id).first()

    def get_class(self, class_id):
        return GymClass.objects.filter(pk=class_id).first()

    # Bookings
    def get_booking(self, booking_id):
        return (Booking.objects
                .select_related('member', 'gym_class')
                .filter(pk=booking_id)
                .first())

    def count_active_bookings(self, gym_class, session_date, start_time, exclude_id=None):
        """Non-cancelled bookings holding a place in one session."""
        queryset = Booking.objects.filter(
            gym_class=gym_class,
            session_date=session_date,
            session_start_time=start_time,
        ).exclude(status=BookingStatus.CANCELLED)
        if exclude_id is not None:
            queryset = queryset.exclude(pk=exclude_id)
        return queryset.count()

    def create_booking(self, **fields):
        return Booking.objects.create(**fields)

    def save_booking(self, booking, fields):
        booking.save(update_fields=list(fields) + ['updated_at'])

    def stalled_cash_booking_ids(self, cutoff):
        return list(Booking.objects.filter(
            status=BookingStatus.CONFIRMED,
            payment_status=BookingPaymentStatus.PENDING,
            cash_requested_at__lt=cutoff,
        ).values_list('pk', flat=True))

    def expire_cash_booking(self, booking_id, cutoff, now, reason):
        """
        Cancel a booking only if it is still waiting for cash.

        The filter is re-evaluated by the UPDATE itself, so a cash confirmation
        committed in the meantime makes this a no-op. Returns the row count.
        """
        return Booking.objects.filter(
            pk=booking_id,
            status=BookingStatus.CONFIRMED,
            payment_status=BookingPaymentStatus.PENDING,
            cash_requested_at__lt=cutoff,
        ).update(
            status=BookingStatus.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason,
            cash_requested_at=None,
            updated_at=now,
        )

    # Payments
    def payment_exists(self, transaction_id):
        return Payment.objects.filter(provider_transaction_id=transaction_id).exists()

    def get_payment_by_transaction(self, transaction_id):
        return (Payment.objects
                .select_related('booking', 'member')
                .filter(provider_transaction_id=transaction_id)
                .first())

    def create_payment(self, **fields):
        return Payment.objects.create(**fields)

    def save_payment(self, payment, fields):
        payment.save(update_fields=list(fields) + ['updated_at'])

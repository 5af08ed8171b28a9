"""
Booking Lifecycle Manager.

Creates bookings and moves booking and payment records through their states
in response to the kiosk (payment intents, cash requests), Stripe webhook
events and staff actions at the desk. Collaborators are passed in:

    store     -- BookingStore, the relational store handle
    gateway   -- StripeGateway, creates intents and verifies webhook events
    notifier  -- SignalNotifier, publishes RecordChange after commit
"""
import logging
from datetime import timedelta
from enum import Enum

from django.utils import timezone

from gymdesk.exceptions import (
    AlreadyPaidError, CapacityExceededError, InvalidTransitionError,
    MemberNotActiveError, NotFoundError, SessionDateError,
)
from payments.events import EventType
from payments.models import PaymentMethod, PaymentStatus
from .models import BookingChannel, BookingPaymentStatus, BookingStatus, BookingType
from .notifications import RecordChange

logger = logging.getLogger(__name__)


class EventOutcome(str, Enum):
    APPLIED = 'applied'
    DUPLICATE = 'duplicate'
    STALE = 'stale'
    IGNORED = 'ignored'
    NO_BOOKING = 'no_booking'
    NO_PAYMENT = 'no_payment'
    CLASS_FULL = 'class_full'


class BookingLifecycleManager:

    def __init__(self, store, gateway, notifier, currency='gbp',
                 cash_timeout=timedelta(minutes=5), clock=timezone.now):
        self.store = store
        self.gateway = gateway
        self.notifier = notifier
        self.currency = currency
        self.cash_timeout = cash_timeout
        self.clock = clock

    # ------------------------------------------------------------------
    # Booking creation
    # ------------------------------------------------------------------

    def create_booking(self, member_id, class_id, session_date,
                       booking_type=BookingType.DROP_IN, channel=BookingChannel.KIOSK):
        """
        Book a member into one occurrence of a class.

        The capacity check and the insert are not atomic: two requests racing
        for the last place can both succeed. Staff correct the rare overbook.
        """
        booking_type = BookingType(booking_type)
        channel = BookingChannel(channel)

        member = self.store.get_member(member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found")

        gym_class = self.store.get_class(class_id)
        if gym_class is None or not gym_class.is_active:
            raise NotFoundError(f"Class {class_id} not found")

        if not member.is_active:
            raise MemberNotActiveError(f"{member} is {member.membership_status}")

        if not gym_class.occurs_on(session_date):
            raise SessionDateError(
                f"{gym_class.name} runs on {gym_class.get_day_of_week_display()}, not {session_date:%A}"
            )

        taken = self.store.count_active_bookings(gym_class, session_date, gym_class.start_time)
        if taken >= gym_class.max_capacity:
            logger.info(f"{gym_class.name} on {session_date} is full ({taken}/{gym_class.max_capacity})")
            raise CapacityExceededError(f"{gym_class.name} on {session_date} is full")

        if booking_type == BookingType.DROP_IN:
            payment_status = BookingPaymentStatus.PENDING
        else:
            payment_status = BookingPaymentStatus.WAIVED

        with self.store.atomic():
            booking = self.store.create_booking(
                member=member,
                gym_class=gym_class,
                session_date=session_date,
                session_start_time=gym_class.start_time,
                booking_type=booking_type,
                channel=channel,
                status=BookingStatus.CONFIRMED,
                payment_status=payment_status,
                amount=gym_class.drop_in_price,
            )
            self._publish_booking(booking, 'insert')

        logger.info(f"Booking {booking.pk}: {member} into {gym_class.name} on {session_date} via {channel.value}")
        return booking

    # ------------------------------------------------------------------
    # Card payments
    # ------------------------------------------------------------------

    def issue_payment_intent(self, booking_id):
        """Create a Stripe PaymentIntent for the booking and return its client secret."""
        booking = self._get_booking(booking_id)

        if booking.is_settled:
            raise AlreadyPaidError(f"Booking {booking.pk} is already {booking.payment_status}")
        if booking.payment_status == BookingPaymentStatus.REFUNDED:
            raise InvalidTransitionError(f"Booking {booking.pk} was refunded")
        self._check_place(booking)

        intent = self.gateway.create_payment_intent(
            amount=booking.amount,
            currency=self.currency,
            metadata={
                'booking_id': booking.pk,
                'member_id': booking.member_id,
                'class_id': booking.gym_class_id,
                'session_date': booking.session_date.isoformat(),
            },
        )

        with self.store.atomic():
            booking.payment_intent_id = intent.id
            self.store.save_booking(booking, ['payment_intent_id'])
            self._publish_booking(booking, 'update')

        return intent.client_secret

    def receive_payment_event(self, payload, signature):
        """Verify a raw webhook delivery and apply it. Raises InvalidSignatureError."""
        event = self.gateway.construct_event(payload, signature)
        return self.handle_event(event)

    def handle_event(self, event):
        """Apply an already verified PaymentEvent. Each event is an idempotent state-set."""
        handlers = {
            EventType.PAYMENT_SUCCEEDED: self._on_payment_succeeded,
            EventType.PAYMENT_FAILED: self._on_payment_failed,
            EventType.CHARGE_REFUNDED: self._on_charge_refunded,
        }
        handler = handlers.get(event.type)
        if handler is None:
            logger.info(f"Ignoring unhandled payment event {event.raw_type} ({event.id})")
            return EventOutcome.IGNORED

        with self.store.atomic():
            outcome = handler(event)

        logger.info(f"Payment event {event.id} ({event.raw_type}): {outcome.value}")
        return outcome

    def _on_payment_succeeded(self, event):
        booking = self._booking_for_event(event)
        if booking is None:
            return EventOutcome.NO_BOOKING

        if not event.transaction_id:
            logger.warning(f"Payment event {event.id} carries no PaymentIntent id")
            return EventOutcome.IGNORED

        if self.store.payment_exists(event.transaction_id):
            return EventOutcome.DUPLICATE

        if self._is_stale(booking, event) or booking.payment_status == BookingPaymentStatus.REFUNDED:
            logger.warning(f"Discarding stale success {event.id} for booking {booking.pk} ({booking.payment_status})")
            return EventOutcome.STALE

        if booking.is_settled:
            # Money was taken twice; keep the record off the booking so staff can refund it
            logger.warning(f"Booking {booking.pk} already {booking.payment_status}, {event.transaction_id} needs a refund")
            self._record_unlinked_payment(booking, event, f"Second payment for booking {booking.pk}, refund due")
            return EventOutcome.DUPLICATE

        if self._place_taken(booking):
            logger.warning(f"Booking {booking.pk} lost its place, {event.transaction_id} needs a refund")
            self._record_unlinked_payment(
                booking, event, f"Payment for cancelled booking {booking.pk}, class full, refund due",
            )
            return EventOutcome.CLASS_FULL

        booking.payment_status = BookingPaymentStatus.PAID
        if booking.status != BookingStatus.ATTENDED and booking.can_transition_to(BookingStatus.CONFIRMED):
            booking.transition_to(BookingStatus.CONFIRMED)
            booking.cancelled_at = None
            booking.cancellation_reason = ''
        booking.payment_event_at = event.created
        booking.cash_requested_at = None
        if not booking.payment_intent_id:
            booking.payment_intent_id = event.transaction_id
        self.store.save_booking(booking, [
            'payment_status', 'status', 'cancelled_at', 'cancellation_reason',
            'payment_event_at', 'cash_requested_at', 'payment_intent_id',
        ])

        payment = self.store.create_payment(
            member=booking.member,
            booking=booking,
            amount=event.amount_received or booking.amount,
            currency=event.currency or self.currency,
            method=PaymentMethod.CARD,
            provider_transaction_id=event.transaction_id,
            provider_status=event.data.get('status', 'succeeded'),
            status=PaymentStatus.COMPLETED,
        )

        self._publish_booking(booking, 'update')
        self._publish_payment(payment, 'insert')
        return EventOutcome.APPLIED

    def _on_payment_failed(self, event):
        booking = self._booking_for_event(event)
        if booking is None:
            return EventOutcome.NO_BOOKING

        superseded = (booking.payment_intent_id and event.transaction_id
                      and booking.payment_intent_id != event.transaction_id)
        if (self._is_stale(booking, event) or superseded or booking.is_settled
                or booking.payment_status == BookingPaymentStatus.REFUNDED
                or not booking.can_transition_to(BookingStatus.CANCELLED)):
            logger.warning(f"Discarding stale failure {event.id} for booking {booking.pk}")
            return EventOutcome.STALE

        booking.payment_status = BookingPaymentStatus.PENDING
        booking.cancel(self.clock(), reason='Card payment failed')
        booking.payment_event_at = event.created
        self.store.save_booking(booking, [
            'payment_status', 'status', 'cancelled_at', 'cancellation_reason', 'payment_event_at',
        ])

        self._publish_booking(booking, 'update')
        return EventOutcome.APPLIED

    def _on_charge_refunded(self, event):
        payment = None
        if event.transaction_id:
            payment = self.store.get_payment_by_transaction(event.transaction_id)
        if payment is None:
            # Refund for a charge we never recorded: nothing to update
            logger.warning(f"Refund {event.id} for untracked charge {event.data.get('id')}")
            return EventOutcome.NO_PAYMENT

        if payment.status == PaymentStatus.REFUNDED:
            return EventOutcome.DUPLICATE

        payment.status = PaymentStatus.REFUNDED
        payment.provider_status = 'refunded'
        payment.refunded_at = event.created
        payment.refund_amount = event.amount_refunded or payment.amount
        payment.refund_reference = event.data.get('id', '')
        self.store.save_payment(payment, [
            'status', 'provider_status', 'refunded_at', 'refund_amount', 'refund_reference',
        ])
        self._publish_payment(payment, 'update')

        booking = payment.booking
        if booking is not None:
            booking.payment_status = BookingPaymentStatus.REFUNDED
            if booking.can_transition_to(BookingStatus.CANCELLED):
                booking.cancel(self.clock(), reason='Payment refunded')
            else:
                logger.warning(f"Booking {booking.pk} refunded after it was {booking.status}; status kept")
            if not booking.payment_event_at or booking.payment_event_at < event.created:
                booking.payment_event_at = event.created
            self.store.save_booking(booking, [
                'payment_status', 'status', 'cancelled_at', 'cancellation_reason', 'payment_event_at',
            ])
            self._publish_booking(booking, 'update')

        return EventOutcome.APPLIED

    # ------------------------------------------------------------------
    # Cash at the desk
    # ------------------------------------------------------------------

    def request_cash_payment(self, booking_id):
        """Kiosk: member will pay cash at the desk. Starts the cash timeout."""
        booking = self._get_booking(booking_id)

        if booking.is_settled:
            raise AlreadyPaidError(f"Booking {booking.pk} is already {booking.payment_status}")
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransitionError(f"Booking {booking.pk} is {booking.status}")

        with self.store.atomic():
            booking.cash_requested_at = self.clock()
            self.store.save_booking(booking, ['cash_requested_at'])
            self._publish_booking(booking, 'update')

        return booking

    def confirm_cash_payment(self, booking_id, staff_id):
        """
        Staff took cash for the booking.

        Wins over the cash timeout: a booking the timeout already cancelled is
        reinstated, since staff holding the money is authoritative.
        """
        with self.store.atomic():
            booking = self._get_booking(booking_id)

            if booking.is_settled:
                raise AlreadyPaidError(f"Booking {booking.pk} is already {booking.payment_status}")
            if booking.payment_status == BookingPaymentStatus.REFUNDED:
                raise InvalidTransitionError(f"Booking {booking.pk} was refunded")
            self._check_place(booking)

            now = self.clock()
            booking.transition_to(BookingStatus.CONFIRMED)
            booking.payment_status = BookingPaymentStatus.PAID
            booking.checked_in_at = now
            booking.cash_requested_at = None
            booking.cancelled_at = None
            booking.cancellation_reason = ''
            self.store.save_booking(booking, [
                'status', 'payment_status', 'checked_in_at', 'cash_requested_at',
                'cancelled_at', 'cancellation_reason',
            ])

            payment = self.store.create_payment(
                member=booking.member,
                booking=booking,
                amount=booking.amount,
                currency=self.currency,
                method=PaymentMethod.CASH,
                status=PaymentStatus.COMPLETED,
                notes=f"Cash received by {staff_id}",
            )

            self._publish_booking(booking, 'update')
            self._publish_payment(payment, 'insert')

        logger.info(f"Booking {booking.pk}: £{booking.amount} cash confirmed by {staff_id}")
        return booking

    def expire_stalled_cash_bookings(self, now=None):
        """Cancel bookings that waited longer than the cash timeout. Returns the count."""
        now = now or self.clock()
        cutoff = now - self.cash_timeout
        expired = 0

        for booking_id in self.store.stalled_cash_booking_ids(cutoff):
            with self.store.atomic():
                if not self.store.expire_cash_booking(booking_id, cutoff, now, reason='Cash payment not received'):
                    continue
                booking = self.store.get_booking(booking_id)
                self._publish_booking(booking, 'update')
            expired += 1
            logger.info(f"Booking {booking_id}: cash not received within {self.cash_timeout}, cancelled")

        return expired

    # ------------------------------------------------------------------
    # Attendance
    # ------------------------------------------------------------------

    def mark_attended(self, booking_id):
        with self.store.atomic():
            booking = self._get_booking(booking_id)
            booking.mark_attended(self.clock())
            self.store.save_booking(booking, ['status', 'checked_in_at'])
            self._publish_booking(booking, 'update')
        return booking

    def mark_no_show(self, booking_id):
        with self.store.atomic():
            booking = self._get_booking(booking_id)
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidTransitionError(f"Booking {booking.pk} is {booking.status}")
            booking.transition_to(BookingStatus.NO_SHOW)
            self.store.save_booking(booking, ['status'])
            self._publish_booking(booking, 'update')
        return booking

    def cancel_booking(self, booking_id, reason=''):
        with self.store.atomic():
            booking = self._get_booking(booking_id)
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidTransitionError(f"Booking {booking.pk} is {booking.status}")
            booking.cancel(self.clock(), reason=reason)
            booking.cash_requested_at = None
            self.store.save_booking(booking, ['status', 'cancelled_at', 'cancellation_reason', 'cash_requested_at'])
            self._publish_booking(booking, 'update')
        return booking

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_booking(self, booking_id):
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _booking_for_event(self, event):
        booking_id = event.booking_id
        if booking_id is None:
            logger.info(f"Payment event {event.id} has no booking metadata")
            return None
        booking = self.store.get_booking(booking_id)
        if booking is None:
            logger.warning(f"Payment event {event.id} names unknown booking {booking_id}")
        return booking

    def _place_taken(self, booking):
        """True if a cancelled booking's place has since gone to someone else."""
        if booking.status != BookingStatus.CANCELLED:
            return False
        taken = self.store.count_active_bookings(
            booking.gym_class, booking.session_date, booking.session_start_time, exclude_id=booking.pk,
        )
        return taken >= booking.gym_class.max_capacity

    def _check_place(self, booking):
        if self._place_taken(booking):
            raise CapacityExceededError(
                f"{booking.gym_class.name} on {booking.session_date} filled up after booking {booking.pk} was cancelled"
            )

    def _record_unlinked_payment(self, booking, event, note):
        """Keep money taken for a booking we cannot honour, off the booking, for staff to refund."""
        payment = self.store.create_payment(
            member=booking.member,
            booking=None,
            amount=event.amount_received or booking.amount,
            currency=event.currency or self.currency,
            method=PaymentMethod.CARD,
            provider_transaction_id=event.transaction_id,
            provider_status=event.data.get('status', 'succeeded'),
            status=PaymentStatus.COMPLETED,
            notes=note,
        )
        self._publish_payment(payment, 'insert')
        return payment

    def _is_stale(self, booking, event):
        return booking.payment_event_at is not None and event.created < booking.payment_event_at

    def _publish_booking(self, booking, action):
        self.notifier.publish(RecordChange(
            table='booking',
            action=action,
            record_id=booking.pk,
            session_date=booking.session_date,
            fields={
                'status': str(booking.status),
                'payment_status': str(booking.payment_status),
                'checked_in_at': booking.checked_in_at.isoformat() if booking.checked_in_at else None,
            },
        ))

    def _publish_payment(self, payment, action):
        self.notifier.publish(RecordChange(
            table='payment',
            action=action,
            record_id=payment.pk,
            session_date=payment.booking.session_date if payment.booking_id else None,
            fields={
                'status': str(payment.status),
                'method': str(payment.method),
                'amount': str(payment.amount),
            },
        ))

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bookings.lifecycle import EventOutcome
from bookings.models import BookingPaymentStatus, BookingStatus
from gymdesk.exceptions import CapacityExceededError, InvalidSignatureError
from payments.events import EventType, PaymentEvent
from payments.models import Payment, PaymentMethod, PaymentStatus

from factories import charge, make_booking, make_class, payment_intent, sign, stripe_event

pytestmark = pytest.mark.django_db

T0 = 1792512000


def deliver(manager, event_type, obj, created=T0, event_id=None):
    payload = stripe_event(event_type, obj, created=created, event_id=event_id)
    return manager.receive_payment_event(payload, sign(payload))


@pytest.fixture
def booking(junior_boxing):
    return make_booking(junior_boxing, payment_intent_id='pi_1')


class TestSignature:

    def test_valid_signature_is_accepted(self, manager, booking):
        payload = stripe_event('payment_intent.succeeded', payment_intent('pi_1', booking.id))

        assert manager.receive_payment_event(payload.encode('utf-8'), sign(payload)) == EventOutcome.APPLIED

    def test_wrong_secret_is_rejected(self, manager, booking):
        payload = stripe_event('payment_intent.succeeded', payment_intent('pi_1', booking.id))

        with pytest.raises(InvalidSignatureError):
            manager.receive_payment_event(payload, sign(payload, secret='whsec_attacker'))

        booking.refresh_from_db()
        assert booking.payment_status == BookingPaymentStatus.PENDING
        assert not Payment.objects.exists()

    def test_tampered_payload_is_rejected(self, manager, booking):
        payload = stripe_event('payment_intent.succeeded', payment_intent('pi_1', booking.id, amount=1))
        header = sign(payload)

        with pytest.raises(InvalidSignatureError):
            manager.receive_payment_event(payload.replace('"amount": 1,', '"amount": 1000,'), header)

    def test_missing_header_is_rejected(self, manager, booking):
        payload = stripe_event('payment_intent.succeeded', payment_intent('pi_1', booking.id))

        with pytest.raises(InvalidSignatureError):
            manager.receive_payment_event(payload, '')

    def test_expired_timestamp_is_rejected(self, manager, booking):
        payload = stripe_event('payment_intent.succeeded', payment_intent('pi_1', booking.id))

        with pytest.raises(InvalidSignatureError):
            manager.receive_payment_event(payload, sign(payload, timestamp=T0 - 86400 * 365))

    def test_body_that_is_not_utf8_is_rejected(self, manager):
        with pytest.raises(InvalidSignatureError):
            manager.receive_payment_event(b'\xff\xfe{}', 't=1,v1=abc')

    def test_signed_body_that_is_not_an_object_is_rejected(self, manager):
        payload = '[{"type": "payment_intent.succeeded"}]'

        with pytest.raises(InvalidSignatureError):
            manager.receive_payment_event(payload, sign(payload))

    def test_event_data_that_is_not_an_object_is_acknowledged(self, manager, booking):
        payload = json.dumps({'id': 'evt_odd', 'type': 'payment_intent.succeeded', 'created': T0, 'data': []})

        assert manager.receive_payment_event(payload, sign(payload)) == EventOutcome.NO_BOOKING
        assert not Payment.objects.exists()

    def test_missing_webhook_secret_fails_closed(self, manager, gateway, booking):
        gateway.webhook_secret = ''
        payload = stripe_event('payment_intent.succeeded', payment_intent('pi_1', booking.id))

        with pytest.raises(InvalidSignatureError):
            manager.receive_payment_event(payload, sign(payload))


class TestPaymentSucceeded:

    def test_marks_booking_paid_and_records_card_payment(self, manager, booking):
        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))

        assert outcome == EventOutcome.APPLIED
        booking.refresh_from_db()
        assert booking.payment_status == BookingPaymentStatus.PAID
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_event_at == datetime.fromtimestamp(T0, tz=timezone.utc)

        payment = Payment.objects.get()
        assert payment.booking == booking
        assert payment.member == booking.member
        assert payment.method == PaymentMethod.CARD
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.amount == Decimal('10.00')
        assert payment.provider_transaction_id == 'pi_1'

    def test_replayed_event_is_a_duplicate(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id), event_id='evt_a')

        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id), event_id='evt_a')

        assert outcome == EventOutcome.DUPLICATE
        assert Payment.objects.count() == 1

    def test_snake_case_metadata_is_accepted(self, manager, booking):
        intent = payment_intent('pi_1', metadata={'booking_id': str(booking.id)})

        assert deliver(manager, 'payment_intent.succeeded', intent) == EventOutcome.APPLIED

    def test_no_booking_metadata(self, manager, booking):
        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1'))

        assert outcome == EventOutcome.NO_BOOKING
        assert not Payment.objects.exists()

    def test_unknown_booking(self, manager):
        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_9', booking_id=999999))

        assert outcome == EventOutcome.NO_BOOKING

    def test_success_reinstates_booking_cancelled_by_failure(self, manager, booking):
        deliver(manager, 'payment_intent.payment_failed', payment_intent('pi_1', booking.id, status='requires_payment_method'))
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CANCELLED

        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id), created=T0 + 60)

        assert outcome == EventOutcome.APPLIED
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_status == BookingPaymentStatus.PAID
        assert booking.cancelled_at is None
        assert booking.cancellation_reason == ''

    def test_success_after_refund_is_stale(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))
        deliver(manager, 'charge.refunded', charge('ch_1', 'pi_1'), created=T0 + 120)

        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_2', booking.id), created=T0 + 60)

        assert outcome == EventOutcome.STALE
        booking.refresh_from_db()
        assert booking.payment_status == BookingPaymentStatus.REFUNDED
        assert not Payment.objects.filter(provider_transaction_id='pi_2').exists()

    def test_second_payment_for_settled_booking_is_kept_unlinked(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))

        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_2', booking.id), created=T0 + 30)

        assert outcome == EventOutcome.DUPLICATE
        extra = Payment.objects.get(provider_transaction_id='pi_2')
        assert extra.booking is None
        assert extra.member == booking.member
        assert 'refund due' in extra.notes
        assert booking.payments.count() == 1

    def test_success_for_cash_paid_booking_is_kept_unlinked(self, manager, booking):
        manager.confirm_cash_payment(booking.id, staff_id='S')

        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))

        assert outcome == EventOutcome.DUPLICATE
        assert Payment.objects.get(provider_transaction_id='pi_1').booking is None


class TestPaymentFailed:

    def test_failure_cancels_pending_booking(self, manager, booking):
        outcome = deliver(manager, 'payment_intent.payment_failed',
                          payment_intent('pi_1', booking.id, status='requires_payment_method'))

        assert outcome == EventOutcome.APPLIED
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CANCELLED
        assert booking.payment_status == BookingPaymentStatus.PENDING
        assert booking.cancellation_reason == 'Card payment failed'
        assert not Payment.objects.exists()

    def test_older_failure_after_success_is_stale(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))

        outcome = deliver(manager, 'payment_intent.payment_failed',
                          payment_intent('pi_1', booking.id, status='requires_payment_method'), created=T0 - 30)

        assert outcome == EventOutcome.STALE
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_status == BookingPaymentStatus.PAID

    def test_later_failure_never_unpays_a_paid_booking(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))

        outcome = deliver(manager, 'payment_intent.payment_failed',
                          payment_intent('pi_1', booking.id, status='requires_payment_method'), created=T0 + 30)

        assert outcome == EventOutcome.STALE
        booking.refresh_from_db()
        assert booking.payment_status == BookingPaymentStatus.PAID

    def test_failure_of_superseded_intent_is_discarded(self, manager, junior_boxing):
        booking = make_booking(junior_boxing, payment_intent_id='pi_2')

        outcome = deliver(manager, 'payment_intent.payment_failed',
                          payment_intent('pi_1', booking.id, status='requires_payment_method'))

        assert outcome == EventOutcome.STALE
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CONFIRMED


class TestChargeRefunded:

    def test_refund_marks_payment_and_booking(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))

        outcome = deliver(manager, 'charge.refunded', charge('ch_1', 'pi_1', amount_refunded=1000), created=T0 + 600)

        assert outcome == EventOutcome.APPLIED
        payment = Payment.objects.get()
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_amount == Decimal('10.00')
        assert payment.refund_reference == 'ch_1'
        assert payment.refunded_at == datetime.fromtimestamp(T0 + 600, tz=timezone.utc)
        booking.refresh_from_db()
        assert booking.payment_status == BookingPaymentStatus.REFUNDED
        assert booking.status == BookingStatus.CANCELLED

    def test_replayed_refund_is_a_duplicate(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))
        deliver(manager, 'charge.refunded', charge('ch_1', 'pi_1'), created=T0 + 600, event_id='evt_r')

        outcome = deliver(manager, 'charge.refunded', charge('ch_1', 'pi_1'), created=T0 + 600, event_id='evt_r')

        assert outcome == EventOutcome.DUPLICATE

    def test_refund_for_untracked_charge(self, manager, booking):
        outcome = deliver(manager, 'charge.refunded', charge('ch_x', 'pi_unknown'))

        assert outcome == EventOutcome.NO_PAYMENT
        booking.refresh_from_db()
        assert booking.payment_status == BookingPaymentStatus.PENDING

    def test_refund_after_attendance_keeps_attended(self, manager, booking):
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', booking.id))
        manager.mark_attended(booking.id)

        deliver(manager, 'charge.refunded', charge('ch_1', 'pi_1'), created=T0 + 600)

        booking.refresh_from_db()
        assert booking.status == BookingStatus.ATTENDED
        assert booking.payment_status == BookingPaymentStatus.REFUNDED


def test_unhandled_event_type_is_ignored(manager, booking):
    outcome = deliver(manager, 'customer.created', {'id': 'cus_1', 'object': 'customer'})

    assert outcome == EventOutcome.IGNORED


def test_event_parsing():
    event = PaymentEvent.from_payload({
        'id': 'evt_1',
        'type': 'charge.refunded',
        'created': T0,
        'data': {'object': charge('ch_1', 'pi_1', amount_refunded=550)},
    })

    assert event.type == EventType.CHARGE_REFUNDED
    assert event.transaction_id == 'pi_1'
    assert event.amount_refunded == Decimal('5.50')
    assert event.booking_id is None
    assert event.created.tzinfo is not None


class TestReinstatementRespectsCapacity:

    @pytest.fixture
    def one_place(self, db):
        return make_class(max_capacity=1)

    def cancel_by_failure(self, manager, booking):
        deliver(manager, 'payment_intent.payment_failed',
                payment_intent('pi_1', booking.id, status='requires_payment_method'))

    def test_new_intent_for_a_place_since_taken_is_refused(self, manager, gateway, one_place):
        first = make_booking(one_place, payment_intent_id='pi_1')
        self.cancel_by_failure(manager, first)
        make_booking(one_place)

        with pytest.raises(CapacityExceededError):
            manager.issue_payment_intent(first.id)
        assert gateway.intents == []

    def test_success_for_a_place_since_taken_is_kept_unlinked(self, manager, one_place):
        first = make_booking(one_place, payment_intent_id='pi_1')
        self.cancel_by_failure(manager, first)
        make_booking(one_place)

        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', first.id), created=T0 + 60)

        assert outcome == EventOutcome.CLASS_FULL
        first.refresh_from_db()
        assert first.status == BookingStatus.CANCELLED
        assert first.payment_status == BookingPaymentStatus.PENDING
        payment = Payment.objects.get(provider_transaction_id='pi_1')
        assert payment.booking is None
        assert 'refund due' in payment.notes
        assert manager.store.count_active_bookings(one_place, first.session_date, one_place.start_time) == 1

    def test_replayed_success_for_full_class_is_a_duplicate(self, manager, one_place):
        first = make_booking(one_place, payment_intent_id='pi_1')
        self.cancel_by_failure(manager, first)
        make_booking(one_place)
        deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', first.id), created=T0 + 60, event_id='evt_s')

        outcome = deliver(manager, 'payment_intent.succeeded', payment_intent('pi_1', first.id),
                          created=T0 + 60, event_id='evt_s')

        assert outcome == EventOutcome.DUPLICATE
        assert Payment.objects.count() == 1

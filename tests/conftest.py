from datetime import datetime, timedelta, timezone

import pytest

from bookings.lifecycle import BookingLifecycleManager
from bookings.store import BookingStore
from payments.gateway import PaymentIntentHandle, StripeGateway

from factories import WEBHOOK_SECRET, make_class, make_member


class FakeGateway(StripeGateway):
    """Real webhook verification, no network calls for PaymentIntents."""

    def __init__(self):
        super().__init__(secret_key='sk_test_fake', webhook_secret=WEBHOOK_SECRET)
        self.intents = []

    def create_payment_intent(self, amount, currency, metadata):
        intent_id = f'pi_test_{len(self.intents) + 1}'
        self.intents.append({'id': intent_id, 'amount': amount, 'currency': currency, 'metadata': metadata})
        return PaymentIntentHandle(id=intent_id, client_secret=f'{intent_id}_secret_xyz')


class RecordingNotifier:

    def __init__(self):
        self.changes = []

    def publish(self, change):
        self.changes.append(change)


class FrozenClock:

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 10, 20, 16, 30, tzinfo=timezone.utc))


@pytest.fixture
def manager(gateway, notifier, clock):
    return BookingLifecycleManager(
        store=BookingStore(),
        gateway=gateway,
        notifier=notifier,
        currency='gbp',
        cash_timeout=timedelta(minutes=5),
        clock=clock,
    )


@pytest.fixture
def junior_boxing(db):
    return make_class(name='Junior Boxing', max_capacity=20)


@pytest.fixture
def member(db):
    return make_member(first_name='Jamie', last_name='Reid')


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user(username='S', password='not-used', is_staff=True)

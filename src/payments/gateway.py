"""
Stripe gateway handed to the lifecycle manager.

Only this module holds the Stripe secret key. Callers get PaymentIntent ids
and client secrets back, never credentials.
"""
import json
import logging
from dataclasses import dataclass

import stripe
from django.conf import settings

from gymdesk.exceptions import InvalidSignatureError
from .events import PaymentEvent, to_minor_units

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('gymdesk.security')


@dataclass(frozen=True)
class PaymentIntentHandle:
    id: str
    client_secret: str


class StripeGateway:
    """Creates PaymentIntents and verifies webhook deliveries."""

    def __init__(self, secret_key, webhook_secret, tolerance=300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    @classmethod
    def from_settings(cls):
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        )

    def create_payment_intent(self, amount, currency, metadata):
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(amount),
            currency=currency,
            metadata={key: str(value) for key, value in metadata.items()},
            automatic_payment_methods={'enabled': True},
            api_key=self.secret_key,
        )
        logger.info(f"Created PaymentIntent {intent.id} for {metadata}")
        return PaymentIntentHandle(id=intent.id, client_secret=intent.client_secret)

    def construct_event(self, payload, signature):
        """
        Verify the Stripe-Signature header and decode the event.

        Fails closed: a missing secret, missing header, bad signature or an
        undecodable or non-object body all raise InvalidSignatureError.
        """
        if isinstance(payload, bytes):
            try:
                payload = payload.decode('utf-8')
            except UnicodeDecodeError:
                security_logger.warning("Webhook rejected: body is not UTF-8")
                raise InvalidSignatureError('Malformed event payload')

        if not self.webhook_secret:
            security_logger.error("Webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
            raise InvalidSignatureError('Webhook secret not configured')

        if not signature:
            security_logger.warning("Webhook rejected: missing Stripe-Signature header")
            raise InvalidSignatureError()

        try:
            stripe.WebhookSignature.verify_header(payload, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            security_logger.warning(f"Webhook rejected: invalid signature ({e})")
            raise InvalidSignatureError()

        try:
            body = json.loads(payload)
        except ValueError:
            security_logger.warning("Webhook rejected: signed payload is not valid JSON")
            raise InvalidSignatureError('Malformed event payload')

        if not isinstance(body, dict):
            security_logger.warning("Webhook rejected: signed payload is not a JSON object")
            raise InvalidSignatureError('Malformed event payload')

        return PaymentEvent.from_payload(body)

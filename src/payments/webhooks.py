"""
Stripe webhook endpoint.
"""
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from gymdesk.exceptions import InvalidSignatureError
from bookings.services import get_lifecycle_manager

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request):
    """
    Receive a signed Stripe event.

    Bad signatures get a 400 before anything is read from the database.
    Events we cannot act on (no booking metadata, untracked refunds, unknown
    types) are acknowledged with a 200 so Stripe stops redelivering them.
    Database errors propagate as a 500 and Stripe retries with backoff.
    """
    signature = request.META.get('HTTP_STRIPE_SIGNATURE', '')

    try:
        outcome = get_lifecycle_manager().receive_payment_event(request.body, signature)
    except InvalidSignatureError as e:
        return JsonResponse({'error': e.message}, status=400)

    return JsonResponse({'received': True, 'outcome': outcome.value})

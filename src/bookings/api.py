"""
REST API endpoints for kiosk and staff booking flows.

Unauthenticated requests are the kiosk channel. The kiosk may create and read
bookings, start a card payment or ask to pay cash. Everything else needs a
staff login.
"""
import logging

import stripe
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from django.utils import timezone
from django.utils.dateparse import parse_date

from gymdesk.exceptions import (
    AlreadyPaidError, BookingError, CapacityExceededError, InvalidTransitionError,
    MemberNotActiveError, NotFoundError, SessionDateError,
)
from .models import Booking, BookingChannel, BookingType
from .services import get_lifecycle_manager

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    CapacityExceededError: status.HTTP_409_CONFLICT,
    AlreadyPaidError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_400_BAD_REQUEST,
    SessionDateError: status.HTTP_400_BAD_REQUEST,
    MemberNotActiveError: status.HTTP_403_FORBIDDEN,
}


def error_response(exc):
    """Map a lifecycle error to a JSON error response."""
    code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return Response({'error': exc.message, 'code': type(exc).__name__}, status=code)


def parse_session_date(value):
    """YYYY-MM-DD to a date, or None for missing, malformed or impossible dates."""
    try:
        return parse_date(str(value or ''))
    except ValueError:
        return None


def parse_id(value):
    """Positive integer id from request data, or None."""
    try:
        value = int(str(value))
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def is_staff_request(request):
    return bool(request.user and request.user.is_authenticated and request.user.is_staff)


def booking_to_dict(booking):
    return {
        'id': booking.id,
        'member_id': booking.member_id,
        'member_name': booking.member.full_name,
        'class_id': booking.gym_class_id,
        'class_name': booking.gym_class.name,
        'session_date': str(booking.session_date),
        'session_start_time': booking.session_start_time.strftime('%H:%M'),
        'booking_type': booking.booking_type,
        'status': booking.status,
        'payment_status': booking.payment_status,
        'amount': str(booking.amount),
        'channel': booking.channel,
        'awaiting_cash': booking.cash_requested_at is not None,
        'checked_in_at': booking.checked_in_at.isoformat() if booking.checked_in_at else None,
        'created_at': booking.created_at.isoformat(),
    }


class BookingViewSet(viewsets.ViewSet):
    """API endpoint for bookings."""
    lookup_value_regex = r'\d+'
    kiosk_actions = ['list', 'retrieve', 'create', 'payment_intent', 'cash_request']

    def get_permissions(self):
        if self.action in self.kiosk_actions:
            return [AllowAny()]
        return [IsAdminUser()]

    def list(self, request):
        """Bookings for one session date (today by default)."""
        session_date = request.query_params.get('session_date')
        if session_date:
            session_date = parse_session_date(session_date)
            if session_date is None:
                return Response({'error': 'session_date must be YYYY-MM-DD'},
                                status=status.HTTP_400_BAD_REQUEST)
        else:
            session_date = timezone.localdate()

        queryset = Booking.objects.select_related('member', 'gym_class').filter(session_date=session_date)

        class_id = request.query_params.get('class_id')
        if class_id:
            class_id = parse_id(class_id)
            if class_id is None:
                return Response({'error': 'class_id must be a number'}, status=status.HTTP_400_BAD_REQUEST)
            queryset = queryset.filter(gym_class_id=class_id)

        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        return Response([booking_to_dict(b) for b in queryset.order_by('session_start_time', 'created_at')])

    def retrieve(self, request, pk=None):
        try:
            booking = Booking.objects.select_related('member', 'gym_class').get(pk=pk)
        except Booking.DoesNotExist:
            return Response({'error': 'Booking not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(booking_to_dict(booking))

    def create(self, request):
        """Book a member into a class session."""
        data = request.data

        session_date = parse_session_date(data.get('session_date'))
        member_id = parse_id(data.get('member_id'))
        class_id = parse_id(data.get('class_id'))
        if member_id is None or class_id is None or session_date is None:
            return Response({'error': 'member_id, class_id and session_date (YYYY-MM-DD) are required'},
                            status=status.HTTP_400_BAD_REQUEST)

        if is_staff_request(request):
            booking_type = data.get('booking_type', BookingType.DROP_IN)
            channel = BookingChannel.ADMIN
        else:
            # Free booking types are granted by staff only
            booking_type = BookingType.DROP_IN
            channel = BookingChannel.KIOSK

        if booking_type not in BookingType.values:
            return Response({'error': f"Unknown booking type {booking_type}"},
                            status=status.HTTP_400_BAD_REQUEST)

        try:
            booking = get_lifecycle_manager().create_booking(
                member_id=member_id,
                class_id=class_id,
                session_date=session_date,
                booking_type=booking_type,
                channel=channel,
            )
        except BookingError as e:
            return error_response(e)

        return Response(booking_to_dict(booking), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='payment-intent')
    def payment_intent(self, request, pk=None):
        """Start a card payment. Returns the Stripe client secret for the kiosk."""
        try:
            client_secret = get_lifecycle_manager().issue_payment_intent(pk)
        except BookingError as e:
            return error_response(e)
        except stripe.StripeError as e:
            logger.error(f"Stripe refused PaymentIntent for booking {pk}: {e}")
            return Response({'error': 'Card payments are unavailable, please pay at the desk'},
                            status=status.HTTP_502_BAD_GATEWAY)
        return Response({'booking_id': int(pk), 'client_secret': client_secret})

    @action(detail=True, methods=['post'], url_path='cash-request')
    def cash_request(self, request, pk=None):
        """Member will pay cash at the desk."""
        try:
            booking = get_lifecycle_manager().request_cash_payment(pk)
        except BookingError as e:
            return error_response(e)
        return Response(booking_to_dict(booking))

    @action(detail=True, methods=['post'], url_path='confirm-cash')
    def confirm_cash(self, request, pk=None):
        """Staff received cash for the booking."""
        try:
            booking = get_lifecycle_manager().confirm_cash_payment(pk, staff_id=request.user.get_username())
        except BookingError as e:
            return error_response(e)
        return Response(booking_to_dict(booking))

    @action(detail=True, methods=['post'], url_path='check-in')
    def check_in(self, request, pk=None):
        try:
            booking = get_lifecycle_manager().mark_attended(pk)
        except BookingError as e:
            return error_response(e)
        return Response(booking_to_dict(booking))

    @action(detail=True, methods=['post'], url_path='no-show')
    def no_show(self, request, pk=None):
        try:
            booking = get_lifecycle_manager().mark_no_show(pk)
        except BookingError as e:
            return error_response(e)
        return Response(booking_to_dict(booking))

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        try:
            booking = get_lifecycle_manager().cancel_booking(pk, reason=request.data.get('reason', ''))
        except BookingError as e:
            return error_response(e)
        return Response(booking_to_dict(booking))

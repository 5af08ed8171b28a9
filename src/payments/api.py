"""
REST API endpoints for payment records (staff only).
"""
from rest_framework import viewsets, status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from bookings.api import parse_id, parse_session_date
from .models import Payment


def payment_to_dict(payment):
    return {
        'id': payment.id,
        'member_id': payment.member_id,
        'member_name': payment.member.full_name,
        'booking_id': payment.booking_id,
        'amount': str(payment.amount),
        'currency': payment.currency,
        'method': payment.method,
        'status': payment.status,
        'provider_transaction_id': payment.provider_transaction_id,
        'refund_amount': str(payment.refund_amount) if payment.refund_amount is not None else None,
        'refunded_at': payment.refunded_at.isoformat() if payment.refunded_at else None,
        'notes': payment.notes,
        'created_at': payment.created_at.isoformat(),
    }


class PaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """API endpoint for payments. The kiosk channel never sees these."""
    permission_classes = [IsAdminUser]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        return Payment.objects.select_related('member')

    def list(self, request):
        queryset = self.get_queryset()

        for param in ['booking_id', 'member_id']:
            value = request.query_params.get(param)
            if value:
                if parse_id(value) is None:
                    return Response({'error': f"{param} must be a number"}, status=status.HTTP_400_BAD_REQUEST)
                queryset = queryset.filter(**{param: parse_id(value)})

        created_on = request.query_params.get('date')
        if created_on:
            created_on = parse_session_date(created_on)
            if created_on is None:
                return Response({'error': 'date must be YYYY-MM-DD'}, status=status.HTTP_400_BAD_REQUEST)
            queryset = queryset.filter(created_at__date=created_on)

        return Response([payment_to_dict(p) for p in queryset])

    def retrieve(self, request, pk=None):
        return Response(payment_to_dict(self.get_object()))

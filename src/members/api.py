"""
REST API endpoints for member registration and lookup.
"""
from django.core.exceptions import ValidationError
from django.db.models import Q
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from gymdesk.exceptions import NotFoundError
from .models import Member
from .services import register_member, set_membership_status


def member_to_dict(member, include_private=False):
    data = {
        'id': member.id,
        'first_name': member.first_name,
        'last_name': member.last_name,
        'age_group': member.age_group,
        'membership_status': member.membership_status,
    }
    if include_private:
        data.update({
            'email': member.email,
            'phone': member.phone,
            'date_of_birth': str(member.date_of_birth) if member.date_of_birth else None,
            'emergency_contact_name': member.emergency_contact_name,
            'emergency_contact_phone': member.emergency_contact_phone,
            'medical_notes': member.medical_notes,
        })
    return data


class MemberViewSet(viewsets.ViewSet):
    """API endpoint for members. The kiosk sees names and status only."""
    lookup_value_regex = r'\d+'

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'create']:
            return [AllowAny()]
        return [IsAdminUser()]

    def _is_staff(self, request):
        return bool(request.user and request.user.is_authenticated and request.user.is_staff)

    def list(self, request):
        """Search members by name, email or phone (`q`)."""
        queryset = Member.objects.all()

        query = request.query_params.get('q', '').strip()
        if query:
            queryset = queryset.filter(
                Q(first_name__icontains=query) |
                Q(last_name__icontains=query) |
                Q(email__iexact=query) |
                Q(phone=query)
            )
        elif not self._is_staff(request):
            # Kiosk must search; it never lists the whole membership
            return Response([])

        include_private = self._is_staff(request)
        return Response([member_to_dict(m, include_private) for m in queryset[:50]])

    def retrieve(self, request, pk=None):
        try:
            member = Member.objects.get(pk=pk)
        except Member.DoesNotExist:
            return Response({'error': 'Member not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(member_to_dict(member, self._is_staff(request)))

    def create(self, request):
        """Register a new member at the kiosk or from the back office."""
        try:
            member = register_member(**dict(request.data.items()))
        except ValidationError as e:
            return Response({'error': e.message_dict}, status=status.HTTP_400_BAD_REQUEST)
        except ValueError as e:
            return Response({'error': {'date_of_birth': [str(e)]}}, status=status.HTTP_400_BAD_REQUEST)
        return Response(member_to_dict(member, include_private=True), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        """Deactivate, suspend or reactivate a member."""
        try:
            member = set_membership_status(pk, request.data.get('membership_status', ''))
        except NotFoundError as e:
            return Response({'error': e.message}, status=status.HTTP_404_NOT_FOUND)
        except ValueError:
            return Response({'error': 'membership_status must be active, inactive or suspended'},
                            status=status.HTTP_400_BAD_REQUEST)
        return Response(member_to_dict(member, include_private=True))

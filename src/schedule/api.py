"""
REST API endpoints for the class timetable.
"""
from rest_framework import viewsets, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from django.utils.dateparse import parse_date

from .models import GymClass


class GymClassViewSet(viewsets.ReadOnlyModelViewSet):
    """API endpoint for active classes. Pass `session_date` to get spots remaining."""
    permission_classes = [AllowAny]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        return GymClass.objects.filter(is_active=True)

    def list(self, request):
        queryset = self.get_queryset()

        session_date = request.query_params.get('session_date')
        if session_date:
            try:
                session_date = parse_date(session_date)
            except ValueError:
                session_date = None
            if session_date is None:
                return Response({'error': 'session_date must be YYYY-MM-DD'},
                                status=status.HTTP_400_BAD_REQUEST)
            queryset = queryset.filter(day_of_week=session_date.isoweekday() % 7)

        age_group = request.query_params.get('age_group')
        if age_group:
            queryset = queryset.filter(age_group=age_group)

        return Response([self._to_dict(c, session_date) for c in queryset])

    def retrieve(self, request, pk=None):
        return Response(self._to_dict(self.get_object()))

    def _to_dict(self, gym_class, session_date=None):
        data = {
            'id': gym_class.id,
            'name': gym_class.name,
            'slug': gym_class.slug,
            'age_group': gym_class.age_group,
            'day_of_week': gym_class.day_of_week,
            'start_time': gym_class.start_time.strftime('%H:%M'),
            'end_time': gym_class.end_time.strftime('%H:%M'),
            'duration_minutes': gym_class.duration_minutes,
            'max_capacity': gym_class.max_capacity,
            'drop_in_price': str(gym_class.drop_in_price),
        }
        if session_date:
            taken = gym_class.bookings.filter(
                session_date=session_date,
                session_start_time=gym_class.start_time,
            ).exclude(status='cancelled').count()
            data['session_date'] = str(session_date)
            data['spots_remaining'] = max(0, gym_class.max_capacity - taken)
        return data

"""
URL configuration for the Gym Desk project.
"""
from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    # Grappelli admin (must be before admin)
    path('grappelli/', include('grappelli.urls')),

    # Staff back office
    path('admin/', admin.site.urls),

    # API endpoints
    path('api/members/', include('members.urls')),
    path('api/classes/', include('schedule.urls')),
    path('api/bookings/', include('bookings.urls')),
    path('api/payments/', include('payments.urls')),
]

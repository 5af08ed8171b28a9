from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .api import GymClassViewSet

app_name = 'schedule'

router = SimpleRouter()
router.register(r'', GymClassViewSet, basename='gymclass')

urlpatterns = [
    path('', include(router.urls)),
]

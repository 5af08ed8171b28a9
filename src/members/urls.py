from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .api import MemberViewSet

app_name = 'members'

router = SimpleRouter()
router.register(r'', MemberViewSet, basename='member')

urlpatterns = [
    path('', include(router.urls)),
]

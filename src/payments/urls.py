from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .api import PaymentViewSet
from .webhooks import stripe_webhook

app_name = 'payments'

router = SimpleRouter()
router.register(r'', PaymentViewSet, basename='payment')

urlpatterns = [
    path('webhook/', stripe_webhook, name='stripe_webhook'),
    path('', include(router.urls)),
]

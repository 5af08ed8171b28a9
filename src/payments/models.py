from django.db import models

from members.models import Member
from bookings.models import Booking


class PaymentMethod(models.TextChoices):
    CARD = 'card', 'Card'
    CASH = 'cash', 'Cash'
    BANK_TRANSFER = 'bank_transfer', 'Bank Transfer'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'
    REFUNDED = 'refunded', 'Refunded'


class Payment(models.Model):
    """Payment records. Card rows come from Stripe events, cash rows from the desk."""
    member = models.ForeignKey(Member, on_delete=models.PROTECT, related_name='payments')
    booking = models.ForeignKey(Booking, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default='gbp')
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)

    # Stripe
    provider_transaction_id = models.CharField(max_length=255, unique=True, null=True, blank=True,
                                               help_text="Stripe PaymentIntent id")
    provider_status = models.CharField(max_length=50, blank=True)

    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    # Refunds
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    refund_reference = models.CharField(max_length=255, blank=True)

    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"£{self.amount} {self.get_method_display()} - {self.member} ({self.status})"

    class Meta:
        ordering = ['-created_at']

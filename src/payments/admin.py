from django.contrib import admin
from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['member', 'booking', 'amount', 'method', 'status', 'provider_transaction_id', 'created_at']
    list_filter = ['method', 'status', 'created_at']
    search_fields = ['member__first_name', 'member__last_name', 'member__email', 'provider_transaction_id']
    raw_id_fields = ['member', 'booking']
    readonly_fields = ['provider_transaction_id', 'provider_status', 'refunded_at', 'refund_amount',
                       'refund_reference', 'created_at', 'updated_at']
    date_hierarchy = 'created_at'

    def has_delete_permission(self, request, obj=None):
        return False

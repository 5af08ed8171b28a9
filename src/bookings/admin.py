from django.contrib import admin
from gymdesk.exceptions import BookingError
from .models import Booking
from .services import get_lifecycle_manager


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['member', 'gym_class', 'session_date', 'session_start_time', 'booking_type',
                    'status', 'payment_status', 'amount', 'channel', 'checked_in_at']
    list_filter = ['status', 'payment_status', 'booking_type', 'channel', 'session_date']
    search_fields = ['member__first_name', 'member__last_name', 'member__email', 'gym_class__name']
    # Slot and status changes go through the booking API and the lifecycle actions below
    readonly_fields = ['member', 'gym_class', 'session_date', 'session_start_time', 'booking_type', 'channel',
                       'status', 'payment_status', 'amount', 'payment_intent_id', 'payment_event_at',
                       'cash_requested_at', 'checked_in_at', 'cancelled_at', 'created_at', 'updated_at']
    date_hierarchy = 'session_date'

    fieldsets = (
        (None, {
            'fields': ('member', 'gym_class', 'session_date', 'session_start_time', 'booking_type', 'channel')
        }),
        ('Status', {
            'fields': ('status', 'payment_status', 'amount', 'checked_in_at')
        }),
        ('Payment', {
            'fields': ('payment_intent_id', 'payment_event_at', 'cash_requested_at'),
            'classes': ('collapse',),
        }),
        ('Cancellation', {
            'fields': ('cancelled_at', 'cancellation_reason'),
            'classes': ('collapse',),
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    actions = ['confirm_cash', 'check_in', 'mark_no_show']

    def has_add_permission(self, request):
        # Bookings are made through the booking API, which checks capacity
        return False

    def has_delete_permission(self, request, obj=None):
        # Bookings are cancelled, never deleted
        return False

    def _run(self, request, queryset, operation, done):
        manager = get_lifecycle_manager()
        count = 0
        for booking in queryset:
            try:
                operation(manager, booking)
                count += 1
            except BookingError as e:
                self.message_user(request, f"{booking}: {e.message}", level='warning')
        self.message_user(request, f"{done} {count} booking(s)")

    def confirm_cash(self, request, queryset):
        """Record cash taken at the desk."""
        self._run(request, queryset,
                  lambda manager, booking: manager.confirm_cash_payment(booking.pk, request.user.get_username()),
                  "Confirmed cash for")
    confirm_cash.short_description = "Confirm cash payment"

    def check_in(self, request, queryset):
        self._run(request, queryset,
                  lambda manager, booking: manager.mark_attended(booking.pk),
                  "Checked in")
    check_in.short_description = "Check in (mark attended)"

    def mark_no_show(self, request, queryset):
        self._run(request, queryset,
                  lambda manager, booking: manager.mark_no_show(booking.pk),
                  "Marked no-show for")
    mark_no_show.short_description = "Mark as no-show"

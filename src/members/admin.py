from django.contrib import admin
from .models import Member, MembershipStatus


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ['last_name', 'first_name', 'email', 'phone', 'age_group', 'membership_status', 'created_at']
    list_filter = ['membership_status', 'age_group', 'created_at']
    search_fields = ['first_name', 'last_name', 'email', 'phone']
    readonly_fields = ['created_at', 'updated_at']

    fieldsets = (
        (None, {
            'fields': ('first_name', 'last_name', 'email', 'phone', 'membership_status')
        }),
        ('Demographics', {
            'fields': ('date_of_birth', 'age_group'),
        }),
        ('Safety', {
            'fields': ('emergency_contact_name', 'emergency_contact_phone', 'medical_notes'),
            'classes': ('collapse',),
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    actions = ['deactivate_members', 'suspend_members', 'reactivate_members']

    def has_delete_permission(self, request, obj=None):
        # Members are deactivated, never deleted
        return False

    def deactivate_members(self, request, queryset):
        count = queryset.update(membership_status=MembershipStatus.INACTIVE)
        self.message_user(request, f"Deactivated {count} member(s)")
    deactivate_members.short_description = "Deactivate selected members"

    def suspend_members(self, request, queryset):
        count = queryset.update(membership_status=MembershipStatus.SUSPENDED)
        self.message_user(request, f"Suspended {count} member(s)")
    suspend_members.short_description = "Suspend selected members"

    def reactivate_members(self, request, queryset):
        count = queryset.update(membership_status=MembershipStatus.ACTIVE)
        self.message_user(request, f"Reactivated {count} member(s)")
    reactivate_members.short_description = "Reactivate selected members"

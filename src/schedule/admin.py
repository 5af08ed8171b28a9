from django.contrib import admin
from .models import GymClass


@admin.register(GymClass)
class GymClassAdmin(admin.ModelAdmin):
    list_display = ['name', 'age_group', 'day_of_week', 'start_time', 'duration_minutes',
                    'max_capacity', 'drop_in_price', 'is_active']
    list_filter = ['age_group', 'day_of_week', 'is_active']
    search_fields = ['name', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['created_at', 'updated_at']

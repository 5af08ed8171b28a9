"""
Celery configuration for Gym Desk.
"""
import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'gymdesk.settings')

app = Celery('gymdesk')

# Load config from Django settings with CELERY_ namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks in all installed apps
app.autodiscover_tasks()

# Celery Beat Schedule
app.conf.beat_schedule = {
    # Cancel kiosk bookings left waiting for cash at the desk - Every minute
    'expire-stalled-cash-bookings': {
        'task': 'bookings.tasks.expire_stalled_cash_bookings',
        'schedule': crontab(),
        'options': {'queue': 'bookings'},
    },
}

# Task routing
app.conf.task_routes = {
    'bookings.tasks.*': {'queue': 'bookings'},
}

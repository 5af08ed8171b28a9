"""
WSGI config for the Gym Desk project.
"""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'gymdesk.settings')
application = get_wsgi_application()

"""
WSGI config for the Tarodan API.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'tarodan.config.settings')

application = get_wsgi_application()

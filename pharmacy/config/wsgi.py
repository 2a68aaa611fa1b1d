"""WSGI config for the pharmacy project."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'pharmacy.config.settings')

application = get_wsgi_application()

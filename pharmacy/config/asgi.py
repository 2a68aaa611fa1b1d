"""ASGI config for the pharmacy project."""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'pharmacy.config.settings')

application = get_asgi_application()

"""
WSGI entry point for the access-control backend.

HTTP only; the permission WebSocket needs the ASGI application in
``hospital.asgi``.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hospital.settings')

application = get_wsgi_application()

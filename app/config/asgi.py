"""
ASGI config for the payment gateway.

Served by Uvicorn in containers. The gateway has no WebSocket surface, so
this is the plain Django ASGI handler.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()

"""
Test settings.

Layers in-memory backends over config.settings so the suite runs without
PostgreSQL, Redis or a Celery broker. Selected via DJANGO_SETTINGS_MODULE in
pyproject.toml.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_DIR", "/tmp/gateway-test-logs")

from config.settings import *  # noqa: E402,F401,F403

# =============================================================================
# Database & Cache
# =============================================================================
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# =============================================================================
# Celery
# =============================================================================
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# =============================================================================
# Gateway
# =============================================================================
GATEWAY_HTTP_RETRY_BASE_DELAY = 0
GATEWAY_HTTP_RETRY_MAX_DELAY = 0
GATEWAY_PUBLIC_BASE_URL = "https://gateway.test"

# =============================================================================
# Security & Static Files
# =============================================================================
SECURE_SSL_REDIRECT = False
SECURE_HSTS_SECONDS = 0
ALLOWED_HOSTS = ["testserver", "localhost"]

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
}

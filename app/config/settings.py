"""
Django settings for the payment gateway.

This is the single settings file for all environments. Configuration is driven
by environment variables using django-environ, following the 12-factor app
methodology.

Environment files:
    - .env.development: Development settings (DEBUG=True, sandbox providers)
    - .env.production: Production settings (DEBUG=False, hardened security)

Test runs use config.settings_test, which layers in-memory overrides on top
of this module.

For the full list of settings and their values, see:
https://docs.djangoproject.com/en/5.2/ref/settings/
"""

import os
from pathlib import Path

import environ

# =============================================================================
# Path Configuration
# =============================================================================
BASE_DIR = Path(__file__).resolve().parent.parent

# =============================================================================
# Environment Configuration
# =============================================================================
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, []),
    CORS_ALLOWED_ORIGINS=(list, []),
    LOG_LEVEL=(str, "INFO"),
)

# In Docker, env vars are passed directly; .env files are for local dev
env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

# =============================================================================
# Core Settings
# =============================================================================
# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY")

DEBUG = env("DEBUG")

ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# =============================================================================
# Application Definition
# =============================================================================
INSTALLED_APPS = [
    # Django core apps
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "corsheaders",
    "django_celery_beat",
    "drf_spectacular",
    # Local apps
    "core",
    "gateway",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    # CORS headers (must be before CommonMiddleware)
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# =============================================================================
# Database Configuration
# =============================================================================
# Using psycopg3 (not psycopg2)
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default="postgres://postgres:postgres@db:5432/gateway_dev",
    ),
}

DATABASES["default"]["OPTIONS"] = {
    "connect_timeout": 10,
}

# =============================================================================
# Cache Configuration
# =============================================================================
CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": env("REDIS_URL", default="redis://redis:6379/0"),
        "OPTIONS": {
            "CLIENT_CLASS": "django_redis.client.DefaultClient",
            # Gracefully handle Redis connection failures
            "IGNORE_EXCEPTIONS": True,
        },
    }
}

# =============================================================================
# Django REST Framework Configuration
# =============================================================================
# Merchant API requests are authenticated by request signature, not sessions.
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "gateway.authentication.MerchantSignatureAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": env("API_ANON_THROTTLE_RATE", default="600/minute"),
    },
}

# =============================================================================
# drf-spectacular (OpenAPI) Configuration
# =============================================================================
SPECTACULAR_SETTINGS = {
    "TITLE": "Payment Gateway API",
    "DESCRIPTION": "Merchant order submission, status and channel endpoints",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SCHEMA_PATH_PREFIX": r"/api/v[0-9]+",
    "COMPONENT_SPLIT_REQUEST": True,
    "SORT_OPERATIONS": False,
}

# =============================================================================
# CORS Configuration
# =============================================================================
CORS_ALLOWED_ORIGINS = env("CORS_ALLOWED_ORIGINS")

# =============================================================================
# Celery Configuration
# =============================================================================
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://redis:6379/1")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default="redis://redis:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 10 * 60  # 10 minutes
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

# =============================================================================
# Payment Provider Configuration
# =============================================================================
# Per-provider endpoints. Credentials live on ProviderConfig rows, not here.
# A ProviderConfig.base_url overrides these values for a single channel.
GATEWAY_PROVIDERS = {
    "passpay": {
        "BASE_URL": env(
            "PASSPAY_BASE_URL", default="https://api.merchant.passpay.cc"
        ),
        "SANDBOX_BASE_URL": env(
            "PASSPAY_SANDBOX_BASE_URL", default="https://api.merchant.passpay.cc"
        ),
        "TIMEOUT_SECONDS": env.int("PASSPAY_TIMEOUT_SECONDS", default=10),
    },
    "unispay": {
        "BASE_URL": env("UNISPAY_BASE_URL", default="https://api.unispay.com"),
        "SANDBOX_BASE_URL": env(
            "UNISPAY_SANDBOX_BASE_URL", default="https://test-api.unispay.com"
        ),
        "TIMEOUT_SECONDS": env.int("UNISPAY_TIMEOUT_SECONDS", default=30),
    },
    "dhpay": {
        "BASE_URL": env("DHPAY_BASE_URL", default="https://api.dhpay.com"),
        "SANDBOX_BASE_URL": env(
            "DHPAY_SANDBOX_BASE_URL", default="https://test-api.dhpay.com"
        ),
        "TIMEOUT_SECONDS": env.int("DHPAY_TIMEOUT_SECONDS", default=30),
        "MAX_RETRIES": env.int("DHPAY_MAX_RETRIES", default=3),
    },
}

# Retries apply to transport failures only (connection errors, timeouts)
GATEWAY_HTTP_MAX_RETRIES = env.int("GATEWAY_HTTP_MAX_RETRIES", default=2)
GATEWAY_HTTP_RETRY_BASE_DELAY = env.float("GATEWAY_HTTP_RETRY_BASE_DELAY", default=1.0)
GATEWAY_HTTP_RETRY_MAX_DELAY = env.float("GATEWAY_HTTP_RETRY_MAX_DELAY", default=10.0)

# Public origin of this service, used to build provider callback URLs
GATEWAY_PUBLIC_BASE_URL = env(
    "GATEWAY_PUBLIC_BASE_URL", default="http://localhost:8000"
)

GATEWAY_SUPPORTED_CURRENCIES = env.list(
    "GATEWAY_SUPPORTED_CURRENCIES", default=["INR"]
)

# =============================================================================
# Usage Limit Configuration
# =============================================================================
# Daily and monthly limit windows roll over at midnight in this time zone
GATEWAY_LIMIT_TIME_ZONE = env("GATEWAY_LIMIT_TIME_ZONE", default="Asia/Kolkata")

# =============================================================================
# Reconciliation Configuration
# =============================================================================
# Non-terminal orders older than this are re-queried from the provider
GATEWAY_STALE_ORDER_MINUTES = env.int("GATEWAY_STALE_ORDER_MINUTES", default=10)

# Orders older than this are left for manual investigation
GATEWAY_STALE_ORDER_MAX_AGE_HOURS = env.int(
    "GATEWAY_STALE_ORDER_MAX_AGE_HOURS", default=72
)

GATEWAY_CALLBACK_RETENTION_DAYS = env.int(
    "GATEWAY_CALLBACK_RETENTION_DAYS", default=90
)

# =============================================================================
# Merchant Notification Configuration
# =============================================================================
GATEWAY_NOTIFICATION_TIMEOUT_SECONDS = env.int(
    "GATEWAY_NOTIFICATION_TIMEOUT_SECONDS", default=10
)
GATEWAY_NOTIFICATION_MAX_RETRIES = env.int(
    "GATEWAY_NOTIFICATION_MAX_RETRIES", default=6
)

# Merchant API requests must carry a timestamp within this window
GATEWAY_REQUEST_TIMESTAMP_TOLERANCE_SECONDS = env.int(
    "GATEWAY_REQUEST_TIMESTAMP_TOLERANCE_SECONDS", default=300
)

# =============================================================================
# Internationalization
# =============================================================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# =============================================================================
# Static Files
# =============================================================================
STATIC_URL = env("STATIC_URL", default="/static/")
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
    },
}

# =============================================================================
# Default Primary Key Field Type
# =============================================================================
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL = env("LOG_LEVEL")

# Log file name determined by service (web, celery-worker, celery-beat)
LOG_FILE_NAME = env("LOG_FILE_NAME", default="gateway.log")
LOG_DIR = Path(env("LOG_DIR", default=str(BASE_DIR / "logs")))

LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "file": {
            "format": "[{asctime}] {levelname} {name} {module}:{lineno} - {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            # Max 10MB per file, keeps 5 backups
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / LOG_FILE_NAME,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "file",
            "encoding": "utf-8",
        },
    },
    "root": {
        "handlers": ["console", "file"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "django.request": {
            "handlers": ["console", "file"],
            "level": "ERROR",
            "propagate": False,
        },
        "celery": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "gateway": {
            "handlers": ["console", "file"],
            "level": env("GATEWAY_LOG_LEVEL", default=LOG_LEVEL),
            "propagate": False,
        },
    },
}

# =============================================================================
# Security Settings (Production Only)
# =============================================================================
if not DEBUG:
    SECURE_SSL_REDIRECT = env.bool("SECURE_SSL_REDIRECT", default=True)
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

    SECURE_HSTS_SECONDS = env.int("SECURE_HSTS_SECONDS", default=31536000)  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = env.bool(
        "SECURE_HSTS_INCLUDE_SUBDOMAINS", default=True
    )
    SECURE_HSTS_PRELOAD = env.bool("SECURE_HSTS_PRELOAD", default=True)

    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = "DENY"

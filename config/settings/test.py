"""
Test settings for the Coupon Ingestion Service.

In-memory SQLite and eager Celery for fast test execution.
"""

from .base import *

DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["coupons"]["level"] = "WARNING"

AUTH_PASSWORD_VALIDATORS = []

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

APIFY_API_BASE_URL = "https://apify.test/v2"
APIFY_API_TOKEN = "test-token"
APIFY_REQUEST_TIMEOUT = 5.0

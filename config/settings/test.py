from .base import *

# Use SQLite for tests to avoid external DB dependencies
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Faster password hashing in tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

AUTH_PASSWORD_VALIDATORS = []

# Keep DEBUG on for clearer tracebacks in tests
DEBUG = True

CORS_ALLOWED_ORIGINS = []

ALLOWED_HOSTS = ["testserver", "localhost", "127.0.0.1"]

JWT_SECRET = "test-jwt-secret"
JWT_ALGORITHM = "HS256"

# The database handler writes from background threads; keep tests off it
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "null": {"class": "logging.NullHandler"},
    },
    "loggers": {
        "app": {"handlers": ["null"], "level": "INFO", "propagate": False},
        "django.request": {"handlers": ["null"], "level": "ERROR", "propagate": False},
    },
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "billing-test-cache",
    }
}

STRIPE_API_KEY = ""
STRIPE_WEBHOOK_SECRET = ""
MOMO_API_KEY = ""
MOMO_WEBHOOK_SECRET = ""
ZALOPAY_API_KEY = ""
ZALOPAY_WEBHOOK_SECRET = ""
BILLING_PAST_DUE_ON_FAILED_PAYMENT = False

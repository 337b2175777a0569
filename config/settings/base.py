import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _env_bool(key: str, default: str = "False") -> bool:
    val = os.getenv(key, str(default))
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


def env_list(key: str, default: str = "") -> list[str]:
    raw = os.getenv(key, default)
    return [x.strip() for x in str(raw).split(",") if x and x.strip()]


SECRET_KEY = os.getenv("SECRET_KEY", "dev-insecure-secret-key")

DEBUG = _env_bool("DEBUG", "True")

ALLOWED_HOSTS = env_list(
    "ALLOWED_HOSTS",
    "localhost,127.0.0.1,0.0.0.0,[::1]",
)

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "ninja",
    "corsheaders",
    "apps.logs.apps.LogsConfig",
    "apps.subscription.apps.SubscriptionConfig",
    "apps.payment.apps.PaymentConfig",
]

MIDDLEWARE = [
    "apps.logs.middleware.RequestLoggingMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME"),
        "USER": os.getenv("DB_USER"),
        "PASSWORD": os.getenv("DB_PASSWORD"),
        "HOST": os.getenv("DB_HOST"),
        "PORT": os.getenv("DB_PORT"),
        # Persistent connections, recycled after 60s
        "CONN_MAX_AGE": 60,
        "CONN_HEALTH_CHECKS": True,
        "OPTIONS": {
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000",
        },
    }
}


AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
AUTHENTICATION_BACKENDS = [
    "django.contrib.auth.backends.ModelBackend",
]

# Django-Ninja settings
NINJA_PAGINATION_CLASS = "ninja.pagination.LimitOffsetPagination"
NINJA_PAGINATION_PER_PAGE = 20
NINJA_MAX_PER_PAGE_SIZE = 100
NINJA_PAGINATION_MAX_LIMIT = 100
NINJA_NUM_PROXIES = 0

APP_ENV = os.getenv("APP_ENV", "local")

JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TTL_MIN = int(os.getenv("JWT_ACCESS_TTL_MIN", "60"))
JWT_REFRESH_TTL_DAYS = int(os.getenv("JWT_REFRESH_TTL_DAYS", "30"))


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(message)s"},
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
        "db": {
            "class": "apps.logs.handlers.DatabaseLogHandler",
            "formatter": "plain",
            "level": "INFO",
        },
    },
    "loggers": {
        "app": {
            "handlers": ["db", "console"],
            "level": "INFO",
            "propagate": False,
        },
        "django.request": {
            "handlers": ["db", "console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}

# =========================
# CORS / CSRF
# =========================
CORS_ALLOWED_ORIGINS = env_list("CORS_ALLOWED_ORIGINS", "")
CSRF_TRUSTED_ORIGINS = env_list("CSRF_TRUSTED_ORIGINS", "")
CORS_ALLOW_CREDENTIALS = True

# =========================
# CACHE (plan catalog + subscription snapshots)
# =========================
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "billing-cache",
        "TIMEOUT": 60 * 60,
        "OPTIONS": {
            "MAX_ENTRIES": 5000,
        },
    }
}

# =========================
# BILLING
# =========================
BILLING_DEFAULT_CURRENCY = os.getenv("BILLING_DEFAULT_CURRENCY", "VND")
BILLING_PLAN_CACHE_TTL = int(os.getenv("BILLING_PLAN_CACHE_TTL", str(60 * 60)))
BILLING_SUBSCRIPTION_CACHE_TTL = int(os.getenv("BILLING_SUBSCRIPTION_CACHE_TTL", str(5 * 60)))
# ACTIVE -> PAST_DUE when a payment webhook reports a failure
BILLING_PAST_DUE_ON_FAILED_PAYMENT = _env_bool("BILLING_PAST_DUE_ON_FAILED_PAYMENT", "False")

STRIPE_BASE_URL = os.getenv("STRIPE_BASE_URL", "https://api.stripe.com")
STRIPE_API_KEY = os.getenv("STRIPE_API_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")

MOMO_BASE_URL = os.getenv("MOMO_BASE_URL", "https://test-payment.momo.vn")
MOMO_API_KEY = os.getenv("MOMO_API_KEY", "")
MOMO_WEBHOOK_SECRET = os.getenv("MOMO_WEBHOOK_SECRET", "")

ZALOPAY_BASE_URL = os.getenv("ZALOPAY_BASE_URL", "https://sb-openapi.zalopay.vn")
ZALOPAY_API_KEY = os.getenv("ZALOPAY_API_KEY", "")
ZALOPAY_WEBHOOK_SECRET = os.getenv("ZALOPAY_WEBHOOK_SECRET", "")

PAYMENT_PROVIDER_TIMEOUT = int(os.getenv("PAYMENT_PROVIDER_TIMEOUT", "30"))

"""Django settings for the enrollment API.

Secrets and vendor credentials come from the environment. Defaults are only
suitable for local development and tests.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "replace-me-in-production")
DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS: list[str] = os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "rest_framework",
    "payments",
    "enrollments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
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
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": os.environ.get("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("DB_NAME", BASE_DIR / "db.sqlite3"),
        "USER": os.environ.get("DB_USER", ""),
        "PASSWORD": os.environ.get("DB_PASSWORD", ""),
        "HOST": os.environ.get("DB_HOST", ""),
        "PORT": os.environ.get("DB_PORT", ""),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
}

# Payment gateways. PAYMENT_ACTIVE_GATEWAY is the default vendor at boot and is
# always active; ACTIVE keeps another vendor usable for in-flight enrollments.
PAYMENT_ACTIVE_GATEWAY = os.environ.get("PAYMENT_ACTIVE_GATEWAY", "stripe")
PAYMENT_GATEWAY_TIMEOUT = float(os.environ.get("PAYMENT_GATEWAY_TIMEOUT", "10"))
PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")

PAYMENT_GATEWAYS = {
    "stripe": {
        "ACTIVE": PAYMENT_ACTIVE_GATEWAY == "stripe",
        "OPTIONS": {
            "secret_key": os.environ.get("STRIPE_SECRET_KEY", ""),
            "webhook_secret": os.environ.get("STRIPE_WEBHOOK_SECRET", ""),
        },
    },
    "square": {
        "ACTIVE": PAYMENT_ACTIVE_GATEWAY == "square",
        "OPTIONS": {
            "secret_key": os.environ.get("SQUARE_ACCESS_TOKEN", ""),
            "webhook_secret": os.environ.get("SQUARE_WEBHOOK_SIGNATURE_KEY", ""),
            "environment": os.environ.get("SQUARE_ENVIRONMENT", "sandbox"),
            "location_id": os.environ.get("SQUARE_LOCATION_ID", ""),
            "notification_url": os.environ.get("SQUARE_WEBHOOK_URL", ""),
        },
    },
}

# Enrollment admission
ENROLLMENT_PENDING_TTL = int(os.environ.get("ENROLLMENT_PENDING_TTL", "1800"))
ENROLLMENT_WRITE_ATTEMPTS = int(os.environ.get("ENROLLMENT_WRITE_ATTEMPTS", "3"))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.environ.get("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "payments": {"level": os.environ.get("PAYMENTS_LOG_LEVEL", "INFO")},
        "enrollments": {"level": os.environ.get("ENROLLMENTS_LOG_LEVEL", "INFO")},
    },
}

import os
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "true").lower() == "true"
ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_yasg",
    "lending",
    "payment",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "core.urls"

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

WSGI_APPLICATION = "core.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
        # BEGIN IMMEDIATE takes the write lock up front, serializing contract updates.
        "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
        "TEST": {"NAME": os.environ.get("TEST_DATABASE_PATH", str(BASE_DIR / "test_db.sqlite3"))},
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser",
                               "rest_framework.parsers.FormParser",
                               "rest_framework.parsers.MultiPartParser"],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
}

# Celery
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_TASK_ALWAYS_EAGER = os.environ.get("CELERY_TASK_ALWAYS_EAGER", "false").lower() == "true"
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    "mark-defaulted-contracts": {
        "task": "lending.tasks.mark_defaulted_contracts",
        "schedule": crontab(minute=0),
    },
}

# Trust index policy. Tiers are (minimum trust index, maximum loan amount).
TRUST_INDEX_LOAN_LIMITS = [
    (300, 5000),
    (400, 10000),
    (500, 25000),
    (600, 50000),
    (700, 100000),
    (800, 200000),
]
GUARANTOR_MIN_TRUST_INDEX = 500
TRUST_INDEX_DELTAS = {
    "EMI_ON_TIME": 5,
    "EMI_LATE": -10,
    "CONTRACT_COMPLETED": 20,
    "CONTRACT_DEFAULTED": -50,
    "GUARANTEED_CONTRACT_DEFAULTED": -25,
}
TRUST_INDEX_UPDATER = "lending.trust.CeleryTrustIndexUpdater"

EMI_PERIOD_DAYS = 30
DEFAULT_GRACE_DAYS = 30

PAYMENT_GATEWAY = {
    "CLIENT": os.environ.get("PAYMENT_GATEWAY_CLIENT", "payment.gateway.CheckoutGatewayClient"),
    "CALLBACK_VERIFIER": os.environ.get(
        "PAYMENT_CALLBACK_VERIFIER", "payment.gateway.Sha256CallbackVerifier"
    ),
    "CHECKOUT_URL": os.environ.get(
        "PAYMENT_CHECKOUT_URL", "https://api-preprod.phonepe.com/apis/pg-sandbox/checkout/v2/pay"
    ),
    "CLIENT_ID": os.environ.get("PHONEPE_CLIENT_ID", ""),
    "CLIENT_SECRET": os.environ.get("PHONEPE_CLIENT_SECRET", ""),
    "CLIENT_VERSION": os.environ.get("PHONEPE_CLIENT_VERSION", "1"),
    "WEBHOOK_USERNAME": os.environ.get("PHONEPE_WEBHOOK_USERNAME", ""),
    "WEBHOOK_PASSWORD": os.environ.get("PHONEPE_WEBHOOK_PASSWORD", ""),
    "REDIRECT_BASE_URL": os.environ.get("FRONTEND_URL", "http://localhost:5174"),
    "TIMEOUT": 10,
}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

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
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "lending": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "payment": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

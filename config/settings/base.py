"""
Base Django settings for the salon billing platform.
Common settings shared across all environments.
"""

import os
from pathlib import Path

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "django_fsm",
    # Local apps
    "apps.core",
    "apps.inventory",
    "apps.crm",
    "apps.sales",
]

MIDDLEWARE = [
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
        "DIRS": [],
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

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
        "OPTIONS": {
            "min_length": 12,
        },
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]

# Internationalization
LANGUAGE_CODE = "en"
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Browser Security Headers
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
SECURE_REFERRER_POLICY = "strict-origin-when-cross-origin"

# Django REST Framework Configuration
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 50,
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "COERCE_DECIMAL_TO_STRING": True,
}

# Celery Configuration
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 5 * 60  # 5 minutes
CELERY_TASK_SOFT_TIME_LIMIT = 4 * 60  # 4 minutes
CELERY_WORKER_PREFETCH_MULTIPLIER = 4

# Billing Configuration
# Store rows carry their own tax and earn rates; these are the defaults for new stores.
BILLING_DEFAULT_TAX_RATE = os.getenv("BILLING_DEFAULT_TAX_RATE", "18.00")
BILLING_POINTS_EARN_RATE = os.getenv("BILLING_POINTS_EARN_RATE", "0.0100")
BILLING_INVOICE_PREFIX = os.getenv("BILLING_INVOICE_PREFIX", "INV")
BILLING_INVOICE_MAX_ATTEMPTS = int(os.getenv("BILLING_INVOICE_MAX_ATTEMPTS", "3"))

# Admins receive reconciliation alerts
ADMINS = [
    ("Billing Admin", address)
    for address in os.getenv("BILLING_ALERT_EMAILS", "").split(",")
    if address.strip()
]

# Create logs directory if it doesn't exist
LOGS_DIR = BASE_DIR / "logs"
LOGS_DIR.mkdir(exist_ok=True)


def build_logging_config(level="INFO", log_file=None):
    """
    Build the LOGGING dict shared by every environment.

    Args:
        level: Level for the project loggers
        log_file: Optional path for the rotating file handler

    Returns:
        Dict suitable for Django's LOGGING setting
    """
    handlers = {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    }
    if log_file:
        handlers["file"] = {
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(log_file),
            "maxBytes": 1024 * 1024 * 10,  # 10 MB
            "backupCount": 5,
            "formatter": "verbose",
        }
    handler_names = list(handlers)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "{levelname} {asctime} {name} {process:d} {thread:d} {message}",
                "style": "{",
            },
            "simple": {
                "format": "{levelname} {message}",
                "style": "{",
            },
        },
        "handlers": handlers,
        "loggers": {
            "django": {
                "handlers": handler_names,
                "level": "INFO",
                "propagate": False,
            },
            "apps": {
                "handlers": handler_names,
                "level": level,
                "propagate": False,
            },
            "celery": {
                "handlers": handler_names,
                "level": "INFO",
                "propagate": False,
            },
        },
    }


REQUIRED_DEPLOY_ENV_VARS = {
    "DJANGO_SECRET_KEY": "secret key for cryptographic signing",
    "POSTGRES_DB": "billing database name",
    "POSTGRES_USER": "billing database user",
    "POSTGRES_PASSWORD": "billing database password",
    "POSTGRES_HOST": "billing database host",
    "CELERY_BROKER_URL": "broker for post-settlement tasks",
    "BILLING_ALERT_EMAILS": "comma separated recipients of reconciliation alerts",
}


def validate_required_env_vars(required=None):
    """
    Raise ValueError listing every required environment variable that is unset.

    Called at the end of deployed settings modules.
    """
    required = REQUIRED_DEPLOY_ENV_VARS if required is None else required
    missing = [
        f"  - {name} ({purpose})" for name, purpose in required.items() if not os.getenv(name)
    ]
    if missing:
        raise ValueError(
            "Missing required environment variables:\n"
            + "\n".join(missing)
            + "\n\nSet them in the environment or in a .env file."
        )


def validate_security_settings(debug_mode):
    """Refuse the development secret key, or a short one, when DEBUG is off."""
    if debug_mode:
        return
    secret_key = os.getenv("DJANGO_SECRET_KEY", "")
    if secret_key == "dev-secret-key-change-in-production" or len(secret_key) < 50:
        raise ValueError(
            "DJANGO_SECRET_KEY must be a unique value of at least 50 characters outside DEBUG"
        )

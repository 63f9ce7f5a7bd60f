"""
Django settings for the invoice engine.

Only what the invoicing app needs: DRF for the renderer payloads and a
LOGGING configuration. The engine itself performs no database access.
"""

from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = "invoice-engine-dev-key"
DEBUG = False
ALLOWED_HOSTS = []

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "rest_framework",
    "invoicing",
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

USE_TZ = True
TIME_ZONE = "America/Sao_Paulo"
LANGUAGE_CODE = "pt-br"

# Alternative rules file for the invoicing app; None uses the bundled default.
INVOICING_RULES_PATH = None

REST_FRAMEWORK = {
    "COERCE_DECIMAL_TO_STRING": True,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "invoicing": {"handlers": ["console"], "level": "INFO", "propagate": True},
    },
}

from .base import *  # noqa: F403
from .base import LOGGING
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = True
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="q1tT0bVZ5Vq3m4cX9yKcJ0bq3f8W5uQJfZ8xH2kLmN7pR4sT6vW9yB1dE3gH5jK7",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "0.0.0.0", "127.0.0.1"]  # noqa: S104

# CACHES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#caches
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "",
    },
}

# EMAIL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#email-backend
EMAIL_BACKEND = env(
    "DJANGO_EMAIL_BACKEND",
    default="django.core.mail.backends.console.EmailBackend",
)

# Logging
# ------------------------------------------------------------------------------
# Make local development chatty so gate decisions show up immediately.
LOGGING["root"]["level"] = "DEBUG"
LOGGING["loggers"]["clinicdesk"] = {
    "handlers": ["console"],
    "level": "DEBUG",
    "propagate": False,
}

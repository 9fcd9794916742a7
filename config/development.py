from .base import *

DEBUG = True

SECRET_KEY = os.environ.get("SECRET_KEY", "django-insecure-development-key")

# Static files for development
STATIC_ROOT = BASE_DIR / "staticfiles"

# Run progression inline so tracebacks stay readable
PROGRESSION_MAX_WORKERS = int(os.environ.get("PROGRESSION_MAX_WORKERS", 1))

# Simple logging for development
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "apps": {
            "handlers": ["console"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}

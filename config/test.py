from .base import *

SECRET_KEY = "test-secret-key"

DEBUG = False

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# File-backed test database so worker threads share it with the test.
DATABASES["default"]["TEST"] = {
    "NAME": BASE_DIR / "test_db.sqlite3",
}

PROGRESSION_MAX_WORKERS = 1
PROGRESSION_CHUNK_SIZE = 2
IDENTIFIER_ALLOCATION_RETRY_BACKOFF = 0.01

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "null": {
            "class": "logging.NullHandler",
        },
    },
    "loggers": {
        "apps": {
            "handlers": ["null"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(BASE_DIR / ".env")

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get("SECRET_KEY")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.environ.get("DEBUG", "True").lower() in ('true', '1', 't')

# SECURITY WARNING: restrict allowed hosts in production!
ALLOWED_HOSTS = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(',')

# Application definition
INSTALLED_APPS = [
    'apps.core',
    'apps.academics',
    'apps.audit',
    'rest_framework',

    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
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
ASGI_APPLICATION = "config.asgi.application"

# Database
# Concurrent writers (allocations, progression workers) wait on the
# database lock instead of failing immediately.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
        "OPTIONS": {
            "transaction_mode": "IMMEDIATE",
            "timeout": int(os.environ.get("DATABASE_TIMEOUT", 20)),
        },
    }
}

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"

LOGIN_URL = '/admin/login/'

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ============================
# IDENTIFIER ALLOCATION
# ============================

# Prefix of registration numbers, e.g. UCAES20260001
IDENTIFIER_DEFAULT_PREFIX = os.environ.get("IDENTIFIER_DEFAULT_PREFIX", "UCAES")

# Attempts per allocation before a write conflict reaches the caller
IDENTIFIER_ALLOCATION_MAX_ATTEMPTS = int(os.environ.get("IDENTIFIER_ALLOCATION_MAX_ATTEMPTS", 5))
IDENTIFIER_ALLOCATION_RETRY_BACKOFF = float(os.environ.get("IDENTIFIER_ALLOCATION_RETRY_BACKOFF", 0.05))

# Allocate a registration number when a student is created without one
IDENTIFIER_AUTO_ASSIGN = os.environ.get("IDENTIFIER_AUTO_ASSIGN", "True").lower() in ('true', '1', 't')

# Entities scanned by reconcile_identifiers
IDENTIFIER_SOURCES = {
    'student': {
        'model': 'academics.Student',
        'field': 'registration_number',
        'year_field': 'admission_year',
    },
}

# ============================
# STUDENT PROGRESSION
# ============================

PROGRESSION_MAX_WORKERS = int(os.environ.get("PROGRESSION_MAX_WORKERS", 4))
PROGRESSION_CHUNK_SIZE = int(os.environ.get("PROGRESSION_CHUNK_SIZE", 200))

# Final level of students whose program does not set one
PROGRESSION_DEFAULT_TERMINAL_LEVEL = int(os.environ.get("PROGRESSION_DEFAULT_TERMINAL_LEVEL", 400))

# Logging
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "level": "INFO",
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
            "level": "INFO",
            "propagate": False,
        },
    },
}

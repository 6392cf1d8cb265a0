# feeplans/settings.py

"""
Django settings for the feeplans project.

Values that differ between environments are read from environment variables;
everything else is fixed here.
"""

import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Apps live in apps/ and are imported by their short names (fees, core, ...)
APPS_DIR = BASE_DIR / 'apps'
if str(APPS_DIR) not in sys.path:
    sys.path.insert(0, str(APPS_DIR))

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-feeplans-dev-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() in ('1', 'true', 'yes')

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
    if host.strip()
]


# =============================================================================
# APPLICATIONS
# =============================================================================

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',

    'utils',
    'core',
    'academics',
    'fees',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'feeplans.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]


# =============================================================================
# DATABASE & CACHE
# =============================================================================

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('FEEPLANS_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# The import lock relies on cache.add being atomic; use a shared backend
# (Redis/Memcached) when running more than one process.
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'feeplans',
    }
}


# =============================================================================
# LOCALISATION
# =============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('DJANGO_TIME_ZONE', 'Africa/Kampala')
USE_I18N = True
USE_TZ = True


# =============================================================================
# FEE IMPORT
# =============================================================================

# Rows shown when previewing an uploaded CSV before import
FEE_IMPORT_PREVIEW_ROWS = int(os.environ.get('FEE_IMPORT_PREVIEW_ROWS', 10))

# Seconds before an abandoned per-school import lock expires
FEE_IMPORT_LOCK_TIMEOUT = int(os.environ.get('FEE_IMPORT_LOCK_TIMEOUT', 600))

# Parse errors listed when a file yields no valid rows
FEE_IMPORT_MAX_ERRORS_SHOWN = int(os.environ.get('FEE_IMPORT_MAX_ERRORS_SHOWN', 10))


# =============================================================================
# LOGGING
# =============================================================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'fees': {
            'handlers': ['console'],
            'level': os.environ.get('FEE_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'feeplans': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

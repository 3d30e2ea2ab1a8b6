"""
Django settings for the CoreFitness AI proxy.
"""

import os
from pathlib import Path

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get(
    'DJANGO_SECRET_KEY',
    'django-insecure-q1v!t0b8m$w3k7e^r2a9z@c5n6p#x4j_u8h%d0s1f2g3y7l'
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.environ.get('DJANGO_DEBUG', 'True') == 'True'

ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost 127.0.0.1 [::1] testserver').split()

# Application definition
INSTALLED_APPS = [
    # Local apps
    'proxy',
]

# No sessions or cookies: CSRF middleware is omitted for this token-less JSON API.
MIDDLEWARE = [
    'proxy.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

WSGI_APPLICATION = 'config.wsgi.application'

# The proxy persists nothing.
DATABASES = {}

CACHES = {
    'default': {
        'BACKEND': os.environ.get('CACHE_BACKEND', 'django.core.cache.backends.locmem.LocMemCache'),
        'LOCATION': os.environ.get('CACHE_LOCATION', 'ai-proxy'),
    }
}

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True

APPEND_SLASH = False

# ---------------------------------------------------------------------------
# AI providers
# ---------------------------------------------------------------------------
GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY', '')
CLAUDE_API_KEY = os.environ.get('CLAUDE_API_KEY', '')
DEFAULT_PROVIDER = os.environ.get('DEFAULT_PROVIDER', 'gemini')
GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-pro')
CLAUDE_MODEL = os.environ.get('CLAUDE_MODEL', 'claude-3-haiku-20240307')

# Retry quota-limited Gemini calls on Claude when a Claude key is configured.
AI_FALLBACK_ENABLED = os.environ.get('AI_FALLBACK_ENABLED', 'True') == 'True'

# ---------------------------------------------------------------------------
# Rate limiting – requests per device per minute
# ---------------------------------------------------------------------------
RATE_LIMIT_RPM = int(os.environ.get('RATE_LIMIT_RPM', '30'))
RATE_LIMIT_STORE = os.environ.get('RATE_LIMIT_STORE', 'memory')
RATE_LIMIT_CACHE_ALIAS = os.environ.get('RATE_LIMIT_CACHE_ALIAS', 'default')

# Label reported by /health.
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'development')

# ---------------------------------------------------------------------------
# Logging – one file per day, 7-day retention, stored in ./logs/
# ---------------------------------------------------------------------------
LOGS_DIR = Path(os.environ.get('LOGS_DIR', BASE_DIR / 'logs'))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} [{levelname}] {name} {module}.{funcName}:{lineno} – {message}',
            'style': '{',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
        'simple': {
            'format': '{asctime} [{levelname}] {message}',
            'style': '{',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
            'level': 'DEBUG' if DEBUG else 'INFO',
        },
        'file_debug': {
            'class': 'logging.handlers.TimedRotatingFileHandler',
            'filename': str(LOGS_DIR / 'proxy.log'),
            'when': 'midnight',
            'interval': 1,
            'backupCount': 7,
            'encoding': 'utf-8',
            'formatter': 'verbose',
            'level': 'DEBUG',
        },
    },
    'root': {
        'handlers': ['console', 'file_debug'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console', 'file_debug'],
            'level': 'INFO',
            'propagate': False,
        },
        'proxy': {
            'handlers': ['console', 'file_debug'],
            'level': 'DEBUG',
            'propagate': False,
        },
    },
}

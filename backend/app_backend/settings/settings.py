"""
Base Django settings for the signal propagation backend.

Environment-specific overrides live next to this module:
    - prod.py: Redis channel layer, DEBUG off
    - test.py: in-memory sqlite/channel layer, eager Celery, fixed encryption key
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key-change-me")
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(',')
CORS_ALLOW_ALL_ORIGINS = DEBUG

INSTALLED_APPS = [
    'daphne',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'channels',
    'corsheaders',

    'accounts',
    'locations',
    'signaling',
    'realtime',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'app_backend.urls'

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

WSGI_APPLICATION = 'app_backend.wsgi.application'
ASGI_APPLICATION = 'app_backend.asgi.application'

DATABASES = {
    'default': {
        'ENGINE': os.getenv("DB_ENGINE", 'django.db.backends.sqlite3'),
        'NAME': os.getenv("DB_NAME", str(BASE_DIR / 'db.sqlite3')),
        'USER': os.getenv("DB_USER", ""),
        'PASSWORD': os.getenv("DB_PASSWORD", ""),
        'HOST': os.getenv("DB_HOST", ""),
        'PORT': os.getenv("DB_PORT", ""),
    }
}

AUTH_USER_MODEL = 'accounts.User'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# Authentication is handled upstream by the gateway
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.AllowAny'],
    'UNAUTHENTICATED_USER': None,
}

# ---------------------- Redis / Channels / Celery ----------------------

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)
CELERY_TASK_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    'purge-expired-locations': {
        'task': 'locations.tasks.purge_expired_locations_task',
        'schedule': timedelta(hours=1),
    },
    'expire-stale-signals': {
        'task': 'signaling.tasks.expire_stale_signals_task',
        'schedule': timedelta(minutes=5),
    },
}

# ---------------------- Location store ----------------------

# Base64-encoded 32 byte AES key. Required unless ephemeral keys are allowed.
LOCATION_ENCRYPTION_KEY = os.getenv("LOCATION_ENCRYPTION_KEY", "")
LOCATION_ALLOW_EPHEMERAL_KEY = os.getenv("LOCATION_ALLOW_EPHEMERAL_KEY", str(DEBUG)).lower() == "true"
LOCATION_TTL_HOURS = int(os.getenv("LOCATION_TTL_HOURS", 24))

# ---------------------- Signal propagation ----------------------

SIGNAL_COOLDOWN_SECONDS = int(os.getenv("SIGNAL_COOLDOWN_SECONDS", 3600))
SIGNAL_LIFETIME_SECONDS = int(os.getenv("SIGNAL_LIFETIME_SECONDS", 600))
SIGNAL_MAX_DISTANCE = float(os.getenv("SIGNAL_MAX_DISTANCE", 10))
SIGNAL_RING_INTERVAL_SECONDS = float(os.getenv("SIGNAL_RING_INTERVAL_SECONDS", 1.0))
SIGNAL_RECEIVED_WINDOW_HOURS = 24

# ---------------------- Realtime ----------------------

# Optional cap on live subscription radius (km). Unset means no cap.
REALTIME_MAX_RADIUS_KM = float(os.environ["REALTIME_MAX_RADIUS_KM"]) if os.getenv("REALTIME_MAX_RADIUS_KM") else None

# ---------------------- Logging ----------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
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
        'django': {'handlers': ['console'], 'level': 'INFO', 'propagate': False},
        'locations': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'signaling': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'realtime': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'services': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}

from .settings import *

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

# Fixed 32 byte key (base64) so encrypted fixtures are reproducible
LOCATION_ENCRYPTION_KEY = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="
LOCATION_ALLOW_EPHEMERAL_KEY = False

LOGGING['loggers']['locations']['level'] = 'WARNING'
LOGGING['loggers']['signaling']['level'] = 'WARNING'
LOGGING['loggers']['realtime']['level'] = 'WARNING'
LOGGING['loggers']['services']['level'] = 'WARNING'

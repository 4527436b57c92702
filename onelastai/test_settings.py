from onelastai.settings import *

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Use memory cache for tests
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

# Run huey tasks inline
DJANGO_HUEY = {
    'default': 'maintenance',
    'queues': {
        'maintenance': {
            'huey_class': 'huey.MemoryHuey',
            'name': 'onelastai_test',
            'immediate': True,
        },
    },
}

INFERENCE_BASE_URL = 'http://inference.test'

# No real waiting in tests
AGENT_BACKOFF_UNIT = 0
AGENT_STREAM_DELAY = 0

# Faster password hashing
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('SESSION_SECRET', 'django-dev-key-change-in-production')

DEBUG = os.environ.get('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = ['*']

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'django_huey',
    'agents.apps.AgentsConfig',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'onelastai.urls'

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

WSGI_APPLICATION = 'onelastai.wsgi.application'

DATABASE_URL = os.environ.get('DATABASE_URL')
if DATABASE_URL:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ.get('PGDATABASE'),
            'USER': os.environ.get('PGUSER'),
            'PASSWORD': os.environ.get('PGPASSWORD'),
            'HOST': os.environ.get('PGHOST'),
            'PORT': os.environ.get('PGPORT', '5432'),
            'OPTIONS': {
                'sslmode': 'require',
                'connect_timeout': 5,
            },
            'CONN_MAX_AGE': 300,
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Inference backend (Ollama-compatible HTTP API shared by every model)
INFERENCE_BASE_URL = os.environ.get('INFERENCE_BASE_URL', 'http://localhost:11434')
INFERENCE_CONNECT_TIMEOUT = int(os.environ.get('INFERENCE_CONNECT_TIMEOUT', '10'))
MODEL_REGISTRY_PATH = os.environ.get(
    'MODEL_REGISTRY_PATH', str(BASE_DIR / 'agents' / 'config' / 'models.yml')
)
AGENT_CONFIG_PATH = os.environ.get(
    'AGENT_CONFIG_PATH', str(BASE_DIR / 'agents' / 'config' / 'agents.yml')
)

# Agent record store resilience
AGENT_CONNECT_RETRIES = int(os.environ.get('AGENT_CONNECT_RETRIES', '3'))
AGENT_BACKOFF_UNIT = float(os.environ.get('AGENT_BACKOFF_UNIT', '2'))
AGENT_CONNECT_DEADLINE = os.environ.get('AGENT_CONNECT_DEADLINE')

# Simulated streaming pace between 50-character chunks
AGENT_STREAM_DELAY = float(os.environ.get('AGENT_STREAM_DELAY', '0.1'))

AGENT_MEMORY_RETENTION_DAYS = int(os.environ.get('AGENT_MEMORY_RETENTION_DAYS', '30'))

DJANGO_HUEY = {
    'default': 'maintenance',
    'queues': {
        'maintenance': {
            'huey_class': 'huey.SqliteHuey',
            'name': 'onelastai_maintenance',
            'filename': str(BASE_DIR / 'huey_maintenance.db'),
            'immediate': False,
        },
    },
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
}

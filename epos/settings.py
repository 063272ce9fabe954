import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'epos-dev-key-not-for-production')

DEBUG = os.environ.get('DJANGO_DEBUG', '1') == '1'

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_spectacular',
    'floor',
    'payment',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'epos.urls'
WSGI_APPLICATION = 'epos.wsgi.application'

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

# SQLite for development; point EPOS_DB_ENGINE at postgresql for row locking
DATABASES = {
    'default': {
        'ENGINE': os.environ.get('EPOS_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('EPOS_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.environ.get('EPOS_DB_USER', ''),
        'PASSWORD': os.environ.get('EPOS_DB_PASSWORD', ''),
        'HOST': os.environ.get('EPOS_DB_HOST', ''),
        'PORT': os.environ.get('EPOS_DB_PORT', ''),
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Shared key presented by the session gateway in front of this service
API_KEY = os.environ.get('EPOS_API_KEY', 'demo')

AUDIT_EMITTER = os.environ.get('EPOS_AUDIT_EMITTER', 'epos.audit.LoggingAuditEmitter')

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'epos.authentication.ActorAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'epos.permissions.IsTenantActor',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'epos.exceptions.api_exception_handler',
    'UNAUTHENTICATED_USER': None,
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'EPOS Floor API',
    'DESCRIPTION': 'Orders, tables and billing for the restaurant floor',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
}

LOG_LEVEL = os.environ.get('EPOS_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'epos': {'handlers': ['console'], 'level': LOG_LEVEL},
        'floor': {'handlers': ['console'], 'level': LOG_LEVEL},
        'payment': {'handlers': ['console'], 'level': LOG_LEVEL},
    },
}

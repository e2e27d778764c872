"""
Django settings for the FastCaisse public website backend.

For more information on this file, see
https://docs.djangoproject.com/en/5.2/topics/settings/

For the full list of settings and their values, see
https://docs.djangoproject.com/en/5.2/ref/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
env_file = os.path.join(BASE_DIR, '.env.development')
if os.path.exists(env_file):
    load_dotenv(env_file)
else:
    load_dotenv()  # Try default .env


# Quick-start development settings - unsuitable for production
# See https://docs.djangoproject.com/en/5.2/howto/deployment/checklist/

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY')
if not SECRET_KEY:
    raise ValueError(
        "SECRET_KEY environment variable is not set. "
        "Please add SECRET_KEY to your .env file. "
        "For development, you can generate one with: "
        "python -c 'from django.core.management.utils import get_random_secret_key; print(get_random_secret_key())'"
    )

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True') == 'True'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')


# =============================================================================
# REDIS & CACHING
# =============================================================================

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/1')

# The contact rate limiter lives in the default cache. Use Redis when more
# than one worker process serves the site so every worker sees the same window.
if os.getenv('REDIS_ENABLED', 'False') == 'True':
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': REDIS_URL,
            'KEY_PREFIX': 'site',
            'TIMEOUT': 300,  # 5 minutes default
        }
    }
else:
    # Development: use local memory cache
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'unique-snowflake',
        }
    }


# Application definition

INSTALLED_APPS = [
    'django.contrib.staticfiles',

    # Third-party apps
    'rest_framework',
    'corsheaders',

    # Local apps
    'contact',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'corsheaders.middleware.CorsMiddleware',  # CORS before CommonMiddleware
    'django.middleware.common.CommonMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
            ],
        },
    },
]

WSGI_APPLICATION = 'core.wsgi.application'


# Database
# Submissions are never stored; the only durable state is the rate-limit
# store and the append-only submission log, neither of which is relational.

DATABASES = {}


# Internationalization
# https://docs.djangoproject.com/en/5.2/topics/i18n/

LANGUAGE_CODE = 'fr'

TIME_ZONE = 'Europe/Brussels'

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/5.2/howto/static-files/

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / os.getenv('STATIC_ROOT', 'staticfiles')



# =============================================================================
# REST FRAMEWORK SETTINGS
# =============================================================================

REST_FRAMEWORK = {
    # Public, credential-less site: no authentication backends at all
    'DEFAULT_AUTHENTICATION_CLASSES': (),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.AllowAny',
    ),
    'UNAUTHENTICATED_USER': None,
    'DEFAULT_PARSER_CLASSES': (
        'rest_framework.parsers.JSONParser',
        'rest_framework.parsers.FormParser',
        'rest_framework.parsers.MultiPartParser',
    ),
    'DEFAULT_RENDERER_CLASSES': (
        'rest_framework.renderers.JSONRenderer',
    ),
    'EXCEPTION_HANDLER': 'core.exceptions.json_exception_handler',
}


# =============================================================================
# CORS SETTINGS
# =============================================================================

DEBUG_MODE = os.getenv('DEBUG', 'True') == 'True'

if DEBUG_MODE:
    # Development: Allow all origins for easier testing
    CORS_ORIGIN_ALLOW_ALL = True
else:
    # Production: Whitelist the public site origins
    cors_origins_env = os.getenv(
        'CORS_ALLOWED_ORIGINS',
        'https://fastcaisse.be,https://www.fastcaisse.be'
    )
    CORS_ALLOWED_ORIGINS = [origin.strip() for origin in cors_origins_env.split(',')]

CORS_ALLOW_METHODS = [
    'GET',
    'OPTIONS',
    'POST',
]
CORS_ALLOW_HEADERS = [
    'accept',
    'accept-encoding',
    'content-type',
    'origin',
    'user-agent',
    'x-requested-with',
]


# =============================================================================
# EMAIL SETTINGS (authenticated SMTP relay)
# =============================================================================

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'mail.infomaniak.com')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', 587))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', 'contact@fastcaisse.be')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = os.getenv('EMAIL_USE_TLS', 'True') == 'True'
EMAIL_USE_SSL = os.getenv('EMAIL_USE_SSL', 'False') == 'True'
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', EMAIL_HOST_USER)
EMAIL_TIMEOUT = int(os.getenv('EMAIL_TIMEOUT', 30))


# =============================================================================
# CLOUDFLARE TURNSTILE (CAPTCHA)
# =============================================================================

TURNSTILE_SITE_KEY = os.getenv('TURNSTILE_SITE_KEY', '')
TURNSTILE_SECRET_KEY = os.getenv('TURNSTILE_SECRET_KEY', '')
TURNSTILE_TIMEOUT = int(os.getenv('TURNSTILE_TIMEOUT', 10))


# =============================================================================
# LOGGING SETTINGS
# =============================================================================

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'False') == 'True'
LOG_FILE_PATH = os.getenv('LOG_FILE_PATH', 'logs/django.log')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': LOG_FILE_PATH,
            'maxBytes': 1024 * 1024 * 10,  # 10MB
            'backupCount': 5,
            'formatter': 'verbose',
        } if LOG_TO_FILE else {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['console', 'file'] if LOG_TO_FILE else ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console', 'file'] if LOG_TO_FILE else ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}


# =============================================================================
# SECURITY SETTINGS (Production)
# =============================================================================

if not DEBUG:
    SECURE_SSL_REDIRECT = os.getenv('SECURE_SSL_REDIRECT', 'True') == 'True'
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = 'DENY'
    SECURE_HSTS_SECONDS = int(os.getenv('SECURE_HSTS_SECONDS', 31536000))
    SECURE_HSTS_INCLUDE_SUBDOMAINS = os.getenv('SECURE_HSTS_INCLUDE_SUBDOMAINS', 'True') == 'True'
    SECURE_HSTS_PRELOAD = os.getenv('SECURE_HSTS_PRELOAD', 'True') == 'True'


# =============================================================================
# CONTACT FORM SETTINGS
# =============================================================================

# Company details used in the confirmation email
COMPANY_NAME = os.getenv('COMPANY_NAME', 'FastCaisse')
COMPANY_WEBSITE = os.getenv('COMPANY_WEBSITE', 'https://fastcaisse.be')
COMPANY_ADDRESS = os.getenv('COMPANY_ADDRESS', 'Chaussée de Haecht 1749, 1130 Brussels, Belgium')

# Contact form email configuration
CONTACT_EMAIL_TO = os.getenv('CONTACT_EMAIL_TO', 'contact@fastcaisse.be')
# Sender must match the authenticated SMTP account
CONTACT_EMAIL_FROM = os.getenv('CONTACT_EMAIL_FROM', EMAIL_HOST_USER)
CONTACT_EMAIL_FROM_NAME = os.getenv('CONTACT_EMAIL_FROM_NAME', 'FastCaisse Website')
CONTACT_EMAIL_REPLY_TO = os.getenv('CONTACT_EMAIL_REPLY_TO', CONTACT_EMAIL_TO)
CONTACT_EMAIL_CC = [a.strip() for a in os.getenv('CONTACT_EMAIL_CC', '').split(',') if a.strip()]
CONTACT_EMAIL_BCC = [a.strip() for a in os.getenv('CONTACT_EMAIL_BCC', '').split(',') if a.strip()]

CONTACT_SEND_ADMIN_NOTIFICATION = os.getenv('CONTACT_SEND_ADMIN_NOTIFICATION', 'True') == 'True'
CONTACT_SEND_CLIENT_CONFIRMATION = os.getenv('CONTACT_SEND_CLIENT_CONFIRMATION', 'True') == 'True'

CONTACT_DEFAULT_LANGUAGE = os.getenv('CONTACT_DEFAULT_LANGUAGE', 'fr')

# Anti-abuse
CONTACT_HONEYPOT_ENABLED = os.getenv('CONTACT_HONEYPOT_ENABLED', 'True') == 'True'
CONTACT_RATE_LIMIT_WINDOW = int(os.getenv('CONTACT_RATE_LIMIT_WINDOW', 60))  # seconds
# 'cache' is only shared between workers when the cache is Redis
CONTACT_RATE_LIMIT_BACKEND = os.getenv(
    'CONTACT_RATE_LIMIT_BACKEND',
    'cache' if os.getenv('REDIS_ENABLED', 'False') == 'True' else 'file',
)
CONTACT_RATE_LIMIT_DIR = os.getenv('CONTACT_RATE_LIMIT_DIR', str(BASE_DIR / 'var' / 'rate_limits'))

# Append-only submission log
CONTACT_SUBMISSION_LOG_ENABLED = os.getenv('CONTACT_SUBMISSION_LOG_ENABLED', 'True') == 'True'
CONTACT_SUBMISSION_LOG = os.getenv('CONTACT_SUBMISSION_LOG', str(BASE_DIR / 'logs' / 'contact-submissions.log'))

"""
Test settings: production settings with every outbound channel stubbed.
"""
import os

os.environ.setdefault('SECRET_KEY', 'test-secret-key-not-for-production')

from core.settings import *  # noqa: E402,F401,F403

DEBUG = False
SECURE_SSL_REDIRECT = False

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'contact-tests',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
EMAIL_HOST_USER = 'contact@fastcaisse.be'
DEFAULT_FROM_EMAIL = EMAIL_HOST_USER

TURNSTILE_SITE_KEY = '1x00000000000000000000AA'
TURNSTILE_SECRET_KEY = 'test-turnstile-secret'
TURNSTILE_TIMEOUT = 10

COMPANY_NAME = 'FastCaisse'
COMPANY_WEBSITE = 'https://fastcaisse.be'
CONTACT_EMAIL_TO = 'contact@fastcaisse.be'
CONTACT_EMAIL_FROM = 'contact@fastcaisse.be'
CONTACT_EMAIL_FROM_NAME = 'FastCaisse Website'
CONTACT_EMAIL_REPLY_TO = 'contact@fastcaisse.be'
CONTACT_EMAIL_CC = []
CONTACT_EMAIL_BCC = []
CONTACT_SEND_ADMIN_NOTIFICATION = True
CONTACT_SEND_CLIENT_CONFIRMATION = True
CONTACT_DEFAULT_LANGUAGE = 'fr'
CONTACT_HONEYPOT_ENABLED = True
CONTACT_RATE_LIMIT_WINDOW = 60
CONTACT_RATE_LIMIT_BACKEND = 'cache'
CONTACT_SUBMISSION_LOG_ENABLED = True

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {'class': 'logging.StreamHandler'},
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
}

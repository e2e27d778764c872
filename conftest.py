"""
Shared pytest fixtures for contact form tests.
"""
import pytest
from django.core.cache import cache
from rest_framework.test import APIClient


@pytest.fixture(autouse=True)
def clear_cache():
    """Clear cache before and after each test to prevent pollution."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def contact_storage(settings, tmp_path):
    """Keep rate-limit files and the submission log inside the test's tmp dir."""
    settings.CONTACT_RATE_LIMIT_DIR = str(tmp_path / 'rate_limits')
    settings.CONTACT_SUBMISSION_LOG = str(tmp_path / 'logs' / 'contact-submissions.log')
    return tmp_path


@pytest.fixture
def api_client():
    """API client for making requests."""
    return APIClient()


@pytest.fixture
def valid_form_data():
    return {
        'firstName': 'John',
        'lastName': 'Doe',
        'email': 'john@example.com',
        'subject': 'Demo request',
        'message': 'Please call me about pricing.',
        'gdpr-consent': 'on',
        'cf-turnstile-response': 'valid-token',
    }

"""
Contact Form Submission Integration Tests

Drives the public endpoints end to end through the DRF test client:
- POST /api/contact/submit  (validation, anti-abuse gate, emails, audit log)
- GET  /api/contact/config  (client guard bootstrap)

Turnstile is mocked at the service singleton; email goes to Django's
locmem outbox.

Run with: pytest tests/integration/test_contact_form_submission.py -v
"""
import smtplib
from unittest.mock import patch

import pytest
from django.core import mail
from django.core.management import call_command
from rest_framework import status

from contact.localization import SUPPORTED_LANGUAGES, client_messages, translate

SUBMIT_URL = '/api/contact/submit'
CONFIG_URL = '/api/contact/config'

EN_SUCCESS = (
    'Thank you for your message! We have received your inquiry '
    'and will get back to you within 24-48 hours.'
)


# =============================================================================
# SUCCESSFUL SUBMISSIONS
# =============================================================================

class TestSuccessfulSubmission:

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_demo_request(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True

        response = api_client.post(SUBMIT_URL, {**valid_form_data, 'language': 'en'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {
            'success': True,
            'message': EN_SUCCESS,
            'type': 'success',
            'details': {'adminNotified': True, 'confirmationSent': True},
        }
        assert len(mail.outbox) == 2
        mock_captcha.assert_called_once_with('valid-token', '127.0.0.1')

    @pytest.mark.parametrize('language', SUPPORTED_LANGUAGES)
    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_success_copy_per_language(self, mock_captcha, language, api_client, valid_form_data):
        mock_captcha.return_value = True

        response = api_client.post(SUBMIT_URL, {**valid_form_data, 'language': language}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['message'] == translate(language, 'responses', 'success')

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_language_from_referer(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True

        response = api_client.post(
            SUBMIT_URL, valid_form_data, format='json',
            HTTP_REFERER='https://fastcaisse.be/contact-nl.html',
        )

        assert response.data['message'] == translate('nl', 'responses', 'success')

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_defaults_to_french(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True

        response = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert response.data['message'] == translate('fr', 'responses', 'success')

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_form_encoded_body(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True

        response = api_client.post(SUBMIT_URL, valid_form_data)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is True

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_client_ip_from_forwarded_header(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True

        api_client.post(
            SUBMIT_URL, valid_form_data, format='json',
            HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1',
        )

        mock_captcha.assert_called_once_with('valid-token', '203.0.113.7')

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_submission_is_logged(self, mock_captcha, api_client, valid_form_data, settings):
        mock_captcha.return_value = True

        api_client.post(SUBMIT_URL, valid_form_data, format='json')

        with open(settings.CONTACT_SUBMISSION_LOG, encoding='utf-8') as fh:
            lines = fh.read().splitlines()
        assert len(lines) == 1
        assert lines[0].endswith(' - john@example.com - Demo request')


# =============================================================================
# VALIDATION FAILURES
# =============================================================================

class TestValidationFailures:

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_missing_fields(self, mock_captcha, api_client):
        response = api_client.post(
            SUBMIT_URL,
            {'language': 'en', 'email': 'john@example.com', 'cf-turnstile-response': 'valid-token'},
            format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['success'] is False
        assert response.data['type'] == 'error'
        assert set(response.data['fields']) == {
            'firstName', 'lastName', 'subject', 'message', 'gdpr-consent',
        }
        assert response.data['message'].startswith('Validation failed: ')
        assert 'First Name is required' in response.data['message']
        mock_captcha.assert_not_called()
        assert mail.outbox == []

    def test_missing_fields_in_requested_language(self, api_client):
        response = api_client.post(SUBMIT_URL, {'language': 'fr'}, format='json')

        assert response.data['fields']['firstName'] == 'Prénom est requis'
        assert response.data['message'].startswith('Échec de la validation: ')

    def test_markup_only_name(self, api_client, valid_form_data):
        response = api_client.post(
            SUBMIT_URL, {**valid_form_data, 'firstName': '<b></b>', 'language': 'en'}, format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['fields'] == {'firstName': 'First Name is required'}
        assert len(mail.outbox) == 0

    def test_short_message(self, api_client, valid_form_data):
        response = api_client.post(
            SUBMIT_URL, {**valid_form_data, 'message': 'short', 'language': 'en'}, format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['success'] is False
        assert response.data['fields'] == {'message': 'Message must be at least 10 characters'}


# =============================================================================
# ANTI-ABUSE REJECTIONS
# =============================================================================

class TestAbuseRejections:

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_missing_captcha_token(self, mock_captcha, api_client, valid_form_data):
        del valid_form_data['cf-turnstile-response']

        response = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['success'] is False
        assert response.data['type'] == 'security_error'
        assert response.data['error_code'] == 'CAPTCHA_REQUIRED'
        mock_captcha.assert_not_called()
        assert mail.outbox == []

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_invalid_captcha_token(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = False

        response = api_client.post(SUBMIT_URL, {**valid_form_data, 'language': 'en'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['type'] == 'security_error'
        assert response.data['error_code'] == 'CAPTCHA_INVALID'
        assert response.data['message'] == 'Security verification failed. Please try again.'
        assert mail.outbox == []

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_too_many_links(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True
        valid_form_data['message'] = (
            'Win the lottery now! http://a http://b http://c http://d http://e http://f'
        )

        response = api_client.post(SUBMIT_URL, {**valid_form_data, 'language': 'en'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data == {
            'success': False,
            'message': 'Your message appears to be spam. Please contact us directly.',
            'type': 'error',
        }
        assert mail.outbox == []

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_repeated_characters(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True
        valid_form_data['message'] = 'Please call me ' + 'z' * 16

        response = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['message'] == translate('fr', 'responses', 'spam')

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_honeypot(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True

        response = api_client.post(
            SUBMIT_URL, {**valid_form_data, 'honeypot': 'https://bot.example'}, format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['message'] == translate('fr', 'responses', 'spam')


# =============================================================================
# RATE LIMITING
# =============================================================================

class TestRateLimiting:

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_second_submission_within_window(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = True

        first = api_client.post(SUBMIT_URL, valid_form_data, format='json')
        second = api_client.post(
            SUBMIT_URL, {**valid_form_data, 'email': 'JOHN@example.com', 'language': 'en'}, format='json',
        )

        assert first.status_code == status.HTTP_200_OK
        assert second.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert second.data['success'] is False
        assert 0 < second.data['retry_after'] <= 60
        assert second['Retry-After'] == str(second.data['retry_after'])
        assert 'seconds remaining' in second.data['message']
        assert len(mail.outbox) == 2

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_failed_captcha_does_not_consume_window(self, mock_captcha, api_client, valid_form_data):
        mock_captcha.return_value = False
        api_client.post(SUBMIT_URL, valid_form_data, format='json')

        mock_captcha.return_value = True
        response = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert response.status_code == status.HTTP_200_OK

    @patch('contact.rate_limiting.current_timestamp')
    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_reset_then_two_submissions_a_window_apart(
        self, mock_captcha, mock_now, api_client, valid_form_data
    ):
        mock_captcha.return_value = True
        mock_now.side_effect = [1000, 1060]

        call_command('reset_contact_rate_limits', verbosity=0)
        first = api_client.post(SUBMIT_URL, valid_form_data, format='json')
        second = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert first.status_code == status.HTTP_200_OK
        assert second.status_code == status.HTTP_200_OK

    @patch('django.core.cache.backends.locmem.LocMemCache.add')
    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_cache_outage_still_delivers(
        self, mock_captcha, mock_cache_add, api_client, valid_form_data, settings
    ):
        mock_captcha.return_value = True
        mock_cache_add.side_effect = ConnectionError('redis unavailable')
        settings.CONTACT_RATE_LIMIT_BACKEND = 'cache'

        response = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is True
        assert len(mail.outbox) == 2

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_file_backend(self, mock_captcha, api_client, valid_form_data, settings, tmp_path):
        mock_captcha.return_value = True
        settings.CONTACT_RATE_LIMIT_BACKEND = 'file'

        first = api_client.post(SUBMIT_URL, valid_form_data, format='json')
        second = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert first.status_code == status.HTTP_200_OK
        assert second.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert len(list((tmp_path / 'rate_limits').glob('rate_limit_*.tmp'))) == 1


# =============================================================================
# DELIVERY
# =============================================================================

class TestDelivery:

    @patch('contact.notifications.EmailMultiAlternatives.send')
    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_operator_send_failure(self, mock_captcha, mock_send, api_client, valid_form_data):
        mock_captcha.return_value = True
        mock_send.side_effect = smtplib.SMTPException('relay unavailable')

        response = api_client.post(SUBMIT_URL, {**valid_form_data, 'language': 'en'}, format='json')

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.data['success'] is False
        assert response.data['type'] == 'error'
        assert 'contact@fastcaisse.be' in response.data['message']
        assert response.data['details'] == {'adminNotified': False, 'confirmationSent': False}

    @patch('contact.notifications.EmailMultiAlternatives.send')
    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_confirmation_failure_still_succeeds(self, mock_captcha, mock_send, api_client, valid_form_data):
        mock_captcha.return_value = True
        mock_send.side_effect = [1, smtplib.SMTPException('mailbox unavailable')]

        response = api_client.post(SUBMIT_URL, valid_form_data, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['details'] == {'adminNotified': True, 'confirmationSent': False}


# =============================================================================
# ERROR ENVELOPE
# =============================================================================

class TestErrorEnvelope:

    def test_method_not_allowed(self, api_client):
        response = api_client.get(SUBMIT_URL, {'language': 'en'})

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
        assert response.data == {
            'success': False,
            'message': 'Method not allowed',
            'type': 'error',
        }

    def test_malformed_json(self, api_client):
        response = api_client.post(SUBMIT_URL, data='{"firstName": ', content_type='application/json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['success'] is False
        assert response.data['message'] == translate('fr', 'responses', 'malformed_request')

    def test_json_array_body(self, api_client):
        response = api_client.post(SUBMIT_URL, ['not', 'an', 'object'], format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['success'] is False

    @patch('contact.views.ContactSubmissionService.process')
    def test_unexpected_error(self, mock_process, api_client, valid_form_data):
        mock_process.side_effect = RuntimeError('boom')

        response = api_client.post(SUBMIT_URL, {**valid_form_data, 'language': 'nl'}, format='json')

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.data == {
            'success': False,
            'message': translate('nl', 'responses', 'server_error'),
            'type': 'error',
        }


# =============================================================================
# CLIENT GUARD BOOTSTRAP
# =============================================================================

class TestConfigEndpoint:

    def test_config_for_language(self, api_client):
        response = api_client.get(CONFIG_URL, {'language': 'nl'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['language'] == 'nl'
        assert response.data['languages'] == ['fr', 'en', 'nl']
        assert response.data['messages'] == client_messages('nl')
        assert response.data['limits']['message'] == {'min': 10, 'max': 2000}
        assert response.data['cooldown'] == 60
        assert response.data['turnstileSiteKey'] == '1x00000000000000000000AA'
        assert 'gdpr-consent' in response.data['requiredFields']

    def test_config_language_from_referer(self, api_client):
        response = api_client.get(CONFIG_URL, HTTP_REFERER='https://fastcaisse.be/contact-en.html')

        assert response.data['language'] == 'en'

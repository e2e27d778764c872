"""
Tests for the Cloudflare Turnstile verification client.

The siteverify endpoint is faked by patching ``requests.post``.
"""
from unittest.mock import Mock, patch

import pytest
import requests

from core.turnstile_service import TurnstileService, TurnstileVerificationError


def fake_response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    return response


@pytest.fixture
def service():
    return TurnstileService()


class TestTurnstileService:

    @patch('core.turnstile_service.requests.post')
    def test_valid_token(self, mock_post, service):
        mock_post.return_value = fake_response(body={'success': True})

        assert service.verify_token('token-123', user_ip='203.0.113.7') is True
        mock_post.assert_called_once_with(
            TurnstileService.VERIFY_URL,
            data={
                'secret': 'test-turnstile-secret',
                'response': 'token-123',
                'remoteip': '203.0.113.7',
            },
            timeout=10,
        )

    @patch('core.turnstile_service.requests.post')
    def test_remote_ip_is_optional(self, mock_post, service):
        mock_post.return_value = fake_response(body={'success': True})

        service.verify_token('token-123')

        assert 'remoteip' not in mock_post.call_args.kwargs['data']

    @patch('core.turnstile_service.requests.post')
    def test_rejected_token(self, mock_post, service):
        mock_post.return_value = fake_response(
            body={'success': False, 'error-codes': ['invalid-input-response']},
        )

        assert service.verify_token('token-123') is False

    @patch('core.turnstile_service.requests.post')
    def test_empty_token_skips_network(self, mock_post, service):
        assert service.verify_token('') is False
        assert service.verify_token(None) is False
        mock_post.assert_not_called()

    @patch('core.turnstile_service.requests.post')
    def test_missing_secret_fails_closed(self, mock_post, service, settings):
        settings.TURNSTILE_SECRET_KEY = ''

        assert service.verify_token('token-123') is False
        mock_post.assert_not_called()

    @patch('core.turnstile_service.requests.post')
    def test_timeout_fails_closed(self, mock_post, service):
        mock_post.side_effect = requests.exceptions.Timeout()

        assert service.verify_token('token-123') is False
        with pytest.raises(TurnstileVerificationError):
            service.siteverify('token-123')

    @patch('core.turnstile_service.requests.post')
    def test_network_error_fails_closed(self, mock_post, service):
        mock_post.side_effect = requests.exceptions.ConnectionError('unreachable')

        assert service.verify_token('token-123') is False

    @patch('core.turnstile_service.requests.post')
    def test_http_error_fails_closed(self, mock_post, service):
        mock_post.return_value = fake_response(status_code=502)

        assert service.verify_token('token-123') is False

    @patch('core.turnstile_service.requests.post')
    def test_invalid_json_fails_closed(self, mock_post, service):
        response = fake_response()
        response.json.side_effect = ValueError('not json')
        mock_post.return_value = response

        assert service.verify_token('token-123') is False

    @patch('core.turnstile_service.requests.post')
    def test_configured_timeout(self, mock_post, service, settings):
        settings.TURNSTILE_TIMEOUT = 3
        mock_post.return_value = fake_response(body={'success': True})

        service.verify_token('token-123')

        assert mock_post.call_args.kwargs['timeout'] == 3

"""
Cloudflare Turnstile CAPTCHA Verification Service

Verifies Turnstile tokens from the contact form against the Cloudflare API.

Documentation: https://developers.cloudflare.com/turnstile/
"""

import requests
import logging
from django.conf import settings

logger = logging.getLogger(__name__)


class TurnstileVerificationError(Exception):
    """Raised when the verification endpoint cannot be used."""
    pass


class TurnstileService:
    """
    Service for verifying Cloudflare Turnstile CAPTCHA tokens.

    There is no "disabled" mode: a token is only ever accepted after
    Cloudflare has confirmed it. For local development use the Cloudflare
    test secret ``1x0000000000000000000000000000000AA`` (always passes).

    Usage:
        service = TurnstileService()
        is_valid = service.verify_token(token, user_ip='192.168.1.1')
    """

    VERIFY_URL = 'https://challenges.cloudflare.com/turnstile/v0/siteverify'

    @property
    def secret_key(self):
        return getattr(settings, 'TURNSTILE_SECRET_KEY', '')

    @property
    def timeout(self):
        return getattr(settings, 'TURNSTILE_TIMEOUT', 10)

    def siteverify(self, token: str, user_ip: str = None) -> dict:
        """
        Call the siteverify endpoint and return the decoded JSON body.

        Raises:
            TurnstileVerificationError: on missing secret, transport failure,
                non-200 status or a body that is not JSON
        """
        if not self.secret_key:
            raise TurnstileVerificationError("TURNSTILE_SECRET_KEY not configured")

        payload = {
            'secret': self.secret_key,
            'response': token,
        }

        # Include IP if provided (recommended for better security)
        if user_ip:
            payload['remoteip'] = user_ip

        try:
            response = requests.post(
                self.VERIFY_URL,
                data=payload,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise TurnstileVerificationError("Turnstile verification timeout") from e
        except requests.exceptions.RequestException as e:
            raise TurnstileVerificationError(f"Turnstile network error: {e}") from e

        if response.status_code != 200:
            raise TurnstileVerificationError(
                f"Turnstile API error: {response.status_code}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise TurnstileVerificationError("Turnstile API returned invalid JSON") from e

    def verify_token(self, token: str, user_ip: str = None) -> bool:
        """
        Verify a Turnstile token.

        Args:
            token: The Turnstile response token from frontend
            user_ip: Optional user IP address for additional verification

        Returns:
            True if Cloudflare accepted the token, False otherwise.
            Endpoint unavailability fails closed.
        """
        if not token:
            logger.warning("No Turnstile token provided")
            return False

        try:
            result = self.siteverify(token, user_ip)
        except TurnstileVerificationError as e:
            logger.error(f"Turnstile verification unavailable: {e}")
            return False

        if result.get('success'):
            logger.info("Turnstile token verified successfully")
            return True

        error_codes = result.get('error-codes', [])
        logger.warning(f"Turnstile verification failed: {error_codes}")
        return False


# Singleton instance
turnstile_service = TurnstileService()

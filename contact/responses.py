"""
Contact Response Translator

Turns a pipeline outcome into the single JSON envelope the contact form
client understands:

    {success, message, type, fields?, details?, error_code?, retry_after?}

Every message is localized to the submission's language.
"""
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

from .localization import translate
from .submission import AbuseReason

TYPE_SUCCESS = 'success'
TYPE_ERROR = 'error'
TYPE_SECURITY_ERROR = 'security_error'


class ContactResponseTranslator:

    def __init__(self, language):
        self.language = language

    def _msg(self, key, **params):
        return translate(self.language, 'responses', key, **params)

    def _envelope(self, success, message, response_type, http_status, headers=None, **extra):
        body = {
            'success': success,
            'message': message,
            'type': response_type,
        }
        body.update(extra)
        return Response(body, status=http_status, headers=headers)

    def from_result(self, result):
        """Response for a finished ``ContactSubmissionService`` run."""
        if result.succeeded:
            return self.success(result.outcome)
        if result.field_errors:
            return self.validation_failed(result.field_errors)
        if result.decision is not None and not result.decision.accepted:
            return self.rejected(result.decision)
        if result.outcome is not None:
            return self.delivery_failed(result.outcome)
        return self.server_error()

    def success(self, outcome):
        return self._envelope(
            True, self._msg('success'), TYPE_SUCCESS, status.HTTP_200_OK,
            details={
                'adminNotified': outcome.admin_sent,
                'confirmationSent': outcome.client_sent,
            },
        )

    def validation_failed(self, field_errors):
        message = f"{self._msg('validation_failed')}: {', '.join(field_errors.values())}"
        return self._envelope(
            False, message, TYPE_ERROR, status.HTTP_400_BAD_REQUEST,
            fields=field_errors,
        )

    def rejected(self, decision):
        reason = decision.reason

        if reason == AbuseReason.CAPTCHA_REQUIRED:
            return self._envelope(
                False, self._msg('captcha_required'), TYPE_SECURITY_ERROR,
                status.HTTP_400_BAD_REQUEST, error_code=reason.value,
            )

        if reason == AbuseReason.CAPTCHA_INVALID:
            return self._envelope(
                False, self._msg('captcha_invalid'), TYPE_SECURITY_ERROR,
                status.HTTP_400_BAD_REQUEST, error_code=reason.value,
            )

        if reason == AbuseReason.RATE_LIMITED:
            return self._envelope(
                False, self._msg('rate_limited', seconds=decision.retry_after), TYPE_ERROR,
                status.HTTP_429_TOO_MANY_REQUESTS,
                headers={'Retry-After': str(decision.retry_after)},
                retry_after=decision.retry_after,
            )

        # Spam: generic copy, the triggering checks are only logged
        return self._envelope(False, self._msg('spam'), TYPE_ERROR, status.HTTP_400_BAD_REQUEST)

    def delivery_failed(self, outcome):
        contact_email = getattr(settings, 'CONTACT_EMAIL_TO', '')
        return self._envelope(
            False, self._msg('delivery_failed', contact_email=contact_email), TYPE_ERROR,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            details={
                'adminNotified': outcome.admin_sent,
                'confirmationSent': outcome.client_sent,
            },
        )

    def server_error(self):
        return self._envelope(
            False, self._msg('server_error'), TYPE_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

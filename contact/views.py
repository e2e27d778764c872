"""
Contact Form Views

Public, unauthenticated API endpoints for the website contact form.
"""
import logging

from django.conf import settings
from rest_framework.exceptions import ParseError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .localization import SUPPORTED_LANGUAGES, client_messages, detect_language
from .rate_limiting import get_client_ip
from .responses import ContactResponseTranslator
from .serializers import EMAIL_MAX_LENGTH, ContactFormSubmitSerializer
from .services import ContactSubmissionService

logger = logging.getLogger(__name__)


class ContactFormSubmitView(APIView):
    """
    Public endpoint for contact form submissions.

    POST /api/contact/submit

    No authentication required. Protected by Turnstile, spam heuristics and
    a per-address rate limit.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        """Submit a contact form."""
        # Parse errors surface here and go through the API exception handler
        payload = request.data
        if not hasattr(payload, 'get'):
            raise ParseError('Expected a JSON object or form data.')
        referer = request.META.get('HTTP_REFERER')

        try:
            result = ContactSubmissionService().process(
                payload,
                remote_ip=get_client_ip(request),
                referer=referer,
            )
        except Exception:
            logger.exception("Unexpected error while processing contact form submission")
            language = detect_language(payload.get('language'), referer)
            return ContactResponseTranslator(language).server_error()

        return ContactResponseTranslator(result.language).from_result(result)


class ContactFormConfigView(APIView):
    """
    Bootstrap data for the contact form client guard.

    GET /api/contact/config?language=en

    Returns the client copy for the resolved language, the validation limits
    the server enforces, the resubmission cooldown and the Turnstile site key.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        language = detect_language(
            request.query_params.get('language'),
            request.META.get('HTTP_REFERER'),
        )

        limits = {
            name: {'min': min_length, 'max': max_length}
            for name, (min_length, max_length) in ContactFormSubmitSerializer.LENGTH_RULES.items()
        }
        limits['email'] = {'min': 0, 'max': EMAIL_MAX_LENGTH}

        return Response({
            'success': True,
            'languages': list(SUPPORTED_LANGUAGES),
            'language': language,
            'messages': client_messages(language),
            'requiredFields': ContactFormSubmitSerializer.REQUIRED_FIELDS + ['gdpr-consent'],
            'limits': limits,
            'cooldown': getattr(settings, 'CONTACT_RATE_LIMIT_WINDOW', 60),
            'turnstileSiteKey': getattr(settings, 'TURNSTILE_SITE_KEY', ''),
        })

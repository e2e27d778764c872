"""
API exception handler.

Every error leaving the API is the same JSON envelope the contact form
client reads: ``{success: false, message, type: "error"}``, localized from
the request's ``language`` query parameter or Referer page.
"""
import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from contact.localization import detect_language, translate

logger = logging.getLogger(__name__)


def _request_language(request):
    if request is None:
        return detect_language()
    return detect_language(
        request.query_params.get('language'),
        request.META.get('HTTP_REFERER'),
    )


def json_exception_handler(exc, context):
    request = context.get('request')
    language = _request_language(request)
    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception(f"Unhandled API error in {view.__class__.__name__ if view else 'unknown view'}", exc_info=exc)
        return Response(
            {
                'success': False,
                'message': translate(language, 'responses', 'server_error'),
                'type': 'error',
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.MethodNotAllowed):
        message = translate(language, 'responses', 'method_not_allowed')
    elif isinstance(exc, (exceptions.ParseError, exceptions.UnsupportedMediaType)):
        message = translate(language, 'responses', 'malformed_request')
    else:
        detail = getattr(exc, 'detail', '')
        message = str(detail) if isinstance(detail, str) else translate(language, 'responses', 'server_error')

    response.data = {
        'success': False,
        'message': message,
        'type': 'error',
    }
    return response

"""
Contact Submission Service

Runs one public contact form submission through the pipeline:

    language detection -> validation & sanitization -> anti-abuse gate
    -> email dispatch -> audit log

and reports where it ended. Each call is independent; the rate-limit store
is the only state shared between submissions.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from .audit import log_submission
from .localization import detect_language
from .notifications import NotificationDispatcher
from .serializers import ContactFormSubmitSerializer
from .submission import (
    AbuseDecision,
    NotificationOutcome,
    SubmissionLifecycle,
    SubmissionState,
    ValidatedSubmission,
)
from .verification import AbuseVerifier

logger = logging.getLogger(__name__)

TOKEN_FIELD = 'cf-turnstile-response'
HONEYPOT_FIELD = 'honeypot'
LANGUAGE_FIELD = 'language'


@dataclass
class SubmissionResult:
    language: str
    lifecycle: SubmissionLifecycle
    field_errors: dict = field(default_factory=dict)
    submission: Optional[ValidatedSubmission] = None
    decision: Optional[AbuseDecision] = None
    outcome: Optional[NotificationOutcome] = None

    @property
    def state(self):
        return self.lifecycle.state

    @property
    def succeeded(self):
        return self.lifecycle.state == SubmissionState.COMPLETED


class ContactSubmissionService:
    """
    Usage:
        result = ContactSubmissionService().process(request.data, remote_ip, referer)
        if result.succeeded:
            ...
    """

    def __init__(self, verifier=None, dispatcher=None):
        self.verifier = verifier or AbuseVerifier()
        self.dispatcher = dispatcher or NotificationDispatcher()

    def process(self, payload, remote_ip=None, referer=None):
        language = detect_language(payload.get(LANGUAGE_FIELD), referer)
        lifecycle = SubmissionLifecycle()
        result = SubmissionResult(language=language, lifecycle=lifecycle)

        # Validation
        lifecycle.advance(SubmissionState.VALIDATED)
        serializer = ContactFormSubmitSerializer(data=payload, context={'language': language})
        if not serializer.is_valid():
            result.field_errors = serializer.get_field_errors()
            lifecycle.advance(SubmissionState.REJECTED)
            logger.info(f"Contact form validation failed: {sorted(result.field_errors)}")
            return result

        submission = serializer.to_submission()
        result.submission = submission

        # Anti-abuse
        lifecycle.advance(SubmissionState.ABUSE_CHECKED)
        result.decision = self.verifier.verify(
            submission,
            token=payload.get(TOKEN_FIELD),
            remote_ip=remote_ip,
            honeypot=self._honeypot(payload),
        )
        if not result.decision.accepted:
            lifecycle.advance(SubmissionState.REJECTED)
            return result

        # Delivery
        lifecycle.advance(SubmissionState.DISPATCHED)
        result.outcome = self.dispatcher.dispatch(submission)
        log_submission(submission)
        if not result.outcome.delivered:
            lifecycle.advance(SubmissionState.REJECTED)
            logger.error(f"Contact form submission from {submission.email} could not be delivered")
            return result

        lifecycle.advance(SubmissionState.COMPLETED)
        logger.info(f"Contact form submission completed ({language})")
        return result

    @staticmethod
    def _honeypot(payload):
        value = payload.get(HONEYPOT_FIELD)
        if not value:
            return ''
        return value if isinstance(value, str) else str(value)

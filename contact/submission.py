"""
Contact Submission Records

Typed values passed between pipeline stages, plus the per-submission
state machine. Nothing here outlives a single request.
"""
from dataclasses import dataclass, field
from typing import Optional

from django.db import models


class AbuseReason(models.TextChoices):
    CAPTCHA_REQUIRED = 'CAPTCHA_REQUIRED', 'Verification required'
    CAPTCHA_INVALID = 'CAPTCHA_INVALID', 'Verification failed'
    SPAM_DETECTED = 'SPAM_DETECTED', 'Spam detected'
    RATE_LIMITED = 'RATE_LIMITED', 'Rate limited'


@dataclass(frozen=True)
class ValidatedSubmission:
    """
    Sanitized contact form record.

    Only built when every field passed validation. Text fields are
    tag-stripped, free of control characters and HTML-escaped.
    ``raw_message`` is the trimmed message body as received and is used
    for abuse scoring only; it is never rendered.
    """
    first_name: str
    last_name: str
    email: str
    subject: str
    message: str
    language: str
    phone: str = ''
    raw_message: str = field(default='', repr=False)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class AbuseDecision:
    accepted: bool
    reason: Optional[AbuseReason] = None
    retry_after: int = 0
    flags: tuple = ()

    @classmethod
    def accept(cls):
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason, retry_after=0, flags=()):
        return cls(accepted=False, reason=reason, retry_after=retry_after, flags=tuple(flags))


@dataclass(frozen=True)
class NotificationOutcome:
    admin_sent: bool
    client_sent: bool
    admin_required: bool = True

    @property
    def delivered(self):
        """The operator notification is the one that decides success."""
        return self.admin_sent or not self.admin_required


# ==============================================================================
# STATE MACHINE
# ==============================================================================

class SubmissionState(models.TextChoices):
    RECEIVED = 'received', 'Received'
    VALIDATED = 'validated', 'Validated'
    ABUSE_CHECKED = 'abuse_checked', 'Abuse checked'
    DISPATCHED = 'dispatched', 'Dispatched'
    COMPLETED = 'completed', 'Completed'
    REJECTED = 'rejected', 'Rejected'


class StatusTransitionError(Exception):
    """Raised when an invalid status transition is attempted."""
    pass


SUBMISSION_TRANSITIONS = {
    SubmissionState.RECEIVED: [SubmissionState.VALIDATED],
    SubmissionState.VALIDATED: [SubmissionState.ABUSE_CHECKED, SubmissionState.REJECTED],
    SubmissionState.ABUSE_CHECKED: [SubmissionState.DISPATCHED, SubmissionState.REJECTED],
    SubmissionState.DISPATCHED: [SubmissionState.COMPLETED, SubmissionState.REJECTED],
    SubmissionState.COMPLETED: [],  # Terminal state
    SubmissionState.REJECTED: [],  # Terminal state
}


class SubmissionLifecycle:
    """
    Tracks where one submission is in the pipeline.

    Each state names the stage the submission has entered. ``Rejected`` is
    reachable from ``Validated`` (field errors), ``AbuseChecked`` (any abuse
    reason) and ``Dispatched`` (operator notification failed). ``Completed``
    only follows a dispatch whose operator notification went out.
    """

    def __init__(self):
        self.state = SubmissionState.RECEIVED
        self.history = [SubmissionState.RECEIVED]

    def advance(self, new_state):
        valid_transitions = SUBMISSION_TRANSITIONS.get(self.state, [])
        if new_state not in valid_transitions:
            raise StatusTransitionError(
                f"Invalid submission transition: {self.state} -> {new_state}. "
                f"Valid transitions: {[str(s) for s in valid_transitions]}"
            )
        self.state = new_state
        self.history.append(new_state)
        return self

    @property
    def is_terminal(self):
        return not SUBMISSION_TRANSITIONS[self.state]

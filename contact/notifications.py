"""
Contact Notification Dispatcher

Sends the two emails of an accepted submission, each over its own SMTP
connection so a dropped session cannot take the other send down with it:
- operator notification (to CONTACT_EMAIL_TO), reply-to the sender
- sender confirmation (to the submitter)

Sends are synchronous, bounded by EMAIL_TIMEOUT and never retried. Only
the operator notification decides whether the submission was delivered.
"""
import html
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.mail import EmailMultiAlternatives, get_connection
from django.core.validators import validate_email
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.safestring import mark_safe

from .localization import email_copy
from .submission import NotificationOutcome

logger = logging.getLogger(__name__)

SUBMITTED_AT_FORMAT = '%Y-%m-%d %H:%M:%S'

# ValidatedSubmission fields that hold HTML-escaped user text
USER_FIELDS = ['first_name', 'last_name', 'full_name', 'email', 'phone', 'subject', 'message']


def _is_valid_email(address):
    try:
        validate_email(address)
    except ValidationError:
        return False
    return True


def _sender(display_name):
    address = getattr(settings, 'CONTACT_EMAIL_FROM', None) or settings.DEFAULT_FROM_EMAIL
    return f"{display_name} <{address}>" if display_name else address


class NotificationDispatcher:
    """
    Usage:
        outcome = NotificationDispatcher().dispatch(submission)
        if outcome.delivered:
            ...
    """

    ADMIN_TEMPLATE = 'contact/emails/admin_notification'
    CLIENT_TEMPLATE = 'contact/emails/client_confirmation'

    @property
    def company(self):
        return getattr(settings, 'COMPANY_NAME', '')

    def build_context(self, submission, submitted_at=None):
        """
        Template context shared by both messages.

        Returns (html_context, text_context). User values are already escaped
        by the serializer: HTML templates get them as safe strings, plain-text
        templates get them unescaped.
        """
        submitted_at = submitted_at or timezone.localtime()
        base = {
            'copy': email_copy(submission.language, company=self.company),
            'language': submission.language,
            'language_badge': submission.language.upper(),
            'submitted_at': submitted_at.strftime(SUBMITTED_AT_FORMAT),
            'year': submitted_at.year,
            'company_name': self.company,
            'company_website': getattr(settings, 'COMPANY_WEBSITE', ''),
            'company_address': getattr(settings, 'COMPANY_ADDRESS', ''),
            'contact_email': getattr(settings, 'CONTACT_EMAIL_TO', ''),
        }

        html_context = dict(base)
        text_context = dict(base)
        for name in USER_FIELDS:
            value = getattr(submission, name) or ''
            html_context[name] = mark_safe(value)
            text_context[name] = html.unescape(value)
        return html_context, text_context

    def _render(self, template, html_context, text_context):
        return (
            render_to_string(f"{template}.txt", text_context),
            render_to_string(f"{template}.html", html_context),
        )

    def build_admin_message(self, submission, html_context, text_context, connection=None):
        copy = html_context['copy']
        text_body, html_body = self._render(self.ADMIN_TEMPLATE, html_context, text_context)

        reply_to = [submission.email] if _is_valid_email(submission.email) else None

        message = EmailMultiAlternatives(
            subject=copy['subject_admin'],
            body=text_body,
            from_email=_sender(getattr(settings, 'CONTACT_EMAIL_FROM_NAME', '')),
            to=[settings.CONTACT_EMAIL_TO],
            cc=getattr(settings, 'CONTACT_EMAIL_CC', None) or None,
            bcc=getattr(settings, 'CONTACT_EMAIL_BCC', None) or None,
            reply_to=reply_to,
            connection=connection,
        )
        message.attach_alternative(html_body, "text/html")
        return message

    def build_client_message(self, submission, html_context, text_context, connection=None):
        copy = html_context['copy']
        text_body, html_body = self._render(self.CLIENT_TEMPLATE, html_context, text_context)

        reply_to = getattr(settings, 'CONTACT_EMAIL_REPLY_TO', '') or settings.CONTACT_EMAIL_TO

        message = EmailMultiAlternatives(
            subject=copy['subject_client'],
            body=text_body,
            from_email=_sender(self.company),
            to=[submission.email],
            reply_to=[reply_to],
            connection=connection,
        )
        message.attach_alternative(html_body, "text/html")
        return message

    def _connection(self):
        return get_connection(
            fail_silently=False,
            timeout=getattr(settings, 'EMAIL_TIMEOUT', 30),
        )

    def _send(self, label, build, submission, html_context, text_context):
        try:
            message = build(submission, html_context, text_context, connection=self._connection())
            # The backend opens and closes the connection around this one message
            message.send(fail_silently=False)
        except Exception:
            logger.exception(f"Failed to send contact {label} email for {submission.email}")
            return False
        logger.info(f"Contact {label} email sent for {submission.email}")
        return True

    def dispatch(self, submission):
        """Send both emails. Returns a NotificationOutcome."""
        send_admin = getattr(settings, 'CONTACT_SEND_ADMIN_NOTIFICATION', True)
        send_client = getattr(settings, 'CONTACT_SEND_CLIENT_CONFIRMATION', True)

        html_context, text_context = self.build_context(submission)

        admin_sent = client_sent = False
        if send_admin:
            admin_sent = self._send(
                'notification', self.build_admin_message,
                submission, html_context, text_context,
            )
        if send_client:
            client_sent = self._send(
                'confirmation', self.build_client_message,
                submission, html_context, text_context,
            )

        return NotificationOutcome(
            admin_sent=admin_sent,
            client_sent=client_sent,
            admin_required=send_admin,
        )

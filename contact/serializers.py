"""
Contact Form Serializers

Authoritative server-side validation and sanitization of public contact
form submissions. Produces either a complete ValidatedSubmission or the
full set of field errors, never a partially valid record.
"""
import re

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import EmailValidator
from django.utils.html import escape, strip_tags
from rest_framework import serializers

from .localization import PRIMARY_LANGUAGE, field_label, translate
from .submission import ValidatedSubmission

CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
PHONE_RE = re.compile(r'^\+?[0-9\-().]{10,20}$')
REPEATED_DIGITS_RE = re.compile(r'(\d)\1{8,}')
EMAIL_FORBIDDEN_CHARS_RE = re.compile(r'[<>"\']')

EMAIL_MAX_LENGTH = 254

DISPOSABLE_EMAIL_DOMAINS = [
    '10minutemail.com', 'guerrillamail.com', 'tempmail.org', 'tempmail.com',
    'throwaway.email', 'mailinator.com', 'trashmail.com', 'yopmail.com',
]


def clean_text(value):
    """Strip markup and control characters."""
    value = strip_tags(value.strip())
    return CONTROL_CHARS_RE.sub('', value).strip()


class ContactFormSubmitSerializer(serializers.Serializer):
    """
    Public contact form submission serializer.

    Wire field names are the form's (``firstName``, ``gdpr-consent``...);
    validated data uses Python names. Every check runs so that all field
    errors are reported together, localized to ``context['language']``.
    """

    REQUIRED_FIELDS = ['firstName', 'lastName', 'email', 'subject', 'message']

    # (min, max) in characters, measured on the trimmed value
    LENGTH_RULES = {
        'firstName': (2, 50),
        'lastName': (2, 50),
        'subject': (0, 200),
        'message': (10, 2000),
    }

    SOURCES = {
        'firstName': 'first_name',
        'lastName': 'last_name',
        'email': 'email',
        'phone': 'phone',
        'subject': 'subject',
        'message': 'message',
    }

    SANITIZED_FIELDS = ['first_name', 'last_name', 'subject', 'message', 'phone']

    @property
    def language(self):
        return self.context.get('language', PRIMARY_LANGUAGE)

    def _msg(self, key, **params):
        return translate(self.language, 'validation', key, **params)

    def get_fields(self):
        fields = {}
        for name, source in self.SOURCES.items():
            # DRF rejects a source equal to the field name
            extra = {'source': source} if source != name else {}
            fields[name] = serializers.CharField(
                **extra,
                required=False,
                allow_blank=True,
                allow_null=True,
                trim_whitespace=True,
                error_messages={
                    'invalid': self._msg('invalid', field=field_label(self.language, name)),
                },
            )
        fields['gdpr-consent'] = serializers.BooleanField(
            source='consent',
            required=False,
            default=False,
            error_messages={
                'invalid': self._msg('consent_required'),
            },
        )
        return fields

    def validate(self, attrs):
        errors = {}
        language = self.language
        raw_message = attrs.get('message') or ''

        # Rules apply to what is left once markup is stripped
        for source in self.SANITIZED_FIELDS:
            if attrs.get(source):
                attrs[source] = clean_text(attrs[source])

        # Required fields
        for name in self.REQUIRED_FIELDS:
            if not attrs.get(self.SOURCES[name]):
                errors[name] = self._msg('required', field=field_label(language, name))

        email = attrs.get('email')
        if email:
            email_error = self._check_email(email)
            if email_error:
                errors['email'] = email_error

        phone = attrs.get('phone')
        if phone:
            phone = re.sub(r'\s+', '', phone)
            attrs['phone'] = phone
            if not PHONE_RE.match(phone):
                errors['phone'] = self._msg('phone_invalid')
            elif REPEATED_DIGITS_RE.search(phone):
                errors['phone'] = self._msg('phone_repeated')

        for name, (min_length, max_length) in self.LENGTH_RULES.items():
            value = attrs.get(self.SOURCES[name])
            if not value:
                continue
            label = field_label(language, name)
            if len(value) < min_length:
                errors[name] = self._msg('length_min', field=label, min=min_length)
            elif len(value) > max_length:
                errors[name] = self._msg('length_max', field=label, max=max_length)

        if not attrs.get('consent'):
            errors['gdpr-consent'] = self._msg('consent_required')

        if errors:
            raise serializers.ValidationError(errors)

        attrs['raw_message'] = raw_message
        for source in self.SANITIZED_FIELDS:
            if attrs.get(source):
                attrs[source] = escape(attrs[source])
        return attrs

    def _check_email(self, email):
        """Return the first failing email rule's message, or None."""
        try:
            EmailValidator()(email)
        except DjangoValidationError:
            return self._msg('email_invalid')

        if len(email) > EMAIL_MAX_LENGTH:
            return self._msg('email_too_long')

        if EMAIL_FORBIDDEN_CHARS_RE.search(email):
            return self._msg('email_invalid_chars')

        if email.count('@') != 1:
            return self._msg('email_multiple_at')

        domain = email.rsplit('@', 1)[1].lower()
        if domain in DISPOSABLE_EMAIL_DOMAINS:
            return self._msg('email_disposable')

        return None

    def get_field_errors(self):
        """Flatten DRF's ``{field: [message]}`` into ``{field: message}``."""
        flat = {}
        for name, messages in self.errors.items():
            if isinstance(messages, (list, tuple)) and messages:
                flat[name] = str(messages[0])
            else:
                flat[name] = str(messages)
        return flat

    def to_submission(self):
        """Build the typed record. Only valid after ``is_valid()`` returned True."""
        data = self.validated_data
        return ValidatedSubmission(
            first_name=data['first_name'],
            last_name=data['last_name'],
            email=data['email'],
            phone=data.get('phone') or '',
            subject=data['subject'],
            message=data['message'],
            language=self.language,
            raw_message=data['raw_message'],
        )

"""
Unit Tests for the Contact Form App
"""
import hashlib
import json
import smtplib
from datetime import datetime
from io import StringIO
from unittest.mock import Mock, patch

import pytest
import requests
from django.core import mail
from django.core.management import call_command
from django.test import RequestFactory

from contact.antispam import SpamDetectionService
from contact.audit import format_entry, log_submission
from contact.client_guard import ContactFormGuard, GuardState, is_consent_given
from contact.localization import (
    SUPPORTED_LANGUAGES,
    client_messages,
    detect_language,
    load_catalog,
    translate,
)
from contact.notifications import NotificationDispatcher
from contact.rate_limiting import (
    CacheRateLimitStore,
    ContactRateLimiter,
    FileRateLimitStore,
    RateLimitStoreError,
    get_client_ip,
    hash_identifier,
)
from contact.responses import ContactResponseTranslator
from contact.serializers import ContactFormSubmitSerializer
from contact.submission import (
    AbuseDecision,
    AbuseReason,
    StatusTransitionError,
    SubmissionLifecycle,
    SubmissionState,
    ValidatedSubmission,
)
from contact.verification import AbuseVerifier


def make_submission(**overrides):
    values = {
        'first_name': 'John',
        'last_name': 'Doe',
        'email': 'john@example.com',
        'subject': 'Demo request',
        'message': 'Please call me about pricing.',
        'raw_message': 'Please call me about pricing.',
        'language': 'en',
    }
    values.update(overrides)
    return ValidatedSubmission(**values)


def cache_limiter(window=60):
    return ContactRateLimiter(CacheRateLimitStore(window))


# =============================================================================
# LOCALIZATION
# =============================================================================

class TestLocalization:

    def test_explicit_hint_wins(self):
        assert detect_language('en', 'https://fastcaisse.be/contact-nl.html') == 'en'

    def test_hint_is_normalized(self):
        assert detect_language(' NL ') == 'nl'

    def test_page_suffix_detection(self):
        assert detect_language(None, 'https://fastcaisse.be/contact-en.html') == 'en'
        assert detect_language(None, 'https://fastcaisse.be/contact-nl.html') == 'nl'

    def test_unsupported_values_fall_back_to_french(self):
        assert detect_language('de') == 'fr'
        assert detect_language(['en']) == 'fr'
        assert detect_language(None, 'https://fastcaisse.be/contact.html') == 'fr'
        assert detect_language() == 'fr'

    def test_configured_default_language(self, settings):
        settings.CONTACT_DEFAULT_LANGUAGE = 'nl'
        assert detect_language() == 'nl'

    def test_every_language_has_the_same_keys(self):
        catalog = load_catalog()
        reference = catalog['fr']
        for language in SUPPORTED_LANGUAGES:
            for section, strings in reference.items():
                assert set(catalog[language][section]) == set(strings), (language, section)

    def test_translate_fills_placeholders(self):
        assert translate('en', 'validation', 'required', field='Email') == 'Email is required'
        assert translate('en', 'validation', 'length_min', field='Message', min=10) == (
            'Message must be at least 10 characters'
        )

    def test_client_messages_come_from_shared_catalog(self):
        assert client_messages('nl') == load_catalog()['nl']['client']


# =============================================================================
# VALIDATION & SANITIZATION
# =============================================================================

class TestContactFormSubmitSerializer:

    def _serializer(self, data, language='en'):
        return ContactFormSubmitSerializer(data=data, context={'language': language})

    def test_valid_submission(self, valid_form_data):
        serializer = self._serializer(valid_form_data)
        assert serializer.is_valid(), serializer.errors

        submission = serializer.to_submission()
        assert submission.first_name == 'John'
        assert submission.email == 'john@example.com'
        assert submission.language == 'en'
        assert submission.full_name == 'John Doe'
        assert submission.phone == ''

    def test_all_missing_fields_reported_together(self):
        serializer = self._serializer({})
        assert not serializer.is_valid()

        errors = serializer.get_field_errors()
        assert set(errors) == {'firstName', 'lastName', 'email', 'subject', 'message', 'gdpr-consent'}
        assert errors['firstName'] == 'First Name is required'
        assert errors['gdpr-consent'] == 'Please accept the privacy policy and terms of service'

    def test_whitespace_only_is_missing(self, valid_form_data):
        valid_form_data['lastName'] = '   '
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors() == {'lastName': 'Last Name is required'}

    def test_errors_are_localized(self):
        serializer = self._serializer({}, language='fr')
        serializer.is_valid()
        assert serializer.get_field_errors()['firstName'] == 'Prénom est requis'

    def test_short_message(self, valid_form_data):
        valid_form_data['message'] = 'short'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors() == {
            'message': 'Message must be at least 10 characters',
        }

    def test_long_name(self, valid_form_data):
        valid_form_data['firstName'] = 'J' * 51
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors()['firstName'] == 'First Name must be less than 50 characters'

    def test_invalid_email(self, valid_form_data):
        valid_form_data['email'] = 'not-an-email'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors()['email'] == 'Please enter a valid email address'

    def test_disposable_email(self, valid_form_data):
        valid_form_data['email'] = 'john@Mailinator.com'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors()['email'] == 'Please use a permanent email address'

    def test_phone_whitespace_is_removed(self, valid_form_data):
        valid_form_data['phone'] = '+32 2 123 45 67'
        serializer = self._serializer(valid_form_data)
        assert serializer.is_valid(), serializer.errors
        assert serializer.to_submission().phone == '+3221234567'

    def test_phone_with_letters(self, valid_form_data):
        valid_form_data['phone'] = 'call me maybe'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors()['phone'] == 'Please enter a valid phone number (10-20 digits)'

    def test_phone_repeated_digits(self, valid_form_data):
        valid_form_data['phone'] = '0111111111'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors()['phone'] == (
            'Phone number appears to be invalid (too many repeated digits)'
        )

    def test_consent_off_is_rejected(self, valid_form_data):
        valid_form_data['gdpr-consent'] = 'off'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert 'gdpr-consent' in serializer.get_field_errors()

    def test_non_string_value_is_invalid(self, valid_form_data):
        valid_form_data['firstName'] = ['John']
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors()['firstName'] == 'First Name is not valid'

    def test_text_is_sanitized(self, valid_form_data):
        valid_form_data['subject'] = 'Pricing & <b>plans</b>'
        valid_form_data['message'] = '<i>Hello</i> there, please call me\x07'
        serializer = self._serializer(valid_form_data)
        assert serializer.is_valid(), serializer.errors

        submission = serializer.to_submission()
        assert submission.subject == 'Pricing &amp; plans'
        assert submission.message == 'Hello there, please call me'
        # Scoring still sees the original characters
        assert '<i>' in submission.raw_message

    def test_markup_only_name_is_missing(self, valid_form_data):
        valid_form_data['firstName'] = '<b></b>'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors() == {'firstName': 'First Name is required'}

    def test_length_is_measured_without_markup(self, valid_form_data):
        valid_form_data['message'] = '<p><b>Hi</b></p>'
        serializer = self._serializer(valid_form_data)
        assert not serializer.is_valid()
        assert serializer.get_field_errors() == {
            'message': 'Message must be at least 10 characters',
        }


# =============================================================================
# SPAM DETECTION
# =============================================================================

class TestSpamDetectionService:

    def test_legitimate_message(self):
        is_spam, flags = SpamDetectionService.check_message(
            'Please call me about pricing. Our site is https://example.com'
        )
        assert not is_spam
        assert flags == []

    def test_keyword(self):
        is_spam, flags = SpamDetectionService.check_message('Click HERE to claim your prize')
        assert is_spam
        assert 'keyword_click_here' in flags

    def test_keyword_must_be_a_whole_word(self):
        is_spam, _ = SpamDetectionService.check_message('We work with several casinos in town')
        assert not is_spam

    def test_too_many_links(self):
        five = ' '.join(f'http://{c}.example' for c in 'abcde')
        assert not SpamDetectionService.check_message(five)[0]

        six = five + ' https://f.example'
        is_spam, flags = SpamDetectionService.check_message(six)
        assert is_spam
        assert 'too_many_links' in flags

    def test_repeated_characters(self):
        assert not SpamDetectionService.check_message('Hello' + '!' * 15)[0]

        is_spam, flags = SpamDetectionService.check_message('Hello' + '!' * 16)
        assert is_spam
        assert 'repeated_characters' in flags

    def test_markup(self):
        assert SpamDetectionService.check_message('<a href="x">hi there</a>')[0]
        assert SpamDetectionService.check_message('run javascript please')[0]

    def test_caps(self):
        is_spam, flags = SpamDetectionService.check_message('HELLO THERE friend')
        assert is_spam
        assert 'excessive_caps' in flags

    def test_honeypot(self, settings):
        assert SpamDetectionService.check_message('Please call me', honeypot='http://bot')[0]

        settings.CONTACT_HONEYPOT_ENABLED = False
        assert not SpamDetectionService.check_message('Please call me', honeypot='http://bot')[0]


# =============================================================================
# RATE LIMITING
# =============================================================================

class TestRateLimiting:

    def test_hash_identifier_normalizes_address(self):
        expected = hashlib.sha256(b'john@example.com').hexdigest()
        assert hash_identifier(' John@Example.com ') == expected

    def test_one_submission_per_window(self):
        limiter = cache_limiter()
        assert limiter.check_and_record('john@example.com', now=1000) == (True, 0)
        assert limiter.check_and_record('JOHN@example.com', now=1030) == (False, 30)
        assert limiter.check_and_record('john@example.com', now=1060) == (True, 0)

    def test_other_addresses_are_independent(self):
        limiter = cache_limiter()
        assert limiter.check_and_record('john@example.com', now=1000)[0]
        assert limiter.check_and_record('jane@example.com', now=1001)[0]

    def test_cache_reset_reports_count(self):
        limiter = cache_limiter()
        limiter.check_and_record('john@example.com', now=1000)
        limiter.check_and_record('jane@example.com', now=1000)

        assert limiter.reset() == 2
        assert limiter.reset() == 0
        assert limiter.check_and_record('john@example.com', now=1001) == (True, 0)

    def test_file_store_layout(self, tmp_path):
        limiter = ContactRateLimiter(FileRateLimitStore(60, tmp_path))
        limiter.check_and_record('john@example.com', now=1000)

        record = tmp_path / f"rate_limit_{hash_identifier('john@example.com')}.tmp"
        assert record.read_text() == '1000'
        assert limiter.check_and_record('john@example.com', now=1059) == (False, 1)

    def test_file_store_reset(self, tmp_path):
        limiter = ContactRateLimiter(FileRateLimitStore(60, tmp_path))
        limiter.check_and_record('john@example.com', now=1000)
        limiter.check_and_record('jane@example.com', now=1000)

        assert limiter.reset() == 2
        assert list(tmp_path.glob('rate_limit_*.tmp')) == []
        assert limiter.reset() == 0

    def test_file_store_ignores_corrupt_record(self, tmp_path):
        record = tmp_path / f"rate_limit_{hash_identifier('john@example.com')}.tmp"
        record.write_text('garbage')

        limiter = ContactRateLimiter(FileRateLimitStore(60, tmp_path))
        assert limiter.check_and_record('john@example.com', now=1000) == (True, 0)

    def test_cache_outage_is_a_store_error(self):
        limiter = cache_limiter()
        with patch.object(limiter.store.cache, 'add', side_effect=ConnectionError('redis down')):
            with pytest.raises(RateLimitStoreError):
                limiter.check_and_record('john@example.com', now=1000)

        with patch.object(limiter.store.cache, 'get', side_effect=ConnectionError('redis down')):
            with pytest.raises(RateLimitStoreError):
                limiter.reset()

    def test_file_store_is_shared_between_workers(self, tmp_path):
        # Two stores on one directory stand in for two worker processes
        worker_a = ContactRateLimiter(FileRateLimitStore(60, tmp_path))
        worker_b = ContactRateLimiter(FileRateLimitStore(60, tmp_path))

        assert worker_a.check_and_record('john@example.com', now=1000) == (True, 0)
        assert worker_b.check_and_record('john@example.com', now=1010) == (False, 50)
        assert (tmp_path / '.lock').exists()

    def test_default_backend_is_file(self, settings):
        del settings.CONTACT_RATE_LIMIT_BACKEND
        assert isinstance(ContactRateLimiter.from_settings().store, FileRateLimitStore)

    def test_backend_from_settings(self, settings):
        settings.CONTACT_RATE_LIMIT_BACKEND = 'file'
        assert isinstance(ContactRateLimiter.from_settings().store, FileRateLimitStore)

        settings.CONTACT_RATE_LIMIT_BACKEND = 'redis-ish'
        with pytest.raises(ValueError):
            ContactRateLimiter.from_settings()

    def test_get_client_ip(self):
        factory = RequestFactory()
        request = factory.post('/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1')
        assert get_client_ip(request) == '203.0.113.7'

        request = factory.post('/', REMOTE_ADDR='198.51.100.2')
        assert get_client_ip(request) == '198.51.100.2'

    def test_reset_command(self):
        cache_limiter().check_and_record('john@example.com')

        out = StringIO()
        call_command('reset_contact_rate_limits', stdout=out)
        assert 'Cleared 1 rate limit record(s)' in out.getvalue()

        out = StringIO()
        call_command('reset_contact_rate_limits', stdout=out)
        assert 'Cleared 0 rate limit record(s)' in out.getvalue()


# =============================================================================
# ANTI-ABUSE VERIFIER
# =============================================================================

class TestAbuseVerifier:

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_missing_token(self, mock_captcha):
        decision = AbuseVerifier(cache_limiter()).verify(make_submission(), token='')
        assert decision.reason == AbuseReason.CAPTCHA_REQUIRED
        mock_captcha.assert_not_called()

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_invalid_token_does_not_consume_rate_limit(self, mock_captcha):
        limiter = cache_limiter()
        verifier = AbuseVerifier(limiter)

        mock_captcha.return_value = False
        decision = verifier.verify(make_submission(), token='bad', remote_ip='203.0.113.7')
        assert decision.reason == AbuseReason.CAPTCHA_INVALID
        mock_captcha.assert_called_once_with('bad', '203.0.113.7')

        mock_captcha.return_value = True
        assert verifier.verify(make_submission(), token='good').accepted

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_spam_is_scored_on_raw_message(self, mock_captcha):
        mock_captcha.return_value = True
        submission = make_submission(
            message='Hello there script free',
            raw_message='Hello <b>there</b> free',
        )
        decision = AbuseVerifier(cache_limiter()).verify(submission, token='good')
        assert decision.reason == AbuseReason.SPAM_DETECTED
        assert 'markup_or_script' in decision.flags

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_rate_limited(self, mock_captcha):
        mock_captcha.return_value = True
        verifier = AbuseVerifier(cache_limiter())

        assert verifier.verify(make_submission(), token='good') == AbuseDecision.accept()

        decision = verifier.verify(make_submission(), token='good')
        assert decision.reason == AbuseReason.RATE_LIMITED
        assert 0 < decision.retry_after <= 60

    @patch('core.turnstile_service.turnstile_service.verify_token')
    def test_store_outage_accepts(self, mock_captcha):
        mock_captcha.return_value = True
        limiter = Mock()
        limiter.check_and_record.side_effect = RateLimitStoreError('disk full')

        assert AbuseVerifier(limiter).verify(make_submission(), token='good').accepted


# =============================================================================
# SUBMISSION STATE MACHINE
# =============================================================================

class TestSubmissionLifecycle:

    def test_completed_path(self):
        lifecycle = SubmissionLifecycle()
        for state in (SubmissionState.VALIDATED, SubmissionState.ABUSE_CHECKED,
                      SubmissionState.DISPATCHED, SubmissionState.COMPLETED):
            lifecycle.advance(state)

        assert lifecycle.is_terminal
        assert lifecycle.history[0] == SubmissionState.RECEIVED
        assert lifecycle.history[-1] == SubmissionState.COMPLETED

    def test_rejected_after_validation(self):
        lifecycle = SubmissionLifecycle()
        lifecycle.advance(SubmissionState.VALIDATED).advance(SubmissionState.REJECTED)
        assert lifecycle.is_terminal

    def test_cannot_complete_without_dispatch(self):
        lifecycle = SubmissionLifecycle()
        lifecycle.advance(SubmissionState.VALIDATED).advance(SubmissionState.ABUSE_CHECKED)
        with pytest.raises(StatusTransitionError):
            lifecycle.advance(SubmissionState.COMPLETED)

    def test_terminal_states_are_final(self):
        lifecycle = SubmissionLifecycle()
        lifecycle.advance(SubmissionState.VALIDATED).advance(SubmissionState.REJECTED)
        with pytest.raises(StatusTransitionError):
            lifecycle.advance(SubmissionState.VALIDATED)


# =============================================================================
# NOTIFICATIONS & AUDIT LOG
# =============================================================================

class TestNotificationDispatcher:

    def test_sends_both_emails(self):
        outcome = NotificationDispatcher().dispatch(make_submission())

        assert outcome.admin_sent and outcome.client_sent and outcome.delivered
        assert len(mail.outbox) == 2

        admin, client = mail.outbox
        assert admin.to == ['contact@fastcaisse.be']
        assert admin.reply_to == ['john@example.com']
        assert admin.subject == 'New Contact Form Submission - FastCaisse'
        assert admin.from_email == 'FastCaisse Website <contact@fastcaisse.be>'
        assert '[EN]' in admin.body

        assert client.to == ['john@example.com']
        assert client.subject == 'Thank you for contacting FastCaisse'
        assert 'Dear John,' in client.body
        assert client.alternatives[0][1] == 'text/html'

    def test_confirmation_is_localized(self):
        NotificationDispatcher().dispatch(make_submission(language='nl'))
        admin, client = mail.outbox
        assert '[NL]' in admin.body
        assert client.subject != 'Thank you for contacting FastCaisse'

    def test_escaped_text_is_not_escaped_twice(self):
        submission = make_submission(message='Hi &amp; bye, call me', raw_message='Hi & bye, call me')
        NotificationDispatcher().dispatch(submission)

        admin = mail.outbox[0]
        html_body = admin.alternatives[0][0]
        assert 'Hi & bye, call me' in admin.body
        assert 'Hi &amp; bye, call me' in html_body
        assert '&amp;amp;' not in html_body

    def test_no_reply_to_for_malformed_sender(self):
        NotificationDispatcher().dispatch(make_submission(email='not-an-email'))
        assert mail.outbox[0].reply_to == []

    def test_cc_and_bcc(self, settings):
        settings.CONTACT_EMAIL_CC = ['sales@fastcaisse.be']
        settings.CONTACT_EMAIL_BCC = ['archive@fastcaisse.be']
        NotificationDispatcher().dispatch(make_submission())

        assert mail.outbox[0].cc == ['sales@fastcaisse.be']
        assert mail.outbox[0].bcc == ['archive@fastcaisse.be']
        assert mail.outbox[1].cc == []

    @patch('contact.notifications.EmailMultiAlternatives.send')
    def test_operator_failure_is_not_delivered(self, mock_send):
        mock_send.side_effect = [smtplib.SMTPException('relay down'), 1]
        outcome = NotificationDispatcher().dispatch(make_submission())

        assert not outcome.admin_sent
        assert outcome.client_sent
        assert not outcome.delivered

    @patch('contact.notifications.EmailMultiAlternatives.send')
    def test_confirmation_failure_is_still_delivered(self, mock_send):
        mock_send.side_effect = [1, smtplib.SMTPException('mailbox full')]
        outcome = NotificationDispatcher().dispatch(make_submission())

        assert outcome.admin_sent
        assert not outcome.client_sent
        assert outcome.delivered

    @patch('contact.notifications.get_connection')
    def test_each_email_gets_its_own_connection(self, mock_get_connection, settings):
        settings.EMAIL_TIMEOUT = 15
        dropped, fresh = Mock(), Mock()
        dropped.send_messages.side_effect = smtplib.SMTPServerDisconnected('session dropped')
        fresh.send_messages.return_value = 1
        mock_get_connection.side_effect = [dropped, fresh]

        outcome = NotificationDispatcher().dispatch(make_submission())

        assert not outcome.admin_sent
        assert outcome.client_sent
        assert mock_get_connection.call_count == 2
        mock_get_connection.assert_called_with(fail_silently=False, timeout=15)
        assert fresh.send_messages.call_args.args[0][0].to == ['john@example.com']

    def test_send_toggles(self, settings):
        settings.CONTACT_SEND_CLIENT_CONFIRMATION = False
        outcome = NotificationDispatcher().dispatch(make_submission())
        assert len(mail.outbox) == 1
        assert outcome.delivered and not outcome.client_sent

        settings.CONTACT_SEND_ADMIN_NOTIFICATION = False
        outcome = NotificationDispatcher().dispatch(make_submission())
        assert len(mail.outbox) == 1
        assert not outcome.admin_sent
        assert outcome.delivered

    def test_timestamp_format(self):
        html_context, _ = NotificationDispatcher().build_context(
            make_submission(), submitted_at=datetime(2026, 1, 2, 3, 4, 5),
        )
        assert html_context['submitted_at'] == '2026-01-02 03:04:05'
        assert html_context['year'] == 2026


class TestSubmissionLog:

    def test_appends_one_line(self, settings):
        when = datetime(2026, 1, 2, 3, 4, 5)
        assert log_submission(make_submission(), when=when)
        assert log_submission(make_submission(email='jane@example.com'), when=when)

        with open(settings.CONTACT_SUBMISSION_LOG, encoding='utf-8') as fh:
            lines = fh.read().splitlines()
        assert lines == [
            '2026-01-02 03:04:05 - john@example.com - Demo request',
            '2026-01-02 03:04:05 - jane@example.com - Demo request',
        ]

    def test_line_breaks_cannot_forge_entries(self):
        entry = format_entry('john@example.com', 'Hi\r\nfake entry', datetime(2026, 1, 2, 3, 4, 5))
        assert entry == '2026-01-02 03:04:05 - john@example.com - Hi fake entry\n'

    def test_disabled(self, settings):
        settings.CONTACT_SUBMISSION_LOG_ENABLED = False
        assert not log_submission(make_submission())


# =============================================================================
# RESPONSE TRANSLATOR
# =============================================================================

class TestContactResponseTranslator:

    def test_rate_limited(self):
        response = ContactResponseTranslator('en').rejected(
            AbuseDecision.reject(AbuseReason.RATE_LIMITED, retry_after=42)
        )
        assert response.status_code == 429
        assert response['Retry-After'] == '42'
        assert response.data['retry_after'] == 42
        assert '42 seconds' in response.data['message']

    def test_captcha_reasons_have_distinct_copy(self):
        translator = ContactResponseTranslator('nl')
        required = translator.rejected(AbuseDecision.reject(AbuseReason.CAPTCHA_REQUIRED))
        invalid = translator.rejected(AbuseDecision.reject(AbuseReason.CAPTCHA_INVALID))

        assert required.data['type'] == invalid.data['type'] == 'security_error'
        assert required.data['error_code'] == 'CAPTCHA_REQUIRED'
        assert invalid.data['error_code'] == 'CAPTCHA_INVALID'
        assert required.data['message'] != invalid.data['message']

    def test_spam_has_no_details(self):
        response = ContactResponseTranslator('en').rejected(
            AbuseDecision.reject(AbuseReason.SPAM_DETECTED, flags=['excessive_caps'])
        )
        assert response.status_code == 400
        assert set(response.data) == {'success', 'message', 'type'}


# =============================================================================
# CLIENT SUBMISSION GUARD
# =============================================================================

class TestContactFormGuard:

    ENDPOINT = 'https://fastcaisse.be/api/contact/submit'

    def _guard(self, tmp_path, session=None, clock=lambda: 1000.0, **kwargs):
        return ContactFormGuard(
            self.ENDPOINT,
            language='en',
            state_path=tmp_path / 'guard.json',
            session=session or Mock(),
            clock=clock,
            **kwargs
        )

    def _success_session(self):
        session = Mock()
        session.post.return_value.json.return_value = {'success': True, 'message': 'Thanks'}
        return session

    def test_blocks_until_widget_ready(self, tmp_path, valid_form_data):
        guard = self._guard(tmp_path)
        result = guard.submit(valid_form_data)

        assert not result.sent
        assert result.message == client_messages('en')['captcha_loading']
        assert guard.state == GuardState.WIDGET_LOADING
        guard.session.post.assert_not_called()

    def test_precheck_order(self, tmp_path, valid_form_data):
        guard = self._guard(tmp_path)
        guard.widget_ready('token-1')

        result = guard.submit({**valid_form_data, 'firstName': ' ', 'email': ''})
        assert result.message == 'First name is required'

        result = guard.submit({**valid_form_data, 'email': 'john@localhost'})
        assert result.message == 'Please enter a valid email address'

        result = guard.submit({**valid_form_data, 'message': 'short'})
        assert result.message == 'Please provide a more detailed message (at least 10 characters)'

        result = guard.submit({**valid_form_data, 'gdpr-consent': ''})
        assert result.message == 'Please accept the privacy policy and terms of service'

        assert guard.state == GuardState.WIDGET_READY
        guard.session.post.assert_not_called()

    def test_successful_submit(self, tmp_path, valid_form_data):
        session = self._success_session()
        guard = self._guard(tmp_path, session=session, page_url=None)
        guard.widget_ready('token-1')

        result = guard.submit(valid_form_data)

        assert result.sent and result.success
        assert guard.state == GuardState.SUCCEEDED
        assert guard.token is None

        payload = session.post.call_args.kwargs['json']
        assert payload['language'] == 'en'
        assert payload['cf-turnstile-response'] == 'token-1'
        assert session.post.call_args.kwargs['timeout'] == 30

        saved = json.loads((tmp_path / 'guard.json').read_text())
        assert saved == {'last_submission': 1000.0}

    def test_cooldown_blocks_resubmission(self, tmp_path, valid_form_data):
        now = [1000.0]
        guard = self._guard(tmp_path, session=self._success_session(), clock=lambda: now[0])
        guard.widget_ready('token-1')
        guard.submit(valid_form_data)

        now[0] = 1010.0
        guard.widget_ready('token-2')
        result = guard.submit(valid_form_data)
        assert not result.sent
        assert result.message == 'Please wait 50 seconds before sending another message.'

        now[0] = 1060.0
        assert guard.submit(valid_form_data).sent

    def test_cooldown_survives_restart(self, tmp_path, valid_form_data):
        (tmp_path / 'guard.json').write_text(json.dumps({'last_submission': 990.0}))
        guard = self._guard(tmp_path)
        guard.widget_ready('token-1')

        assert guard.cooldown_remaining() == 50
        assert not guard.submit(valid_form_data).sent

    def test_countdown_cancelled_on_state_exit(self, tmp_path, valid_form_data):
        (tmp_path / 'guard.json').write_text(json.dumps({'last_submission': 990.0}))
        on_countdown = Mock()
        guard = self._guard(tmp_path, on_countdown=on_countdown)
        guard.widget_ready('token-1')

        guard.submit(valid_form_data)
        on_countdown.assert_any_call(
            'Please wait 50 seconds before sending another message.', 50,
        )
        countdown = guard._countdown
        assert countdown.active

        guard.widget_expired()
        assert guard._countdown is None
        assert not countdown.active

    def test_network_error_blocks(self, tmp_path, valid_form_data):
        session = Mock()
        session.post.side_effect = requests.exceptions.ConnectionError('offline')
        guard = self._guard(tmp_path, session=session)
        guard.widget_ready('token-1')

        result = guard.submit(valid_form_data)
        assert result.sent and not result.success
        assert result.message == client_messages('en')['network_error']
        assert guard.state == GuardState.BLOCKED

        # Blocked until a fresh token arrives
        assert not guard.submit(valid_form_data).sent
        guard.widget_ready('token-2')
        assert guard.state == GuardState.WIDGET_READY

    def test_server_rejection_shows_server_message(self, tmp_path, valid_form_data):
        session = Mock()
        session.post.return_value.json.return_value = {
            'success': False, 'message': 'Security verification failed. Please try again.',
        }
        guard = self._guard(tmp_path, session=session)
        guard.widget_ready('token-1')

        result = guard.submit(valid_form_data)
        assert result.message == 'Security verification failed. Please try again.'
        assert guard.state == GuardState.BLOCKED
        assert not (tmp_path / 'guard.json').exists()

    def test_consent_values(self):
        assert is_consent_given('on')
        assert is_consent_given(True)
        assert not is_consent_given('off')
        assert not is_consent_given('0')
        assert not is_consent_given(None)

"""
Contact Form Client Guard

Python counterpart of ``static/contact/js/contact-form.js`` for callers that
submit the contact form programmatically (kiosk apps, integration scripts).
It is a courtesy layer: the server re-checks everything.

Guard states:
    widget_loading -> widget_ready -> submitting -> succeeded | blocked

Only ``widget_ready`` accepts a submit. Turnstile tokens are single use, so
``succeeded`` and ``blocked`` return to ``widget_ready`` only once a new
token is supplied.
"""
import json
import logging
import re
import threading
import time
from pathlib import Path

import requests
from django.db import models

from .localization import client_messages, detect_language

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MESSAGE_MIN_LENGTH = 10
MESSAGE_MAX_LENGTH = 2000
DEFAULT_COOLDOWN = 60
REQUEST_TIMEOUT = 30

FALSE_VALUES = ('false', '0', 'off')

# (field, catalog key) in the order they are checked
REQUIRED_CHECKS = [
    ('firstName', 'first_name_required'),
    ('lastName', 'last_name_required'),
    ('email', 'email_required'),
    ('subject', 'subject_required'),
    ('message', 'message_required'),
]


class GuardState(models.TextChoices):
    WIDGET_LOADING = 'widget_loading', 'Widget loading'
    WIDGET_READY = 'widget_ready', 'Widget ready'
    SUBMITTING = 'submitting', 'Submitting'
    SUCCEEDED = 'succeeded', 'Succeeded'
    BLOCKED = 'blocked', 'Blocked'


GUARD_TRANSITIONS = {
    GuardState.WIDGET_LOADING: [GuardState.WIDGET_READY],
    GuardState.WIDGET_READY: [GuardState.SUBMITTING, GuardState.WIDGET_LOADING],
    GuardState.SUBMITTING: [GuardState.SUCCEEDED, GuardState.BLOCKED],
    GuardState.SUCCEEDED: [GuardState.WIDGET_READY, GuardState.WIDGET_LOADING],
    GuardState.BLOCKED: [GuardState.WIDGET_READY, GuardState.WIDGET_LOADING],
}


class GuardTransitionError(Exception):
    """Raised when the guard is driven into a state it cannot reach."""
    pass


class GuardResult:
    """What the guard tells the UI after a submit attempt."""

    def __init__(self, sent, success, message, data=None):
        self.sent = sent  # whether a network call was made
        self.success = success
        self.message = message
        self.data = data or {}

    def __repr__(self):
        return f"GuardResult(sent={self.sent}, success={self.success}, message={self.message!r})"


def is_consent_given(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    value = str(value).strip().lower()
    return bool(value) and value not in FALSE_VALUES


class Countdown:
    """Once-a-second ticker that can be cancelled at any point."""

    def __init__(self, seconds, on_tick):
        self.remaining = seconds
        self.on_tick = on_tick
        self._timer = None
        self._cancelled = False

    def start(self):
        self._tick()
        return self

    def _tick(self):
        if self._cancelled:
            return
        self.on_tick(self.remaining)
        if self.remaining <= 0:
            return
        self.remaining -= 1
        self._timer = threading.Timer(1.0, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def cancel(self):
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()

    @property
    def active(self):
        return not self._cancelled and self.remaining > 0


class CooldownStore:
    """Last successful send time, optionally persisted to a JSON file."""

    def __init__(self, path=None):
        self.path = Path(path) if path else None
        self._last = None

    def load(self):
        if self.path is None:
            return self._last
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except FileNotFoundError:
            return None
        except (ValueError, OSError) as e:
            logger.warning(f"Ignoring unreadable contact guard state {self.path}: {e}")
            return None
        last = data.get('last_submission')
        return last if isinstance(last, (int, float)) else None

    def save(self, timestamp):
        self._last = timestamp
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({'last_submission': timestamp}), encoding='utf-8')


class ContactFormGuard:
    """
    Usage:
        guard = ContactFormGuard('https://example.com/api/contact/submit',
                                 page_url='https://example.com/contact-en.html')
        guard.widget_ready(token)
        result = guard.submit({'firstName': 'John', ...})
    """

    def __init__(self, endpoint, language=None, page_url=None, state_path=None,
                 cooldown=DEFAULT_COOLDOWN, session=None, clock=time.time, on_countdown=None):
        self.endpoint = endpoint
        self.language = detect_language(language, page_url)
        self.messages = client_messages(self.language)
        self.cooldown = cooldown
        self.cooldown_store = CooldownStore(state_path)
        self.session = session or requests.Session()
        self.clock = clock
        self.on_countdown = on_countdown

        self.state = GuardState.WIDGET_LOADING
        self.token = None
        self._countdown = None

    # State handling

    def _set_state(self, new_state):
        if new_state not in GUARD_TRANSITIONS[self.state]:
            raise GuardTransitionError(f"Invalid guard transition: {self.state} -> {new_state}")
        self.cancel_countdown()
        self.state = new_state

    def cancel_countdown(self):
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    def widget_ready(self, token):
        """Turnstile produced a token."""
        if not token:
            return
        if self.state != GuardState.WIDGET_READY:
            self._set_state(GuardState.WIDGET_READY)
        self.token = token

    def widget_expired(self):
        """Token expired or the widget errored; wait for a new token."""
        self.token = None
        if self.state != GuardState.WIDGET_LOADING:
            self._set_state(GuardState.WIDGET_LOADING)

    @property
    def can_submit(self):
        return self.state == GuardState.WIDGET_READY and bool(self.token)

    # Checks

    def precheck(self, data):
        """Return the first failing check's message, or None."""
        for name, key in REQUIRED_CHECKS:
            value = data.get(name)
            if not isinstance(value, str) or not value.strip():
                return self.messages[key]

        if not is_consent_given(data.get('gdpr-consent')):
            return self.messages['consent_required']

        if not EMAIL_PATTERN.match(data['email'].strip()):
            return self.messages['email_invalid']

        message_length = len(data['message'].strip())
        if message_length < MESSAGE_MIN_LENGTH:
            return self.messages['message_min_length']
        if message_length > MESSAGE_MAX_LENGTH:
            return self.messages['message_max_length']

        return None

    def cooldown_remaining(self):
        last = self.cooldown_store.load()
        if last is None:
            return 0
        elapsed = self.clock() - last
        if elapsed >= self.cooldown:
            return 0
        return int(self.cooldown - elapsed) or 1

    def _cooldown_message(self, seconds):
        return self.messages['cooldown'].format(seconds=seconds)

    def _start_countdown(self, seconds):
        if self.on_countdown is None:
            return
        self.cancel_countdown()
        self._countdown = Countdown(
            seconds,
            lambda remaining: self.on_countdown(self._cooldown_message(remaining), remaining),
        ).start()

    # Submit

    def build_payload(self, data):
        payload = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in data.items()
        }
        payload['language'] = self.language
        payload['cf-turnstile-response'] = self.token
        return payload

    def submit(self, data):
        """
        Run the client checks and, if they pass, post the form.

        Returns a GuardResult; ``sent`` is False when the guard stopped the
        submission before any network call.
        """
        if not self.can_submit:
            return GuardResult(False, False, self.messages['captcha_loading'])

        problem = self.precheck(data)
        if problem:
            return GuardResult(False, False, problem)

        remaining = self.cooldown_remaining()
        if remaining:
            self._start_countdown(remaining)
            return GuardResult(False, False, self._cooldown_message(remaining))

        payload = self.build_payload(data)
        self._set_state(GuardState.SUBMITTING)
        # Single-use token
        self.token = None

        try:
            response = self.session.post(self.endpoint, json=payload, timeout=REQUEST_TIMEOUT)
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Contact form request failed: {e}")
            self._set_state(GuardState.BLOCKED)
            return GuardResult(True, False, self.messages['network_error'])

        if not isinstance(body, dict):
            self._set_state(GuardState.BLOCKED)
            return GuardResult(True, False, self.messages['network_error'])

        message = body.get('message') or ''
        if body.get('success'):
            self.cooldown_store.save(self.clock())
            self._set_state(GuardState.SUCCEEDED)
            return GuardResult(True, True, message, body)

        self._set_state(GuardState.BLOCKED)
        return GuardResult(True, False, message or self.messages['network_error'], body)

"""
Spam Detection Service

Heuristic spam checks for contact form messages. Deliberately lenient so
that genuine business inquiries (which often mention websites) get through.
Only the message body is scored, never the subject.
"""
import re

from django.conf import settings


class SpamDetectionService:
    """
    Flags suspicious contact messages.

    Usage:
        is_spam, flags = SpamDetectionService.check_message(message, honeypot='')
    """

    SPAM_KEYWORDS = [
        'viagra', 'cialis', 'casino', 'lottery', 'winner',
        'click here', 'free money', 'make money', 'weight loss',
    ]

    MAX_LINKS = 5
    MAX_CAPS_RATIO = 0.5

    KEYWORD_RE = re.compile(
        r'\b(?:' + '|'.join(re.escape(k) for k in SPAM_KEYWORDS) + r')\b',
        re.IGNORECASE,
    )
    LINK_RE = re.compile(r'https?://', re.IGNORECASE)
    REPEATED_RUN_RE = re.compile(r'(.)\1{15,}', re.DOTALL)
    MARKUP_CHARS_RE = re.compile(r'[<>{}]')
    SCRIPT_WORDS_RE = re.compile(r'\b(?:script|javascript|onclick|onload)\b', re.IGNORECASE)

    def __init__(self, message, honeypot=''):
        self.message = message or ''
        self.honeypot = honeypot or ''
        self.flags = []

    def analyze(self):
        """
        Run all checks.
        Returns (is_spam: bool, flags: list)
        """
        self.flags = []

        self._check_honeypot()
        self._check_keywords()
        self._check_links()
        self._check_repeated_characters()
        self._check_markup()
        self._check_caps()

        return bool(self.flags), self.flags

    def _check_honeypot(self):
        if getattr(settings, 'CONTACT_HONEYPOT_ENABLED', True) and self.honeypot.strip():
            self.flags.append('honeypot_filled')

    def _check_keywords(self):
        match = self.KEYWORD_RE.search(self.message)
        if match:
            self.flags.append(f"keyword_{match.group(0).lower().replace(' ', '_')}")

    def _check_links(self):
        if len(self.LINK_RE.findall(self.message)) > self.MAX_LINKS:
            self.flags.append('too_many_links')

    def _check_repeated_characters(self):
        # e.g. "aaaaaaaaaaaaaaaa", "!!!!!!!!!!!!!!!!"
        if self.REPEATED_RUN_RE.search(self.message):
            self.flags.append('repeated_characters')

    def _check_markup(self):
        if self.MARKUP_CHARS_RE.search(self.message) or self.SCRIPT_WORDS_RE.search(self.message):
            self.flags.append('markup_or_script')

    def _check_caps(self):
        letters = [c for c in self.message if c.isalpha()]
        if not letters:
            return
        upper = sum(1 for c in letters if c.isupper())
        if upper / len(letters) > self.MAX_CAPS_RATIO:
            self.flags.append('excessive_caps')

    @classmethod
    def check_message(cls, message, honeypot=''):
        """
        Convenience method to analyze one message.
        Returns (is_spam: bool, flags: list)
        """
        detector = cls(message, honeypot=honeypot)
        return detector.analyze()

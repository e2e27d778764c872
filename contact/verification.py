"""
Anti-Abuse Verifier

Ordered gate run on every validated submission. The first failing stage
decides the outcome and later stages never run:

1. CAPTCHA token present
2. Turnstile siteverify accepts the token
3. Message passes the heuristic spam checks
4. Sender address is outside its rate-limit window (recorded on success)
"""
import logging

from core.turnstile_service import turnstile_service

from .antispam import SpamDetectionService
from .rate_limiting import ContactRateLimiter, RateLimitStoreError
from .submission import AbuseDecision, AbuseReason

logger = logging.getLogger(__name__)


class AbuseVerifier:
    """
    Usage:
        decision = AbuseVerifier().verify(submission, token, remote_ip, honeypot)
        if not decision.accepted:
            ...decision.reason
    """

    def __init__(self, rate_limiter=None):
        self.rate_limiter = rate_limiter or ContactRateLimiter.from_settings()

    def verify(self, submission, token, remote_ip=None, honeypot=''):
        token = token.strip() if isinstance(token, str) else ''
        if not token:
            logger.warning(f"[SECURITY] Contact form submission without CAPTCHA token from {remote_ip}")
            return AbuseDecision.reject(AbuseReason.CAPTCHA_REQUIRED)

        if not turnstile_service.verify_token(token, remote_ip):
            logger.warning(f"[SECURITY] CAPTCHA verification failed for {remote_ip}")
            return AbuseDecision.reject(AbuseReason.CAPTCHA_INVALID)

        is_spam, flags = SpamDetectionService.check_message(
            submission.raw_message or submission.message,
            honeypot=honeypot,
        )
        if is_spam:
            logger.warning(f"[SECURITY] Spam detected from {remote_ip}: {', '.join(flags)}")
            return AbuseDecision.reject(AbuseReason.SPAM_DETECTED, flags=flags)

        try:
            allowed, retry_after = self.rate_limiter.check_and_record(submission.email)
        except RateLimitStoreError:
            # Store outage must not drop a verified inquiry
            logger.exception("Rate-limit store unavailable, accepting submission unthrottled")
            return AbuseDecision.accept()

        if not allowed:
            logger.warning(
                f"[SECURITY] Rate limit hit from {remote_ip}, retry in {retry_after}s"
            )
            return AbuseDecision.reject(AbuseReason.RATE_LIMITED, retry_after=retry_after)

        return AbuseDecision.accept()

"""
Django Management Command: Reset Contact Rate Limits

Clears every contact form rate-limit record, whichever store is configured
(CONTACT_RATE_LIMIT_BACKEND). Safe to run repeatedly.

Usage:
    python manage.py reset_contact_rate_limits
"""

from django.core.management.base import BaseCommand, CommandError

from contact.rate_limiting import ContactRateLimiter, RateLimitStoreError


class Command(BaseCommand):
    help = 'Clear all contact form rate-limit records'

    def handle(self, *args, **options):
        limiter = ContactRateLimiter.from_settings()

        try:
            cleared = limiter.reset()
        except RateLimitStoreError as e:
            raise CommandError(f'Rate limit reset failed: {e}')

        self.stdout.write(self.style.SUCCESS(
            f'✓ Cleared {cleared} rate limit record(s)'
        ))

"""
Append-only log of accepted contact submissions.

One line per submission: ``YYYY-mm-dd HH:MM:SS - email - subject``.
"""
import logging
import re
import threading
from pathlib import Path

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

_write_lock = threading.Lock()
LINE_BREAKS_RE = re.compile(r'[\r\n]+')


def format_entry(email, subject, when=None):
    when = when or timezone.localtime()
    subject = LINE_BREAKS_RE.sub(' ', subject or '')
    return f"{when.strftime('%Y-%m-%d %H:%M:%S')} - {email} - {subject}\n"


def log_submission(submission, when=None):
    """
    Append one entry for ``submission``. Returns True when written.

    A log that cannot be written never fails the request.
    """
    if not getattr(settings, 'CONTACT_SUBMISSION_LOG_ENABLED', True):
        return False

    path = Path(settings.CONTACT_SUBMISSION_LOG)
    entry = format_entry(submission.email, submission.subject, when)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with _write_lock, open(path, 'a', encoding='utf-8') as fh:
            fh.write(entry)
    except OSError as e:
        logger.error(f"Could not write contact submission log {path}: {e}")
        return False
    return True

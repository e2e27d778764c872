"""
Rate Limiting Utilities for Contact Form

At most one accepted submission per sender address per sliding window
(60 seconds by default). Addresses are only ever stored as a one-way hash.

Two stores are available:
- ``cache``: the Django cache. ``cache.add()`` is atomic, so check-and-record
  is a single operation; with Redis this holds across worker processes.
- ``file``: one ``rate_limit_<hash>.tmp`` file per address holding an integer
  timestamp. An exclusive lock on ``.lock`` in the same directory serialises
  workers on one host.

``file`` is the default unless REDIS_ENABLED points the cache at Redis.
"""
import fcntl
import hashlib
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path

from django.conf import settings
from django.core.cache import caches
from django.utils import timezone

logger = logging.getLogger(__name__)


class RateLimitStoreError(Exception):
    """Raised when the rate-limit store cannot be read or written."""
    pass


def get_client_ip(request):
    """Get client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip


def hash_identifier(email):
    """Stable one-way key for a sender address."""
    return hashlib.sha256(email.strip().lower().encode('utf-8')).hexdigest()


def current_timestamp():
    return int(timezone.now().timestamp())


class CacheRateLimitStore:
    """Rate-limit records kept in a Django cache with a TTL of one window."""

    KEY_PREFIX = 'contact:ratelimit:'
    INDEX_KEY = 'contact:ratelimit:index'

    def __init__(self, window, cache_alias='default'):
        self.window = window
        self.cache = caches[cache_alias]

    def _key(self, identifier):
        return f"{self.KEY_PREFIX}{identifier}"

    def acquire(self, identifier, now):
        """
        Record ``now`` for identifier unless a record inside the window exists.

        Returns:
            tuple: (allowed, retry_after_seconds)
        """
        key = self._key(identifier)

        try:
            # Atomic: only one concurrent caller can create the record
            if self.cache.add(key, now, timeout=self.window):
                self._remember(identifier)
                return True, 0

            last = self.cache.get(key)
            if last is None or now - last >= self.window:
                self.cache.set(key, now, timeout=self.window)
                self._remember(identifier)
                return True, 0
        except Exception as e:
            # Cache backends raise their own client errors (redis, memcached)
            raise RateLimitStoreError(f"Rate-limit cache unavailable: {e}") from e

        return False, max(1, self.window - (now - last))

    def _remember(self, identifier):
        # Index of live keys so reset() can report how many it cleared.
        index = set(self.cache.get(self.INDEX_KEY) or ())
        index.add(identifier)
        live = self.cache.get_many([self._key(i) for i in index])
        index = {i for i in index if self._key(i) in live}
        self.cache.set(self.INDEX_KEY, index, timeout=None)

    def reset(self):
        try:
            index = self.cache.get(self.INDEX_KEY) or set()
            keys = [self._key(i) for i in index]
            cleared = len(self.cache.get_many(keys)) if keys else 0
            if keys:
                self.cache.delete_many(keys)
            self.cache.delete(self.INDEX_KEY)
        except Exception as e:
            raise RateLimitStoreError(f"Rate-limit cache unavailable: {e}") from e
        return cleared


class FileRateLimitStore:
    """One file per hashed address under ``directory``, value = unix seconds."""

    FILE_PREFIX = 'rate_limit_'
    FILE_SUFFIX = '.tmp'
    LOCK_NAME = '.lock'

    _lock = threading.Lock()

    def __init__(self, window, directory):
        self.window = window
        self.directory = Path(directory)

    def _path(self, identifier):
        return self.directory / f"{self.FILE_PREFIX}{identifier}{self.FILE_SUFFIX}"

    @contextmanager
    def _exclusive(self):
        """Hold the thread lock and an flock shared by every worker process."""
        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                fh = open(self.directory / self.LOCK_NAME, 'a')
            except OSError as e:
                raise RateLimitStoreError(f"Cannot lock {self.directory}: {e}") from e
            with fh:
                fcntl.flock(fh, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(fh, fcntl.LOCK_UN)

    def _read(self, path):
        try:
            return int(path.read_text().strip())
        except FileNotFoundError:
            return None
        except ValueError:
            logger.warning(f"Ignoring corrupt rate-limit record {path.name}")
            return None
        except OSError as e:
            raise RateLimitStoreError(f"Cannot read {path}: {e}") from e

    def _write(self, path, now):
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix='.pending_')
            with os.fdopen(fd, 'w') as fh:
                fh.write(str(now))
            os.replace(tmp_name, path)
        except OSError as e:
            raise RateLimitStoreError(f"Cannot write {path}: {e}") from e

    def acquire(self, identifier, now):
        path = self._path(identifier)
        with self._exclusive():
            last = self._read(path)
            if last is not None and now - last < self.window:
                return False, max(1, self.window - (now - last))
            self._write(path, now)
        return True, 0

    def reset(self):
        cleared = 0
        with self._exclusive():
            for path in self.directory.glob(f"{self.FILE_PREFIX}*{self.FILE_SUFFIX}"):
                try:
                    path.unlink()
                    cleared += 1
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise RateLimitStoreError(f"Cannot remove {path}: {e}") from e
        return cleared


class ContactRateLimiter:
    """
    Sender-address rate limiter used by the anti-abuse verifier.

    Usage:
        limiter = ContactRateLimiter.from_settings()
        allowed, retry_after = limiter.check_and_record('john@example.com')
    """

    def __init__(self, store):
        self.store = store

    @classmethod
    def from_settings(cls):
        window = getattr(settings, 'CONTACT_RATE_LIMIT_WINDOW', 60)
        backend = getattr(settings, 'CONTACT_RATE_LIMIT_BACKEND', 'file')

        if backend == 'file':
            store = FileRateLimitStore(window, settings.CONTACT_RATE_LIMIT_DIR)
        elif backend == 'cache':
            store = CacheRateLimitStore(window)
        else:
            raise ValueError(f"Unknown CONTACT_RATE_LIMIT_BACKEND: {backend!r}")
        return cls(store)

    @property
    def window(self):
        return self.store.window

    def check_and_record(self, email, now=None):
        """
        Accept and record one submission for ``email`` if its window is free.

        Returns:
            tuple: (is_allowed, retry_after_seconds)
        """
        if now is None:
            now = current_timestamp()
        return self.store.acquire(hash_identifier(email), now)

    def reset(self):
        """Clear every record. Returns how many were removed."""
        cleared = self.store.reset()
        logger.info(f"Contact rate limits reset: {cleared} record(s) cleared")
        return cleared

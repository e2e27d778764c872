"""
Contact Form Localization

One shared message catalog (``contact/locale/messages.json``) serves the
server-side pipeline, the outgoing emails and both client guards, so every
layer shows identical wording.
"""
import json
from functools import lru_cache
from pathlib import Path

from django.conf import settings

SUPPORTED_LANGUAGES = ('fr', 'en', 'nl')
PRIMARY_LANGUAGE = 'fr'

# Page-origin signal: localized pages carry a language suffix in their URL,
# the base pages (no suffix) are French.
PAGE_SUFFIXES = (
    ('-en.html', 'en'),
    ('-nl.html', 'nl'),
)

CATALOG_PATH = Path(__file__).resolve().parent / 'locale' / 'messages.json'


@lru_cache(maxsize=1)
def load_catalog():
    """Load the catalog once per process."""
    with open(CATALOG_PATH, encoding='utf-8') as fh:
        return json.load(fh)


def default_language():
    language = getattr(settings, 'CONTACT_DEFAULT_LANGUAGE', PRIMARY_LANGUAGE)
    return language if language in SUPPORTED_LANGUAGES else PRIMARY_LANGUAGE


def detect_language(hint=None, page_url=None):
    """
    Resolve the language for a submission.

    Args:
        hint: explicit language code supplied by the caller
        page_url: URL of the page the form was posted from (Referer)

    Returns:
        One of SUPPORTED_LANGUAGES. Never fails.
    """
    if isinstance(hint, str):
        code = hint.strip().lower()
        if code in SUPPORTED_LANGUAGES:
            return code

    if isinstance(page_url, str):
        for suffix, code in PAGE_SUFFIXES:
            if suffix in page_url:
                return code

    return default_language()


def get_messages(language):
    """Return the full catalog entry for a language (primary language fallback)."""
    catalog = load_catalog()
    return catalog.get(language) or catalog[default_language()]


def translate(language, section, key, **params):
    """
    Look up one string and fill its placeholders.

    >>> translate('en', 'validation', 'required', field='Email')
    'Email is required'
    """
    text = get_messages(language)[section][key]
    if params:
        text = text.format(**params)
    return text


def field_label(language, field):
    return get_messages(language)['fields'].get(field, field)


def email_copy(language, **params):
    """All email strings for a language with placeholders filled."""
    return {
        key: value.format(**params) if '{' in value else value
        for key, value in get_messages(language)['email'].items()
    }


def client_messages(language):
    """Strings the client guards display (modals, countdown, pre-checks)."""
    return dict(get_messages(language)['client'])

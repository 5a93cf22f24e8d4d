"""
Document identifier and verification URL helpers.

These are pure functions that don't depend on models; they can be imported
from models, services and views without circular imports.

Identifier format: doc_<unix millis>_<lowercase base36 suffix>
"""

import re
import secrets
import string
import threading
import time
from urllib.parse import parse_qs, urlsplit

IDENTIFIER_PREFIX = 'doc'
SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 9

IDENTIFIER_RE = re.compile(r'^doc_\d+_[a-z0-9]+$')
EMBEDDED_URL_RE = re.compile(r'/verify\?id=(doc_\d+_[a-z0-9]+)')
EMBEDDED_ID_RE = re.compile(r'doc_\d+_[a-z0-9]+')

VERIFY_PATH = '/verify'


def is_valid_format(value) -> bool:
    """
    Check whether a string is a well-formed document identifier.

    Used to tell a scanned or extracted token apart from noise.
    """
    if not isinstance(value, str):
        return False
    return IDENTIFIER_RE.match(value) is not None


def derive_verification_url(document_id: str, origin: str) -> str:
    """
    Build the public verification URL for an identifier.

    Pure string concatenation: {origin}/verify?id={document_id}
    A trailing slash on the origin is dropped so the path stays canonical.
    """
    return f"{origin.rstrip('/')}{VERIFY_PATH}?id={document_id}"


def identifier_from_url(value: str):
    """
    Return the `id` query parameter of a verification URL, or None.

    Only URLs containing `/verify?id=` are considered, and the parameter must
    itself be a well-formed identifier.
    """
    if f'{VERIFY_PATH}?id=' not in value:
        return None
    candidates = parse_qs(urlsplit(value).query).get('id') or []
    for candidate in candidates:
        if is_valid_format(candidate):
            return candidate
    return None


def extract_identifier(text: str):
    """
    Find an identifier embedded anywhere in a block of text.

    Looks for the verification URL pattern first and falls back to the
    first bare identifier. Returns None when neither occurs.
    """
    match = EMBEDDED_URL_RE.search(text)
    if match:
        return match.group(1)
    match = EMBEDDED_ID_RE.search(text)
    if match:
        return match.group(0)
    return None


class IdentifierGenerator:
    """
    Generates time-ordered document identifiers.

    The millisecond component never goes backwards within one generator even
    if the wall clock does. Uniqueness rests on the random suffix; collisions
    are not detected here.
    """

    def __init__(self, clock=None, suffix_length=SUFFIX_LENGTH):
        if suffix_length < SUFFIX_LENGTH:
            raise ValueError(f"suffix_length must be at least {SUFFIX_LENGTH}")
        self._clock = clock or time.time
        self._suffix_length = suffix_length
        self._last_millis = 0
        self._lock = threading.Lock()

    def _next_millis(self):
        millis = int(self._clock() * 1000)
        with self._lock:
            if millis < self._last_millis:
                millis = self._last_millis
            self._last_millis = millis
        return millis

    def _random_suffix(self):
        return ''.join(secrets.choice(SUFFIX_ALPHABET) for _ in range(self._suffix_length))

    def generate(self) -> str:
        return f"{IDENTIFIER_PREFIX}_{self._next_millis()}_{self._random_suffix()}"

    @staticmethod
    def derive_verification_url(document_id, origin):
        return derive_verification_url(document_id, origin)

    @staticmethod
    def is_valid_format(value):
        return is_valid_format(value)


# Singleton instance
_identifier_generator = None


def get_identifier_generator() -> IdentifierGenerator:
    """Get singleton instance of the identifier generator."""
    global _identifier_generator
    if _identifier_generator is None:
        _identifier_generator = IdentifierGenerator()
    return _identifier_generator

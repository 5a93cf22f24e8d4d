"""
Verification business logic service layer.

Responsibilities:
- Resolve an identifier, a scanned payload or uploaded bytes to a Document
- Decide the verdict from the Document's current status
- Write exactly one VerificationLog entry per attempt

Resolution never raises for lookup failures: anything that cannot be
resolved, including store errors, ends up as a not_found verdict.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address

from ..models import Document, VerificationLog
from .exceptions import AmbiguousMatch, DocumentStoreError
from .hashing import get_hashing_service
from .identifiers import extract_identifier, identifier_from_url
from .qr_codec import QRCodec
from .stores import get_blob_store, get_document_store

logger = logging.getLogger(__name__)

VERDICT_VALID = 'valid'
VERDICT_REVOKED = 'revoked'
VERDICT_NOT_FOUND = 'not_found'

MATCHED_BY_IDENTIFIER = 'identifier'
MATCHED_BY_EMBEDDED_IDENTIFIER = 'embedded_identifier'
MATCHED_BY_HASH = 'hash'

# Log identifier when no identifier was attempted and nothing matched
UNKNOWN_DOCUMENT_ID = 'unknown'

LOGGED_ID_MAX_LENGTH = VerificationLog._meta.get_field('document_id').max_length

VERDICT_TO_LOG_RESULT = {
    VERDICT_VALID: VerificationLog.RESULT_VALID,
    VERDICT_REVOKED: VerificationLog.RESULT_REVOKED,
    VERDICT_NOT_FOUND: VerificationLog.RESULT_INVALID,
}

MESSAGES = {
    VERDICT_VALID: 'Document is valid and authentic',
    VERDICT_REVOKED: 'Document has been revoked by the issuer',
    VERDICT_NOT_FOUND: 'Document not found in our database',
}
UPLOAD_NOT_FOUND_MESSAGE = (
    'Document not found in verification database. This document may not be '
    'issued through our platform or may have been tampered with.'
)


def loggable_ip(ip_address):
    """The address if it parses as IPv4 or IPv6, else None."""
    if not ip_address:
        return None
    try:
        validate_ipv46_address(ip_address)
    except ValidationError:
        return None
    return ip_address


@dataclass(frozen=True)
class Resolution:
    """Outcome of one verification attempt."""
    document: Optional[Document]
    verdict: str
    matched_by: Optional[str] = None
    message: str = ''

    @property
    def is_valid(self):
        return self.verdict == VERDICT_VALID


def normalize_identifier(value):
    """
    Reduce user input to a lookup key.

    Surrounding whitespace is dropped and a pasted verification URL is
    reduced to its `id` parameter. Anything else is returned as typed.
    """
    if value is None:
        return None
    text = str(value).strip()
    return identifier_from_url(text) or text


def verdict_for(document):
    if document is None:
        return VERDICT_NOT_FOUND
    if document.is_active:
        return VERDICT_VALID
    return VERDICT_REVOKED


class VerificationResolver:
    """Service resolving verification claims against the document store."""

    def __init__(self, store=None, blobs=None, hasher=None):
        self.store = store or get_document_store()
        self.blobs = blobs or get_blob_store()
        self.hasher = hasher or get_hashing_service()

    def resolve(self, identifier=None, content=None, *, method=VerificationLog.METHOD_IDENTIFIER,
                ip_address=None, user_agent=''):
        """
        Resolve an identifier and/or raw bytes to a Document and verdict.

        Lookup order:
        1. `identifier` by primary key
        2. an identifier embedded in `content` (verification URL first,
           then a bare identifier)
        3. SHA256 of `content` against every stored document hash

        Args:
            identifier: str, typed, scanned or querystring identifier
            content: bytes, uploaded file content
            method: VerificationLog.METHOD_* for the audit entry
            ip_address: str, client address (optional)
            user_agent: str, client user agent

        Returns:
            Resolution

        Raises:
            ValueError: neither identifier nor content was given
        """
        if identifier is None and content is None:
            raise ValueError("resolve() needs an identifier or file content")

        attempted = normalize_identifier(identifier)
        document = None
        matched_by = None

        try:
            document, matched_by, attempted = self._lookup(attempted, content)
        except DocumentStoreError:
            logger.exception(f"Document store failed while verifying {attempted or 'uploaded content'}")
            document, matched_by = None, None

        verdict = verdict_for(document)
        log_id = attempted or (document.id if document is not None else UNKNOWN_DOCUMENT_ID)
        self._record(log_id, verdict, method, ip_address, user_agent)

        message = MESSAGES[verdict]
        if verdict == VERDICT_NOT_FOUND and content is not None:
            message = UPLOAD_NOT_FOUND_MESSAGE

        logger.info(
            f"Verification of {log_id} via {method}: {verdict}"
            + (f" (matched by {matched_by})" if matched_by else "")
        )
        return Resolution(document=document, verdict=verdict, matched_by=matched_by, message=message)

    def resolve_scan(self, payload, *, ip_address=None, user_agent=''):
        """
        Resolve a decoded QR payload.

        Payloads that carry no identifier are resolved as the raw text, so
        the attempt is still logged and reported as not found.
        """
        token = QRCodec.extract_token(payload)
        identifier = token if token is not None else (payload or '').strip()
        return self.resolve(
            identifier,
            method=VerificationLog.METHOD_SCAN,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def _lookup(self, attempted, content):
        """Returns (document, matched_by, attempted identifier)."""
        if attempted:
            document = self.store.get(attempted)
            if document is not None:
                return document, MATCHED_BY_IDENTIFIER, attempted

        if content is None:
            return None, None, attempted

        embedded = extract_identifier(bytes(content).decode('latin-1'))
        if embedded and embedded != attempted:
            document = self.store.get(embedded)
            if document is not None:
                return document, MATCHED_BY_EMBEDDED_IDENTIFIER, attempted or embedded
        attempted = attempted or embedded

        try:
            document = self._match_by_hash(self.hasher.digest(content))
        except AmbiguousMatch as e:
            document = e.candidates[0]
            logger.warning(f"Ambiguous hash match, using earliest issued {document.id}: {e.message}")
        if document is not None:
            return document, MATCHED_BY_HASH, attempted
        return None, None, attempted

    def _match_by_hash(self, digest):
        """
        Full scan for documents with this exact hash. O(n) in document count.

        Raises:
            AmbiguousMatch: several documents share the hash; candidates are
                ordered earliest issued first
        """
        matches = self.store.scan(lambda d: d.hash == digest)
        if len(matches) > 1:
            raise AmbiguousMatch(digest, matches)
        return matches[0] if matches else None

    def _record(self, document_id, verdict, method, ip_address, user_agent):
        entry = VerificationLog(
            document_id=document_id[:LOGGED_ID_MAX_LENGTH],
            result=VERDICT_TO_LOG_RESULT[verdict],
            method=method,
            ip_address=loggable_ip(ip_address),
            user_agent=user_agent or '',
        )
        try:
            self.store.append_log(entry)
        except DocumentStoreError:
            logger.exception(f"Could not record verification of {document_id}")

    def check_stored_copy(self, document):
        """
        Re-hash the stored blob and compare it with the recorded hash.

        Returns:
            dict: {'valid': bool, 'stored_hash': str, 'current_hash': str or None}
        """
        try:
            with self.blobs.open(document.document_url) as blob:
                current_hash = self.hasher.compute_file_sha256(blob)
        except Exception:
            logger.exception(f"Could not read stored copy of {document.id} at {document.document_url}")
            current_hash = None

        return {
            'valid': current_hash == document.hash,
            'stored_hash': document.hash,
            'current_hash': current_hash,
        }


# Singleton instance
_verification_resolver = None


def get_verification_resolver() -> VerificationResolver:
    """Get singleton instance of verification resolver."""
    global _verification_resolver
    if _verification_resolver is None:
        _verification_resolver = VerificationResolver()
    return _verification_resolver

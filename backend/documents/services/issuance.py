"""
Document issuance service layer.

Responsibilities:
- Generate the identifier and verification URL
- Stamp the uploaded PDF and hash the stamped bytes
- Upload the stamped PDF and persist the Document record

Issuance is all-or-nothing: a Document only becomes visible to verification
once stamping, hashing and upload have all succeeded.
"""

import logging
import re
from dataclasses import dataclass

from django.conf import settings
from django.utils import timezone

from ..models import Document
from .exceptions import DocumentNotFound, IssuerNotVerified
from .hashing import get_hashing_service
from .identifiers import derive_verification_url, get_identifier_generator
from .qr_codec import get_qr_codec
from .stamping import get_document_stamper
from .stores import get_blob_store, get_document_store

logger = logging.getLogger(__name__)


@dataclass
class IssueMetadata:
    """Descriptive metadata supplied by the issuer; immutable once issued."""
    title: str
    description: str = ''
    document_type: str = ''
    recipient_name: str = ''
    recipient_email: str = ''
    original_file_name: str = ''


def safe_file_stem(title):
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r'[^a-zA-Z0-9]', '_', title or '')


class IssuanceService:
    """Service that turns an uploaded PDF into an issued, verifiable Document."""

    def __init__(self, store=None, blobs=None, stamper=None, hasher=None,
                 identifiers=None, codec=None, origin=None, clock=None):
        self.store = store or get_document_store()
        self.blobs = blobs or get_blob_store()
        self.stamper = stamper or get_document_stamper()
        self.hasher = hasher or get_hashing_service()
        self.identifiers = identifiers or get_identifier_generator()
        self.codec = codec or get_qr_codec()
        self.origin = origin or settings.PUBLIC_SITE_URL
        self.clock = clock or timezone.now

    @staticmethod
    def blob_path(issuer, document_id, title):
        """
        Storage path for a stamped PDF.

        Returns:
            str: {prefix}/{issuer user id}/{document id}_{safe title}.pdf
        """
        prefix = getattr(settings, 'ISSUED_DOCUMENTS_PREFIX', 'issued_docs').strip('/')
        owner = issuer.user_id or issuer.id
        return f"{prefix}/{owner}/{document_id}_{safe_file_stem(title)}.pdf"

    def issue(self, issuer, upload_bytes, metadata, *, origin=None):
        """
        Issue a document.

        Steps, in order:
        1. generate identifier
        2. derive verification URL
        3. stamp the PDF with that URL
        4. hash the stamped bytes
        5. upload the stamped bytes
        6. render the display QR code
        7. persist the Document with status active

        Args:
            issuer: Issuer instance (must be verified)
            upload_bytes: bytes, the uploaded PDF
            metadata: IssueMetadata
            origin: str, serving origin for the verification URL
                (defaults to PUBLIC_SITE_URL)

        Returns:
            Document: the persisted record

        Raises:
            IssuerNotVerified, MalformedDocument, UploadFailure,
            DuplicateIdentifier, DocumentStoreError
        """
        if not issuer.is_verified:
            raise IssuerNotVerified(
                f"Issuer {issuer.organization_name} is {issuer.status}; only verified issuers can issue documents"
            )

        document_id = self.identifiers.generate()
        verification_url = derive_verification_url(document_id, origin or self.origin)

        stamped_bytes = self.stamper.stamp(upload_bytes, verification_url)
        document_hash = self.hasher.digest(stamped_bytes)

        document_url = self.blobs.put(
            stamped_bytes,
            self.blob_path(issuer, document_id, metadata.title)
        )

        try:
            document = Document(
                id=document_id,
                issuer_id=issuer.id,
                issuer_name=issuer.organization_name,
                title=metadata.title,
                description=metadata.description or '',
                document_type=metadata.document_type or '',
                recipient_name=metadata.recipient_name or '',
                recipient_email=metadata.recipient_email or '',
                hash=document_hash,
                status=Document.STATUS_ACTIVE,
                issued_at=self.clock(),
                verification_url=verification_url,
                qr_code_data=self.codec.encode_data_uri(verification_url),
                document_url=document_url,
                original_file_name=metadata.original_file_name or '',
            )
            self.store.create(document)
        except Exception:
            self._discard_blob(document_url)
            raise

        logger.info(f"Issued document {document_id} for issuer {issuer.id} (sha256 {document_hash})")
        return document

    def _discard_blob(self, document_url):
        """Remove an uploaded blob whose Document could not be persisted."""
        try:
            self.blobs.delete(document_url)
        except Exception:
            logger.exception(f"Failed to remove orphaned blob {document_url}")

    def get_document(self, document_id):
        document = self.store.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        return document

    def list_for_issuer(self, issuer_id):
        """Documents issued by one issuer, newest first."""
        return self.store.filter_by_issuer(issuer_id)


def get_issuance_service() -> IssuanceService:
    """Build an issuance service wired to the default store and storage."""
    return IssuanceService()

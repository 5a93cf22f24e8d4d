from .hashing import HashingService, get_hashing_service
from .identifiers import IdentifierGenerator, get_identifier_generator, derive_verification_url, is_valid_format
from .qr_codec import QRCodec, QROptions, get_qr_codec, scan_for_identifier
from .stamping import DocumentStamper, get_document_stamper
from .stores import BlobStore, DjangoDocumentStore, InMemoryDocumentStore, get_blob_store, get_document_store
from .issuance import IssuanceService, IssueMetadata, get_issuance_service
from .revocation import RevocationService, get_revocation_service
from .verification import Resolution, VerificationResolver, get_verification_resolver

__all__ = [
    'HashingService',
    'get_hashing_service',
    'IdentifierGenerator',
    'get_identifier_generator',
    'derive_verification_url',
    'is_valid_format',
    'QRCodec',
    'QROptions',
    'get_qr_codec',
    'scan_for_identifier',
    'DocumentStamper',
    'get_document_stamper',
    'BlobStore',
    'DjangoDocumentStore',
    'InMemoryDocumentStore',
    'get_blob_store',
    'get_document_store',
    'IssuanceService',
    'IssueMetadata',
    'get_issuance_service',
    'RevocationService',
    'get_revocation_service',
    'Resolution',
    'VerificationResolver',
    'get_verification_resolver',
]

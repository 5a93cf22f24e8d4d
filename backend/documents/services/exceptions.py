"""
Error taxonomy for issuance, revocation and verification.

Issuance errors abort the whole operation. Revocation guards are rejected
operations, never crashes. Verification turns lookup failures into a
not-found verdict instead of raising.
"""


class DocumentVerificationError(Exception):
    """Base class for all document issuance/verification errors."""

    default_message = "Document operation failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class MalformedDocument(DocumentVerificationError):
    default_message = "The uploaded file is not a readable PDF document"


class UploadFailure(DocumentVerificationError):
    default_message = "Could not store the stamped document"


class IssuerNotVerified(DocumentVerificationError):
    default_message = "Only verified issuers can issue documents"


class DocumentNotFound(DocumentVerificationError):
    default_message = "Document not found"

    def __init__(self, document_id, message=None):
        super().__init__(message or f"Document {document_id} not found")
        self.document_id = document_id


class DuplicateIdentifier(DocumentVerificationError):
    default_message = "A document with this identifier already exists"


class DocumentStoreError(DocumentVerificationError):
    default_message = "Document store is unavailable"


class AlreadyRevoked(DocumentVerificationError):
    """Revoking a revoked document. Carries the unchanged document."""

    default_message = "Document has already been revoked"

    def __init__(self, document, message=None):
        super().__init__(message)
        self.document = document


class InvalidTransition(DocumentVerificationError):
    default_message = "Unsupported document status transition"

    def __init__(self, current_status, target_status, message=None):
        super().__init__(
            message or f"Cannot move a document from '{current_status}' to '{target_status}'"
        )
        self.current_status = current_status
        self.target_status = target_status


class AmbiguousMatch(DocumentVerificationError):
    """More than one stored document shares a content hash."""

    default_message = "Several documents share the same content hash"

    def __init__(self, digest, candidates):
        super().__init__(
            f"{len(candidates)} documents share hash {digest}: "
            + ", ".join(c.id for c in candidates)
        )
        self.digest = digest
        self.candidates = candidates

"""
Document revocation state machine.

States:
- active (initial)
- revoked (terminal)

The only supported transition is active -> revoked. Transitions go through
the store's compare-and-set update, so two concurrent revokes converge on a
single winner and the loser sees AlreadyRevoked.
"""

import logging

from django.utils import timezone

from ..models import Document
from .exceptions import AlreadyRevoked, DocumentNotFound, InvalidTransition
from .stores import get_document_store

logger = logging.getLogger(__name__)

# (from, to) pairs the state machine accepts
ALLOWED_TRANSITIONS = {
    (Document.STATUS_ACTIVE, Document.STATUS_REVOKED),
}


class RevocationService:
    """Service for document status transitions."""

    def __init__(self, store=None, clock=None):
        self.store = store or get_document_store()
        self.clock = clock or timezone.now

    def _load(self, document_id):
        document = self.store.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        return document

    def revoke(self, document_id, actor_id, reason=None):
        """
        Revoke an active document.

        Args:
            document_id: str
            actor_id: str, who revoked it
            reason: str, optional free text

        Returns:
            Document: the revoked document

        Raises:
            DocumentNotFound: no such document
            AlreadyRevoked: document was already revoked (state unchanged)
        """
        return self.transition(document_id, Document.STATUS_REVOKED, actor_id, reason)

    def transition(self, document_id, target_status, actor_id, reason=None):
        """
        Move a document to `target_status`.

        Raises:
            DocumentNotFound: no such document
            AlreadyRevoked: revoking a document that is already revoked
            InvalidTransition: any other move, e.g. revoked -> active
        """
        document = self._load(document_id)
        current_status = document.status

        if current_status == Document.STATUS_REVOKED and target_status == Document.STATUS_REVOKED:
            raise AlreadyRevoked(document)
        if (current_status, target_status) not in ALLOWED_TRANSITIONS:
            raise InvalidTransition(current_status, target_status)

        revoked_at = self.clock()
        changed = self.store.update_if_status(
            document_id,
            current_status,
            status=target_status,
            revoked_at=revoked_at,
            revoked_by=actor_id,
            revoked_reason=reason,
        )

        if not changed:
            # Lost a race; report what the winner left behind
            latest = self._load(document_id)
            if latest.status == Document.STATUS_REVOKED:
                logger.info(f"Concurrent revoke of {document_id}; keeping the first revocation by {latest.revoked_by}")
                raise AlreadyRevoked(latest)
            raise InvalidTransition(latest.status, target_status)

        document.status = target_status
        document.revoked_at = revoked_at
        document.revoked_by = actor_id
        document.revoked_reason = reason

        logger.info(f"Document {document_id} revoked by {actor_id}" + (f": {reason}" if reason else ""))
        return document


# Singleton instance
_revocation_service = None


def get_revocation_service() -> RevocationService:
    """Get singleton instance of revocation service."""
    global _revocation_service
    if _revocation_service is None:
        _revocation_service = RevocationService()
    return _revocation_service

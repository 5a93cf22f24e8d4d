"""
Storage collaborators for the issuance and verification services.

- DocumentStore: keyed record store for Documents and verification logs
- BlobStore: stamped PDF storage returning retrievable URLs

Services receive these through their constructors so tests can swap in the
in-memory store and Django's InMemoryStorage.
"""

import copy
import logging
import threading
from typing import Callable, Iterable, List, Optional, Protocol
from urllib.parse import unquote, urlsplit

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.db import DatabaseError, IntegrityError, transaction

from ..models import Document, VerificationLog
from .exceptions import DocumentStoreError, DuplicateIdentifier, UploadFailure

logger = logging.getLogger(__name__)

SCAN_ORDER = ('issued_at', 'id')


class DocumentStore(Protocol):
    """Keyed-record store with atomic single-record create/update."""

    def create(self, document: Document) -> Document: ...

    def get(self, document_id: str) -> Optional[Document]: ...

    def update_if_status(self, document_id: str, expected_status: str, **fields) -> bool: ...

    def scan(self, predicate: Callable[[Document], bool]) -> List[Document]: ...

    def filter_by_issuer(self, issuer_id: str) -> List[Document]: ...

    def append_log(self, entry: VerificationLog) -> VerificationLog: ...

    def count_logs(self) -> int: ...


class DjangoDocumentStore:
    """DocumentStore backed by the Django ORM."""

    def create(self, document):
        """
        Insert a new document; never overwrites an existing one.

        Raises:
            DuplicateIdentifier: a document with the same id exists
            DocumentStoreError: database failure
        """
        try:
            with transaction.atomic():
                document.save(force_insert=True)
        except IntegrityError as e:
            raise DuplicateIdentifier(f"Document {document.id} already exists") from e
        except DatabaseError as e:
            raise DocumentStoreError(f"Could not persist document {document.id}: {e}") from e
        return document

    def get(self, document_id):
        try:
            return Document.objects.filter(pk=document_id).first()
        except DatabaseError as e:
            raise DocumentStoreError(f"Could not load document {document_id}: {e}") from e

    def update_if_status(self, document_id, expected_status, **fields):
        """
        Compare-and-set update: applies `fields` only while the stored status
        still equals `expected_status`. Returns True when a row changed.
        """
        try:
            updated = Document.objects.filter(
                pk=document_id,
                status=expected_status
            ).update(**fields)
        except DatabaseError as e:
            raise DocumentStoreError(f"Could not update document {document_id}: {e}") from e
        return updated == 1

    def scan(self, predicate):
        """Full table scan in (issued_at, id) order. O(n) in document count."""
        # The predicate never needs the QR image
        documents = Document.objects.defer('qr_code_data').order_by(*SCAN_ORDER)
        try:
            return [
                document
                for document in documents.iterator()
                if predicate(document)
            ]
        except DatabaseError as e:
            raise DocumentStoreError(f"Could not scan documents: {e}") from e

    def filter_by_issuer(self, issuer_id):
        try:
            return list(Document.objects.filter(issuer_id=issuer_id).order_by('-issued_at', '-id'))
        except DatabaseError as e:
            raise DocumentStoreError(f"Could not list documents for issuer {issuer_id}: {e}") from e

    def append_log(self, entry):
        try:
            entry.save(force_insert=True)
        except DatabaseError as e:
            raise DocumentStoreError(f"Could not write verification log: {e}") from e
        return entry

    def count_logs(self):
        return VerificationLog.objects.count()


class InMemoryDocumentStore:
    """
    Thread-safe in-process DocumentStore.

    Holds unsaved model instances and hands out copies, so callers cannot
    mutate stored state without going through the store.
    """

    def __init__(self, documents: Iterable[Document] = ()):
        self._documents = {}
        self._logs = []
        self._lock = threading.Lock()
        for document in documents:
            self.create(document)

    def create(self, document):
        with self._lock:
            if document.id in self._documents:
                raise DuplicateIdentifier(f"Document {document.id} already exists")
            self._documents[document.id] = copy.copy(document)
        return document

    def get(self, document_id):
        with self._lock:
            stored = self._documents.get(document_id)
            return copy.copy(stored) if stored is not None else None

    def update_if_status(self, document_id, expected_status, **fields):
        with self._lock:
            stored = self._documents.get(document_id)
            if stored is None or stored.status != expected_status:
                return False
            for name, value in fields.items():
                setattr(stored, name, value)
            return True

    def scan(self, predicate):
        with self._lock:
            documents = sorted(self._documents.values(), key=lambda d: (d.issued_at, d.id))
            return [copy.copy(d) for d in documents if predicate(d)]

    def filter_by_issuer(self, issuer_id):
        with self._lock:
            documents = [d for d in self._documents.values() if d.issuer_id == issuer_id]
        documents.sort(key=lambda d: (d.issued_at, d.id), reverse=True)
        return [copy.copy(d) for d in documents]

    def append_log(self, entry):
        with self._lock:
            self._logs.append(entry)
        return entry

    def count_logs(self):
        with self._lock:
            return len(self._logs)

    @property
    def logs(self):
        with self._lock:
            return list(self._logs)


class BlobStore:
    """Blob storage for stamped PDFs on top of a Django Storage backend."""

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def put(self, data: bytes, path: str) -> str:
        """
        Store `data` under `path` and return its retrievable URL.

        Raises:
            UploadFailure: the storage backend rejected the write
        """
        try:
            name = self.storage.save(path, ContentFile(data))
            url = self.storage.url(name)
        except Exception as e:
            raise UploadFailure(f"Could not upload stamped document to {path}: {e}") from e
        logger.info(f"Stored {len(data)} bytes at {name}")
        return url

    def _name_from_url(self, url):
        base_url = str(getattr(self.storage, 'base_url', '') or '')
        if base_url and url.startswith(base_url):
            return unquote(url[len(base_url):])
        base_path = urlsplit(base_url).path if base_url else ''
        path = urlsplit(url).path
        if base_path and path.startswith(base_path):
            path = path[len(base_path):]
        return unquote(path.lstrip('/'))

    def open(self, url: str):
        """Open the blob at `url` for binary reading."""
        return self.storage.open(self._name_from_url(url), 'rb')

    def get(self, url: str) -> bytes:
        with self.open(url) as blob:
            return blob.read()

    def delete(self, url: str) -> None:
        self.storage.delete(self._name_from_url(url))


# Singleton instances
_document_store = None
_blob_store = None


def get_document_store() -> DjangoDocumentStore:
    """Get singleton instance of the ORM-backed document store."""
    global _document_store
    if _document_store is None:
        _document_store = DjangoDocumentStore()
    return _document_store


def get_blob_store() -> BlobStore:
    """Get singleton instance of the default-storage blob store."""
    global _blob_store
    if _blob_store is None:
        _blob_store = BlobStore()
    return _blob_store

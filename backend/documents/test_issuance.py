from django.core.files.storage import InMemoryStorage
from django.test import SimpleTestCase

from .models import Document, Issuer
from .services.exceptions import (
    DocumentStoreError, DuplicateIdentifier, IssuerNotVerified, MalformedDocument, UploadFailure
)
from .services.hashing import HashingService
from .services.issuance import IssuanceService, IssueMetadata, safe_file_stem
from .services.stamping import DocumentStamper
from .services.stores import BlobStore, InMemoryDocumentStore
from .testutils import ORIGIN, SCENARIO_ID, FixedIdentifierGenerator, make_document, make_issuer, make_pdf


class RecordingStamper(DocumentStamper):
    def __init__(self, calls):
        super().__init__()
        self.calls = calls

    def stamp(self, pdf_bytes, verification_url):
        self.calls.append('stamp')
        return super().stamp(pdf_bytes, verification_url)


class RecordingHasher(HashingService):
    def __init__(self, calls):
        self.calls = calls

    def digest(self, data):
        self.calls.append('hash')
        return super().digest(data)


class RecordingBlobStore(BlobStore):
    def __init__(self, calls, fail=False):
        super().__init__(InMemoryStorage())
        self.calls = calls
        self.fail = fail

    def put(self, data, path):
        self.calls.append('upload')
        if self.fail:
            raise UploadFailure('storage is down')
        return super().put(data, path)


class RecordingStore(InMemoryDocumentStore):
    def __init__(self, calls, fail=False):
        super().__init__()
        self.calls = calls
        self.fail = fail

    def create(self, document):
        self.calls.append('persist')
        if self.fail:
            raise DocumentStoreError('database is down')
        return super().create(document)


class IssuanceServiceTests(SimpleTestCase):
    def setUp(self):
        self.calls = []
        self.store = RecordingStore(self.calls)
        self.blobs = RecordingBlobStore(self.calls)
        self.generator = FixedIdentifierGenerator(SCENARIO_ID)
        self.issuer = make_issuer()
        self.metadata = IssueMetadata(
            title="Bachelor's Degree",
            description='Computer Science',
            document_type='degree',
            recipient_name='Ada Lovelace',
            recipient_email='ada@example.org',
            original_file_name='degree.pdf',
        )

    def build_service(self, **overrides):
        collaborators = {
            'store': self.store,
            'blobs': self.blobs,
            'stamper': RecordingStamper(self.calls),
            'hasher': RecordingHasher(self.calls),
            'identifiers': self.generator,
            'origin': ORIGIN,
        }
        collaborators.update(overrides)
        return IssuanceService(**collaborators)

    def test_issue_persists_active_document(self):
        document = self.build_service().issue(self.issuer, make_pdf(), self.metadata)

        self.assertEqual(document.id, SCENARIO_ID)
        self.assertEqual(document.status, Document.STATUS_ACTIVE)
        self.assertEqual(document.issuer_id, 'issuer_1')
        self.assertEqual(document.issuer_name, 'Springfield University')
        self.assertEqual(document.recipient_email, 'ada@example.org')
        self.assertEqual(document.original_file_name, 'degree.pdf')
        self.assertTrue(document.qr_code_data.startswith('data:image/png;base64,'))
        self.assertIsNotNone(document.issued_at)

        stored = self.store.get(SCENARIO_ID)
        self.assertEqual(stored.hash, document.hash)

    def test_verification_url_matches_identifier(self):
        document = self.build_service().issue(self.issuer, make_pdf(), self.metadata)
        self.assertEqual(document.verification_url, f"{ORIGIN}/verify?id={SCENARIO_ID}")
        self.assertEqual(document.derive_verification_url(ORIGIN), document.verification_url)

    def test_request_origin_overrides_default(self):
        document = self.build_service().issue(
            self.issuer, make_pdf(), self.metadata, origin='https://docs.example.com/'
        )
        self.assertEqual(document.verification_url, f"https://docs.example.com/verify?id={SCENARIO_ID}")

    def test_hash_is_of_the_stored_stamped_bytes(self):
        original = make_pdf()
        document = self.build_service().issue(self.issuer, original, self.metadata)

        stored_bytes = self.blobs.get(document.document_url)
        self.assertEqual(HashingService.digest(stored_bytes), document.hash)
        self.assertNotEqual(HashingService.digest(original), document.hash)

    def test_blob_path(self):
        document = self.build_service().issue(self.issuer, make_pdf(), self.metadata)
        self.assertTrue(
            document.document_url.endswith(f"issued_docs/user_1/{SCENARIO_ID}_Bachelor_s_Degree.pdf")
        )

    def test_steps_run_in_order(self):
        self.build_service().issue(self.issuer, make_pdf(), self.metadata)
        self.assertEqual(self.calls, ['stamp', 'hash', 'upload', 'persist'])

    def test_malformed_pdf_aborts_before_hash_and_upload(self):
        with self.assertRaises(MalformedDocument):
            self.build_service().issue(self.issuer, b'not a pdf at all', self.metadata)

        self.assertEqual(self.calls, ['stamp'])
        self.assertIsNone(self.store.get(SCENARIO_ID))

    def test_upload_failure_persists_nothing(self):
        service = self.build_service(blobs=RecordingBlobStore(self.calls, fail=True))

        with self.assertRaises(UploadFailure):
            service.issue(self.issuer, make_pdf(), self.metadata)

        self.assertNotIn('persist', self.calls)
        self.assertIsNone(self.store.get(SCENARIO_ID))

    def test_persist_failure_removes_uploaded_blob(self):
        service = self.build_service(store=RecordingStore(self.calls, fail=True))

        with self.assertRaises(DocumentStoreError):
            service.issue(self.issuer, make_pdf(), self.metadata)

        self.assertEqual(self.blobs.storage.listdir('issued_docs/user_1')[1], [])

    def test_duplicate_identifier_is_rejected(self):
        self.store.create(make_document(SCENARIO_ID))

        with self.assertRaises(DuplicateIdentifier):
            self.build_service().issue(self.issuer, make_pdf(), self.metadata)

        self.assertEqual(self.store.get(SCENARIO_ID).title, 'Bachelor of Science')

    def test_unverified_issuer_cannot_issue(self):
        for issuer_status in (Issuer.STATUS_PENDING, Issuer.STATUS_REJECTED):
            issuer = make_issuer(status=issuer_status)
            self.assertFalse(issuer.is_verified)

            with self.assertRaises(IssuerNotVerified):
                self.build_service().issue(issuer, make_pdf(), self.metadata)

        self.assertTrue(make_issuer().is_verified)
        self.assertEqual(self.generator.calls, 0)
        self.assertEqual(self.calls, [])

    def test_list_for_issuer_is_newest_first(self):
        generator = FixedIdentifierGenerator('doc_1700000000000_aaaaaaaaa', 'doc_1700000000001_bbbbbbbbb')
        service = self.build_service(identifiers=generator)
        first = service.issue(self.issuer, make_pdf('first'), self.metadata)
        second = service.issue(self.issuer, make_pdf('second'), self.metadata)

        listed = service.list_for_issuer('issuer_1')
        self.assertEqual([d.id for d in listed], [second.id, first.id])
        self.assertEqual(service.list_for_issuer('someone_else'), [])


class SafeFileStemTests(SimpleTestCase):
    def test_non_alphanumerics_become_underscores(self):
        self.assertEqual(safe_file_stem('MSc: Data/AI (2024)'), 'MSc__Data_AI__2024_')

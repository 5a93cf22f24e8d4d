from datetime import timedelta

from django.core.files.storage import InMemoryStorage
from django.test import SimpleTestCase, TestCase

from .models import Document, VerificationLog
from .services.exceptions import DuplicateIdentifier, UploadFailure
from .services.stores import BlobStore, DjangoDocumentStore, InMemoryDocumentStore
from .testutils import SCENARIO_ID, make_document


class DjangoDocumentStoreTests(TestCase):
    def setUp(self):
        self.store = DjangoDocumentStore()

    def test_create_and_get(self):
        self.store.create(make_document(SCENARIO_ID))

        loaded = self.store.get(SCENARIO_ID)
        self.assertEqual(loaded.title, 'Bachelor of Science')
        self.assertIsNone(self.store.get('doc_1_missing000'))

    def test_create_never_overwrites(self):
        self.store.create(make_document(SCENARIO_ID))

        with self.assertRaises(DuplicateIdentifier):
            self.store.create(make_document(SCENARIO_ID, title='Forged'))

        self.assertEqual(Document.objects.get(pk=SCENARIO_ID).title, 'Bachelor of Science')

    def test_update_if_status_is_compare_and_set(self):
        self.store.create(make_document(SCENARIO_ID))

        self.assertTrue(self.store.update_if_status(
            SCENARIO_ID, Document.STATUS_ACTIVE,
            status=Document.STATUS_REVOKED, revoked_by='issuer_1'
        ))
        self.assertFalse(self.store.update_if_status(
            SCENARIO_ID, Document.STATUS_ACTIVE,
            status=Document.STATUS_REVOKED, revoked_by='issuer_2'
        ))
        self.assertEqual(Document.objects.get(pk=SCENARIO_ID).revoked_by, 'issuer_1')
        self.assertFalse(self.store.update_if_status('doc_1_missing000', Document.STATUS_ACTIVE, status='revoked'))

    def test_scan_is_ordered_by_issue_time(self):
        first = make_document('doc_1700000000000_first0000', content=b'same')
        second = make_document(
            'doc_1700000000000_second000', content=b'same',
            issued_at=first.issued_at + timedelta(hours=1),
        )
        other = make_document('doc_1700000000000_other0000', content=b'other')
        for document in (second, other, first):
            self.store.create(document)

        matches = self.store.scan(lambda d: d.hash == first.hash)
        self.assertEqual([d.id for d in matches], [first.id, second.id])

    def test_filter_by_issuer(self):
        older = make_document('doc_1700000000000_older0000')
        newer = make_document('doc_1700000000001_newer0000', issued_at=older.issued_at + timedelta(days=1))
        foreign = make_document('doc_1700000000002_foreign00', issuer_id='issuer_2')
        for document in (older, newer, foreign):
            self.store.create(document)

        self.assertEqual(
            [d.id for d in self.store.filter_by_issuer('issuer_1')],
            [newer.id, older.id]
        )

    def test_append_log(self):
        self.store.append_log(VerificationLog(document_id='unknown', result=VerificationLog.RESULT_INVALID))
        self.assertEqual(self.store.count_logs(), 1)
        self.assertEqual(VerificationLog.objects.get().method, VerificationLog.METHOD_IDENTIFIER)

    def test_scan_skips_qr_image(self):
        self.store.create(make_document(qr_code_data='data:image/png;base64,AAAA'))

        scanned = self.store.scan(lambda d: True)

        self.assertEqual(len(scanned), 1)
        self.assertIn('qr_code_data', scanned[0].get_deferred_fields())
        self.assertEqual(scanned[0].qr_code_data, 'data:image/png;base64,AAAA')


class InMemoryDocumentStoreTests(SimpleTestCase):
    def test_reads_are_copies(self):
        store = InMemoryDocumentStore([make_document(SCENARIO_ID)])

        loaded = store.get(SCENARIO_ID)
        loaded.status = Document.STATUS_REVOKED

        self.assertEqual(store.get(SCENARIO_ID).status, Document.STATUS_ACTIVE)

    def test_create_never_overwrites(self):
        store = InMemoryDocumentStore([make_document(SCENARIO_ID)])
        with self.assertRaises(DuplicateIdentifier):
            store.create(make_document(SCENARIO_ID))


class FailingStorage(InMemoryStorage):
    def _save(self, name, content):
        raise OSError('disk full')


class BlobStoreTests(SimpleTestCase):
    def test_put_get_delete(self):
        blobs = BlobStore(InMemoryStorage())

        url = blobs.put(b'%PDF-1.4 stamped', 'issued_docs/user_1/doc.pdf')

        self.assertEqual(url, '/media/issued_docs/user_1/doc.pdf')
        self.assertEqual(blobs.get(url), b'%PDF-1.4 stamped')
        blobs.delete(url)
        self.assertFalse(blobs.storage.exists('issued_docs/user_1/doc.pdf'))

    def test_absolute_base_url(self):
        blobs = BlobStore(InMemoryStorage(base_url='https://cdn.example.org/files/'))

        url = blobs.put(b'data', 'issued_docs/a b.pdf')

        self.assertTrue(url.startswith('https://cdn.example.org/files/'))
        self.assertEqual(blobs.get(url), b'data')

    def test_storage_errors_become_upload_failure(self):
        with self.assertRaises(UploadFailure):
            BlobStore(FailingStorage()).put(b'data', 'issued_docs/doc.pdf')

import os
import tempfile
from io import StringIO

from django.core.cache import cache
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from .models import Document, Issuer, VerificationLog
from .services.hashing import HashingService
from .testutils import ORIGIN, SCENARIO_ID, make_document, make_issuer, make_pdf

IN_MEMORY_STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.InMemoryStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}


@override_settings(STORAGES=IN_MEMORY_STORAGES, PUBLIC_SITE_URL=ORIGIN)
class DocumentApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.issuer = make_issuer()
        self.issuer.save()

    def issue(self, **overrides):
        data = {
            "issuer_id": self.issuer.id,
            "title": "Bachelor of Science",
            "recipient_name": "Ada Lovelace",
            "recipient_email": "ada@example.org",
            "file": SimpleUploadedFile("degree.pdf", make_pdf(), content_type="application/pdf"),
        }
        data.update(overrides)
        return self.client.post("/api/documents/issue/", data, format="multipart")

    def test_issue_document(self):
        res = self.issue()

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        document = Document.objects.get(pk=res.data["id"])
        self.assertEqual(document.status, Document.STATUS_ACTIVE)
        self.assertEqual(res.data["verification_url"], f"{ORIGIN}/verify?id={document.id}")
        self.assertEqual(res.data["original_file_name"], "degree.pdf")

        with default_storage.open(res.data["document_url"].replace("/media/", "", 1), "rb") as stored:
            self.assertEqual(HashingService.digest(stored.read()), document.hash)

    def test_issue_rejects_malformed_pdf_and_keeps_form(self):
        res = self.issue(file=SimpleUploadedFile("degree.pdf", b"not really a pdf", content_type="application/pdf"))

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("error", res.data)
        self.assertEqual(res.data["form"]["title"], "Bachelor of Science")
        self.assertEqual(Document.objects.count(), 0)

    def test_issue_requires_verified_issuer(self):
        pending = make_issuer(id="issuer_2", user_id="user_2", status=Issuer.STATUS_PENDING)
        pending.save()

        res = self.issue(issuer_id=pending.id)

        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Document.objects.count(), 0)

    def test_issue_validates_input(self):
        res = self.issue(title="  ")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

        res = self.issue(file=SimpleUploadedFile("photo.png", b"\x89PNG", content_type="image/png"))
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

        res = self.issue(issuer_id="nobody")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_and_detail(self):
        issued = self.issue().data

        res = self.client.get("/api/documents/", {"issuer_id": self.issuer.id})
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual([d["id"] for d in res.data["results"]], [issued["id"]])

        res = self.client.get(f"/api/documents/{issued['id']}/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["hash"], issued["hash"])

        self.assertEqual(self.client.get("/api/documents/").status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.get("/api/documents/doc_1_missing000/").status_code, status.HTTP_404_NOT_FOUND)

    def test_revoke(self):
        make_document(SCENARIO_ID).save()

        res = self.client.post(
            f"/api/documents/{SCENARIO_ID}/revoke/", {"actor_id": "issuer_1", "reason": "error"}, format="json"
        )
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["status"], Document.STATUS_REVOKED)
        self.assertEqual(res.data["revoked_by"], "issuer_1")
        first_revoked_at = Document.objects.get(pk=SCENARIO_ID).revoked_at

        res = self.client.post(f"/api/documents/{SCENARIO_ID}/revoke/", {"actor_id": "issuer_9"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)
        stored = Document.objects.get(pk=SCENARIO_ID)
        self.assertEqual(stored.revoked_by, "issuer_1")
        self.assertEqual(stored.revoked_at, first_revoked_at)

    def test_revoke_unknown_document(self):
        res = self.client.post("/api/documents/doc_1_missing000/revoke/", {"actor_id": "issuer_1"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

    def test_verification_history(self):
        make_document(SCENARIO_ID).save()
        cache.clear()
        self.client.get("/verify", {"id": SCENARIO_ID})

        res = self.client.get(f"/api/documents/{SCENARIO_ID}/verifications/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["result"], VerificationLog.RESULT_VALID)


@override_settings(STORAGES=IN_MEMORY_STORAGES)
class PublicVerifyTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_verify_by_identifier(self):
        make_document(SCENARIO_ID).save()

        res = self.client.get("/verify", {"id": SCENARIO_ID}, REMOTE_ADDR="203.0.113.9", HTTP_USER_AGENT="QRScanner/1.0")

        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertTrue(data["valid"])
        self.assertEqual(data["verdict"], "valid")
        self.assertEqual(data["document"]["id"], SCENARIO_ID)
        self.assertNotIn("recipient_email", data["document"])

        entry = VerificationLog.objects.get()
        self.assertEqual(entry.result, VerificationLog.RESULT_VALID)
        self.assertEqual(entry.ip_address, "203.0.113.9")
        self.assertEqual(entry.user_agent, "QRScanner/1.0")

    def test_unknown_identifier_is_a_verdict(self):
        res = self.client.get("/verify", {"id": "doc_1700000000000_neverissued"})

        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertFalse(data["valid"])
        self.assertEqual(data["verdict"], "not_found")
        self.assertIsNone(data["document"])
        entry = VerificationLog.objects.get()
        self.assertEqual(entry.result, VerificationLog.RESULT_INVALID)
        self.assertEqual(entry.document_id, "doc_1700000000000_neverissued")

    def test_bad_forwarded_address_and_long_identifier_are_still_logged(self):
        res = self.client.get("/verify", {"id": "x" * 300}, HTTP_X_FORWARDED_FOR="unknown, 10.0.0.1")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["verdict"], "not_found")
        entry = VerificationLog.objects.get()
        self.assertIsNone(entry.ip_address)
        self.assertEqual(entry.document_id, "x" * 255)

    def test_missing_id_is_not_found(self):
        res = self.client.get("/verify")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["verdict"], "not_found")
        self.assertEqual(VerificationLog.objects.count(), 1)

    def test_revoked_scenario(self):
        make_document(SCENARIO_ID).save()
        self.client.post(f"/api/documents/{SCENARIO_ID}/revoke/", {"actor_id": "issuer_1", "reason": "error"}, format="json")

        data = self.client.get("/verify", {"id": SCENARIO_ID}).json()

        self.assertFalse(data["valid"])
        self.assertEqual(data["verdict"], "revoked")
        self.assertEqual(data["document"]["revoked_reason"], "error")

    def test_verify_upload_by_hash(self):
        content = b"%PDF-1.7 copy as distributed"
        make_document(SCENARIO_ID, content=content).save()

        res = self.client.post(
            "/verify/upload/",
            {"file": SimpleUploadedFile("copy.pdf", content, content_type="application/pdf")},
            format="multipart",
        )

        data = res.json()
        self.assertEqual(res.status_code, 200)
        self.assertTrue(data["valid"])
        self.assertEqual(data["matched_by"], "hash")
        self.assertEqual(VerificationLog.objects.get().method, VerificationLog.METHOD_UPLOAD)

    def test_verify_upload_of_unknown_file(self):
        res = self.client.post(
            "/verify/upload/",
            {"file": SimpleUploadedFile("copy.pdf", b"%PDF-1.7 unknown", content_type="application/pdf")},
            format="multipart",
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["verdict"], "not_found")
        self.assertEqual(VerificationLog.objects.get().document_id, "unknown")

    def test_verify_scan_payload(self):
        make_document(SCENARIO_ID).save()

        res = self.client.post("/verify/scan/", {"payload": f"{ORIGIN}/verify?id={SCENARIO_ID}\n"}, format="json")

        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.json()["valid"])
        self.assertEqual(VerificationLog.objects.get().method, VerificationLog.METHOD_SCAN)

    @override_settings(PUBLIC_VERIFY_THROTTLE_RATE="2/min")
    def test_public_verify_throttles(self):
        for _ in range(2):
            self.assertEqual(self.client.get("/verify", {"id": SCENARIO_ID}).status_code, 200)
        self.assertEqual(self.client.get("/verify", {"id": SCENARIO_ID}).status_code, 429)


@override_settings(STORAGES=IN_MEMORY_STORAGES)
class VerifyDocumentCommandTests(TestCase):
    def test_verify_by_id_with_blob_check(self):
        content = b"%PDF-1.7 stored copy"
        name = default_storage.save(f"issued_docs/user_1/{SCENARIO_ID}.pdf", ContentFile(content))
        make_document(SCENARIO_ID, content=content, document_url=default_storage.url(name)).save()

        out = StringIO()
        call_command("verify_document", "--id", SCENARIO_ID, "--check-blob", stdout=out)

        output = out.getvalue()
        self.assertIn("Verdict: valid", output)
        self.assertIn("Stored copy matches", output)
        self.assertEqual(VerificationLog.objects.count(), 1)

    def test_verify_by_file(self):
        content = b"%PDF-1.7 stored copy"
        make_document(SCENARIO_ID, content=content).save()
        path = self.write_temp_file(content)

        out = StringIO()
        call_command("verify_document", "--file", path, stdout=out)

        self.assertIn("Verdict: valid", out.getvalue())
        self.assertIn("matched by hash", out.getvalue())

    def test_unknown_identifier(self):
        out = StringIO()
        call_command("verify_document", "--id", "doc_1_missing000", stdout=out)
        self.assertIn("Verdict: not_found", out.getvalue())

    def write_temp_file(self, content):
        handle = tempfile.NamedTemporaryFile(suffix=".pdf", delete=False)
        handle.write(content)
        handle.close()
        self.addCleanup(os.unlink, handle.name)
        return handle.name

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from documents.models import VerificationLog
from documents.services import get_verification_resolver


class Command(BaseCommand):
    help = (
        "Verify a document by identifier (or verification URL) or by a local PDF file. "
        "Each run is recorded in the verification log like any other attempt."
    )

    def add_arguments(self, parser):
        source = parser.add_mutually_exclusive_group(required=True)
        source.add_argument(
            "--id",
            dest="identifier",
            help="Document identifier or full verification URL.",
        )
        source.add_argument(
            "--file",
            dest="path",
            help="Path to a PDF copy to verify (embedded identifier, then content hash).",
        )
        parser.add_argument(
            "--check-blob",
            action="store_true",
            help="Also re-hash the stored copy of a resolved document.",
        )

    def handle(self, *args, **options):
        resolver = get_verification_resolver()

        if options.get("path"):
            path = Path(options["path"])
            if not path.is_file():
                raise CommandError(f"File not found: {path}")
            resolution = resolver.resolve(
                content=path.read_bytes(),
                method=VerificationLog.METHOD_UPLOAD,
                user_agent="manage.py verify_document",
            )
        else:
            resolution = resolver.resolve(
                options["identifier"],
                method=VerificationLog.METHOD_IDENTIFIER,
                user_agent="manage.py verify_document",
            )

        self.stdout.write(f"Verdict: {resolution.verdict}")
        self.stdout.write(resolution.message)

        document = resolution.document
        if document is None:
            return

        self.stdout.write(f"- id: {document.id} (matched by {resolution.matched_by})")
        self.stdout.write(f"- title: {document.title}")
        self.stdout.write(f"- issuer: {document.issuer_name}")
        self.stdout.write(f"- issued_at: {document.issued_at.isoformat()}")
        if document.revoked_at:
            self.stdout.write(f"- revoked_at: {document.revoked_at.isoformat()} by {document.revoked_by}")

        if options.get("check_blob"):
            check = resolver.check_stored_copy(document)
            if check["valid"]:
                self.stdout.write(self.style.SUCCESS("Stored copy matches the recorded hash."))
            else:
                self.stdout.write(self.style.ERROR(
                    f"Stored copy does not match: recorded {check['stored_hash']}, "
                    f"current {check['current_hash'] or 'unreadable'}"
                ))

"""Builders shared by the documents test modules."""

from datetime import datetime, timezone as dt_timezone
from io import BytesIO

from reportlab.lib.pagesizes import A4, letter
from reportlab.pdfgen import canvas

from .models import Document, Issuer
from .services.hashing import HashingService

SCENARIO_ID = 'doc_1700000000000_abc123xyz'
ORIGIN = 'https://verify.example.org'


def make_pdf(text='Certificate of Completion', pages=1, pagesize=letter):
    """Small, deterministic PDF with one line of text per page."""
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=pagesize, invariant=1)
    for page_number in range(1, pages + 1):
        pdf.setFont('Helvetica', 14)
        pdf.drawString(72, pagesize[1] - 72, f"{text} (page {page_number})")
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def make_a4_pdf(text='Medical Report'):
    return make_pdf(text, pagesize=A4)


def make_issuer(status=Issuer.STATUS_VERIFIED, **overrides):
    fields = {
        'id': 'issuer_1',
        'user_id': 'user_1',
        'organization_name': 'Springfield University',
        'type': 'education',
        'status': status,
    }
    fields.update(overrides)
    return Issuer(**fields)


def make_document(document_id=SCENARIO_ID, content=b'issued content', **overrides):
    """Unsaved active Document whose hash is the digest of `content`."""
    fields = {
        'id': document_id,
        'issuer_id': 'issuer_1',
        'issuer_name': 'Springfield University',
        'title': 'Bachelor of Science',
        'recipient_name': 'Ada Lovelace',
        'recipient_email': 'ada@example.org',
        'hash': HashingService.digest(content),
        'status': Document.STATUS_ACTIVE,
        'issued_at': datetime(2023, 11, 14, 22, 13, 20, tzinfo=dt_timezone.utc),
        'verification_url': f"{ORIGIN}/verify?id={document_id}",
        'document_url': f"/media/issued_docs/user_1/{document_id}.pdf",
    }
    fields.update(overrides)
    return Document(**fields)


class FixedIdentifierGenerator:
    """Hands out a fixed sequence of identifiers."""

    def __init__(self, *identifiers):
        self._identifiers = list(identifiers)
        self.calls = 0

    def generate(self):
        self.calls += 1
        return self._identifiers.pop(0)

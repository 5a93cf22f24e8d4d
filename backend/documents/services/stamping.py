"""
Embed a verification QR code and link into a PDF's last page.

The overlay is drawn with ReportLab in invariant mode and merged with PyPDF2.
Overlay resource names are prefixed before merging so PyPDF2 never has to
rename a clashing font or image, which keeps the same input bytes and URL
producing the same output bytes.
"""

import logging
from io import BytesIO

from django.conf import settings
from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.generic import ArrayObject, ContentStream, DictionaryObject, NameObject
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .exceptions import MalformedDocument
from .qr_codec import get_qr_codec

logger = logging.getLogger(__name__)

PDF_HEADER = b'%PDF-'
# PDF allows leading junk before the header within the first KiB
HEADER_SEARCH_WINDOW = 1024

OVERLAY_RESOURCE_PREFIX = 'DocVerify'
# Resource categories PyPDF2's merge_page renames on collision
MERGED_RESOURCE_CATEGORIES = (
    '/ExtGState', '/Font', '/XObject', '/ColorSpace',
    '/Pattern', '/Shading', '/Properties',
)


def resource_names(page):
    """All named resources of a page, across the merged categories."""
    resources = page.get('/Resources')
    if resources is None:
        return set()
    resources = resources.get_object()
    names = set()
    for category in MERGED_RESOURCE_CATEGORIES:
        if category in resources:
            names.update(resources[category].get_object().keys())
    return names


def free_prefix(taken_names, base=OVERLAY_RESOURCE_PREFIX):
    """
    First of DocVerify, DocVerify1, DocVerify2, ... that no taken name starts
    with. Re-stamping an already stamped PDF therefore still avoids clashes.
    """
    counter = 0
    while True:
        prefix = f"/{base}{counter or ''}"
        if not any(name.startswith(prefix) for name in taken_names):
            return prefix
        counter += 1


def namespace_resources(page, pdf, prefix):
    """
    Rename every merged-category resource of `page` to `prefix` + old name,
    rewriting the content stream operands that refer to them.
    """
    resources = page['/Resources'].get_object()
    renames = {}
    for category in MERGED_RESOURCE_CATEGORIES:
        if category not in resources:
            continue
        renamed = DictionaryObject()
        for name, value in resources[category].get_object().items():
            new_name = NameObject(prefix + name[1:])
            renames[name] = new_name
            renamed[new_name] = value
        resources[NameObject(category)] = renamed

    content = ContentStream(page.get_contents(), pdf)
    for operands, _operator in content.operations:
        if isinstance(operands, list):
            for index, operand in enumerate(operands):
                if isinstance(operand, NameObject) and operand in renames:
                    operands[index] = renames[operand]
    page[NameObject('/Contents')] = content
    return page


class StampLayout:
    """Fixed stamp geometry, in PDF points from the page's bottom-left corner."""

    DEFAULTS = {
        'QR_SIZE': 80,
        'MARGIN': 20,
        'QR_OFFSET_Y': 40,
        'LABEL': 'Verify at:',
        'LABEL_FONT_SIZE': 8,
        'URL_FONT_SIZE': 6,
    }

    LABEL_GAP = 15
    URL_GAP = 25

    def __init__(self, **overrides):
        configured = {**self.DEFAULTS, **(getattr(settings, 'VERIFICATION_STAMP', {}) or {}), **overrides}
        self.qr_size = float(configured['QR_SIZE'])
        self.margin = float(configured['MARGIN'])
        self.qr_offset_y = float(configured['QR_OFFSET_Y'])
        self.label = str(configured['LABEL'])
        self.label_font_size = float(configured['LABEL_FONT_SIZE'])
        self.url_font_size = float(configured['URL_FONT_SIZE'])

    def qr_anchor(self, page_left: float, page_bottom: float) -> tuple:
        """
        Bottom-left corner of the QR image.

        Returns:
            (x, y) tuple in points
        """
        return (page_left + self.margin, page_bottom + self.margin + self.qr_offset_y)


class StampOverlayRenderer:
    """Render the QR image and verification text onto a ReportLab canvas."""

    def __init__(self, layout=None, codec=None):
        self.layout = layout or StampLayout()
        self.codec = codec or get_qr_codec()

    def render(self, canvas_obj, verification_url: str, page_left: float, page_bottom: float) -> None:
        qr_x, qr_y = self.layout.qr_anchor(page_left, page_bottom)
        size = self.layout.qr_size

        qr_image = self.codec.encode(verification_url)
        canvas_obj.drawImage(ImageReader(qr_image), qr_x, qr_y, width=size, height=size)

        canvas_obj.setFont('Helvetica', self.layout.label_font_size)
        canvas_obj.setFillColor(HexColor('#000000'))
        canvas_obj.drawString(qr_x, qr_y - self.layout.LABEL_GAP, self.layout.label)

        canvas_obj.setFont('Helvetica', self.layout.url_font_size)
        canvas_obj.setFillColor(HexColor('#0000FF'))
        canvas_obj.drawString(qr_x, qr_y - self.layout.URL_GAP, verification_url)


class DocumentStamper:
    """Service producing stamped PDF bytes for issuance."""

    def __init__(self, renderer=None):
        self.renderer = renderer or StampOverlayRenderer()

    def _load(self, pdf_bytes):
        if not pdf_bytes or PDF_HEADER not in bytes(pdf_bytes[:HEADER_SEARCH_WINDOW]):
            raise MalformedDocument("The uploaded file is not a PDF document")

        try:
            reader = PdfReader(BytesIO(pdf_bytes))
            if reader.is_encrypted:
                raise MalformedDocument("Encrypted PDF documents cannot be stamped")
            page_count = len(reader.pages)
        except MalformedDocument:
            raise
        except Exception as e:
            raise MalformedDocument(f"The uploaded PDF could not be parsed: {e}") from e

        if page_count == 0:
            raise MalformedDocument("The uploaded PDF has no pages")
        return reader

    def _create_overlay_page(self, verification_url, page):
        """Create a single overlay page matching `page`'s media box."""
        box = page.mediabox
        left, bottom = float(box.left), float(box.bottom)
        right, top = float(box.right), float(box.top)

        overlay_buffer = BytesIO()
        overlay_canvas = canvas.Canvas(
            overlay_buffer,
            pagesize=(right, top),
            invariant=1,
        )
        self.renderer.render(overlay_canvas, verification_url, left, bottom)
        overlay_canvas.save()
        overlay_buffer.seek(0)

        overlay_reader = PdfReader(overlay_buffer)
        prefix = free_prefix(resource_names(page))
        return namespace_resources(overlay_reader.pages[0], overlay_reader, prefix)

    def stamp(self, pdf_bytes: bytes, verification_url: str) -> bytes:
        """
        Draw the QR code and verification link on the last page.

        Args:
            pdf_bytes: bytes, original uploaded PDF
            verification_url: str, URL to encode and print

        Returns:
            bytes: serialized stamped PDF

        Raises:
            MalformedDocument: input is not a parseable, unencrypted PDF
        """
        reader = self._load(pdf_bytes)
        writer = PdfWriter()
        last_index = len(reader.pages) - 1

        try:
            for page_num, original_page in enumerate(reader.pages):
                if page_num == last_index:
                    overlay_page = self._create_overlay_page(verification_url, original_page)
                    original_page.merge_page(overlay_page)
                    resources = original_page['/Resources'].get_object()
                    # merge_page unions /ProcSet through a set
                    if '/ProcSet' in resources:
                        resources[NameObject('/ProcSet')] = ArrayObject(
                            sorted(resources['/ProcSet'].get_object())
                        )
                writer.add_page(original_page)

            output_buffer = BytesIO()
            writer.write(output_buffer)
        except Exception as e:
            raise MalformedDocument(f"The uploaded PDF could not be stamped: {e}") from e

        stamped = output_buffer.getvalue()
        logger.info(f"Stamped PDF ({len(pdf_bytes)} -> {len(stamped)} bytes) with {verification_url}")
        return stamped


# Singleton instance
_document_stamper = None


def get_document_stamper() -> DocumentStamper:
    """Get singleton instance of document stamper."""
    global _document_stamper
    if _document_stamper is None:
        _document_stamper = DocumentStamper()
    return _document_stamper

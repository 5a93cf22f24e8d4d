"""
QR code rendering and scanned-payload decoding.

Rendering uses `qrcode` with the Pillow image factory. Camera decoding
happens outside this service; what arrives here is the text of each decoded
frame, which is reduced to a document identifier or treated as noise.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import AsyncIterator, Optional, Protocol

import qrcode
from qrcode.image.pil import PilImage
from django.conf import settings
from PIL import Image

from .identifiers import identifier_from_url, is_valid_format

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QROptions:
    """Raster options: total pixel width, quiet-zone modules and colors."""
    width: int = 100
    margin: int = 1
    dark: str = '#000000'
    light: str = '#FFFFFF'

    @classmethod
    def from_settings(cls) -> "QROptions":
        configured = getattr(settings, 'VERIFICATION_QR', {}) or {}
        return cls(
            width=int(configured.get('WIDTH', cls.width)),
            margin=int(configured.get('MARGIN', cls.margin)),
            dark=configured.get('DARK', cls.dark),
            light=configured.get('LIGHT', cls.light),
        )


class ScanSource(Protocol):
    """
    A camera-backed stream of decoded QR texts.

    Entering the context starts the camera and returns an async iterator of
    decoded strings; exiting stops the stream and releases the device.
    """

    async def __aenter__(self) -> AsyncIterator[str]: ...

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]: ...


class QRCodec:
    """Encode verification URLs as QR rasters and decode scanned payloads."""

    def __init__(self, options: Optional[QROptions] = None):
        self.options = options or QROptions.from_settings()

    def encode(self, url: str, options: Optional[QROptions] = None) -> Image.Image:
        """
        Render `url` as a QR code image.

        The symbol is drawn at the largest integer module size that fits in
        `options.width` pixels, then scaled to exactly width x width.
        """
        options = options or self.options

        qr = qrcode.QRCode(
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            border=options.margin,
        )
        qr.add_data(url)
        qr.make(fit=True)

        total_modules = qr.modules_count + 2 * options.margin
        qr.box_size = max(1, options.width // total_modules)

        rendered = qr.make_image(
            image_factory=PilImage,
            fill_color=options.dark,
            back_color=options.light,
        ).get_image()

        image = rendered.convert('RGB')
        if image.size != (options.width, options.width):
            image = image.resize((options.width, options.width), Image.Resampling.NEAREST)
        return image

    def encode_png(self, url: str, options: Optional[QROptions] = None) -> bytes:
        buffer = BytesIO()
        self.encode(url, options).save(buffer, format='PNG')
        return buffer.getvalue()

    def encode_data_uri(self, url: str, options: Optional[QROptions] = None) -> str:
        """PNG data URI, stored on the document for display and download."""
        b64 = base64.b64encode(self.encode_png(url, options)).decode('ascii')
        return f"data:image/png;base64,{b64}"

    @staticmethod
    def extract_token(decoded_text) -> Optional[str]:
        """
        Reduce one decoded QR payload to a candidate identifier.

        Tries, in order:
        1. a URL containing `/verify?id=`, taking its `id` parameter
        2. a bare identifier

        Returns None for anything else. Some scanner apps append newlines,
        so surrounding whitespace is ignored.
        """
        if not isinstance(decoded_text, str):
            return None
        text = decoded_text.strip()
        if not text:
            return None

        token = identifier_from_url(text)
        if token:
            return token
        if is_valid_format(text):
            return text
        return None


async def scan_for_identifier(source: ScanSource, codec: Optional[QRCodec] = None) -> Optional[str]:
    """
    Consume decoded frames until one yields an identifier.

    Noise frames are skipped and scanning continues. Returns the accepted
    identifier, or None if the source ends first. Cancelling the awaiting
    task stops the scan; the source is released on every exit path.
    """
    extract = (codec or QRCodec).extract_token
    async with source as frames:
        async for decoded in frames:
            token = extract(decoded)
            if token:
                logger.info(f"QR scan accepted identifier {token}")
                return token
            logger.debug("QR scan ignored a frame without a verification identifier")
    return None


# Singleton instance
_qr_codec = None


def get_qr_codec() -> QRCodec:
    """Get singleton instance of the QR codec."""
    global _qr_codec
    if _qr_codec is None:
        _qr_codec = QRCodec()
    return _qr_codec

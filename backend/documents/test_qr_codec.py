import asyncio
import base64

from django.test import SimpleTestCase

from .services.qr_codec import QRCodec, QROptions, scan_for_identifier
from .testutils import ORIGIN, SCENARIO_ID

VERIFY_URL = f"{ORIGIN}/verify?id={SCENARIO_ID}"


class FakeScanSource:
    """Camera stand-in: yields decoded texts and records its lifecycle."""

    def __init__(self, frames=(), endless=False, fail_after=None):
        self.frames = list(frames)
        self.endless = endless
        self.fail_after = fail_after
        self.started = False
        self.released = False
        self.consumed = 0

    async def __aenter__(self):
        self.started = True
        return self._stream()

    async def __aexit__(self, exc_type, exc, tb):
        self.released = True
        return False

    async def _stream(self):
        for frame in self.frames:
            if self.fail_after is not None and self.consumed >= self.fail_after:
                raise RuntimeError('camera disconnected')
            await asyncio.sleep(0)
            self.consumed += 1
            yield frame
        while self.endless:
            await asyncio.sleep(0.001)
            self.consumed += 1
            yield 'not a verification code'


class QRCodecEncodeTests(SimpleTestCase):
    def test_default_image_is_square_at_configured_width(self):
        image = QRCodec(QROptions()).encode(VERIFY_URL)
        self.assertEqual(image.size, (100, 100))
        self.assertEqual(image.mode, 'RGB')

    def test_colors_and_size_are_configurable(self):
        options = QROptions(width=160, margin=2, dark='#112233', light='#FFFFFF')
        image = QRCodec().encode(VERIFY_URL, options)
        self.assertEqual(image.size, (160, 160))
        colors = {color for _, color in image.getcolors(maxcolors=16)}
        self.assertIn((0x11, 0x22, 0x33), colors)
        self.assertIn((255, 255, 255), colors)

    def test_quiet_zone_uses_light_color(self):
        image = QRCodec(QROptions()).encode(VERIFY_URL)
        self.assertEqual(image.getpixel((0, 0)), (255, 255, 255))

    def test_data_uri(self):
        data_uri = QRCodec(QROptions()).encode_data_uri(VERIFY_URL)
        self.assertTrue(data_uri.startswith('data:image/png;base64,'))
        png = base64.b64decode(data_uri.split(',', 1)[1])
        self.assertEqual(png[:8], b'\x89PNG\r\n\x1a\n')


class ExtractTokenTests(SimpleTestCase):
    def test_verification_url(self):
        self.assertEqual(QRCodec.extract_token(VERIFY_URL), SCENARIO_ID)

    def test_bare_identifier(self):
        self.assertEqual(QRCodec.extract_token(SCENARIO_ID), SCENARIO_ID)

    def test_trailing_newline_from_scanner_apps(self):
        self.assertEqual(QRCodec.extract_token(f"{VERIFY_URL}\n"), SCENARIO_ID)

    def test_noise(self):
        self.assertIsNone(QRCodec.extract_token('https://example.org/menu'))
        self.assertIsNone(QRCodec.extract_token(f"{ORIGIN}/verify?id=DOC_1"))
        self.assertIsNone(QRCodec.extract_token(''))
        self.assertIsNone(QRCodec.extract_token(None))


class ScanForIdentifierTests(SimpleTestCase):
    async def test_noise_frames_are_skipped(self):
        source = FakeScanSource(['WIFI:S:cafe;;', 'https://example.org', VERIFY_URL, SCENARIO_ID])
        token = await scan_for_identifier(source)
        self.assertEqual(token, SCENARIO_ID)
        self.assertEqual(source.consumed, 3)
        self.assertTrue(source.released)

    async def test_exhausted_source_returns_none(self):
        source = FakeScanSource(['noise', 'more noise'])
        self.assertIsNone(await scan_for_identifier(source))
        self.assertTrue(source.released)

    async def test_cancellation_releases_camera(self):
        source = FakeScanSource(endless=True)
        task = asyncio.create_task(scan_for_identifier(source))
        await asyncio.sleep(0.02)
        self.assertTrue(source.started)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertTrue(source.released)

    async def test_stream_error_propagates_and_releases_camera(self):
        source = FakeScanSource(['noise', 'noise', VERIFY_URL], fail_after=2)
        with self.assertRaises(RuntimeError):
            await scan_for_identifier(source)
        self.assertTrue(source.released)

import hashlib
from io import BytesIO

from django.test import SimpleTestCase

from .services.hashing import HashingService
from .services.identifiers import (
    IdentifierGenerator, derive_verification_url, extract_identifier,
    identifier_from_url, is_valid_format
)
from .testutils import ORIGIN, SCENARIO_ID


class IdentifierGeneratorTests(SimpleTestCase):
    def test_generated_identifiers_are_well_formed(self):
        generator = IdentifierGenerator()
        for _ in range(200):
            self.assertTrue(is_valid_format(generator.generate()))

    def test_identifier_embeds_clock_millis_and_nine_char_suffix(self):
        generator = IdentifierGenerator(clock=lambda: 1700000000.0)
        prefix, millis, suffix = generator.generate().split('_')
        self.assertEqual(prefix, 'doc')
        self.assertEqual(millis, '1700000000000')
        self.assertEqual(len(suffix), 9)

    def test_millis_never_go_backwards(self):
        ticks = iter([1700000000.5, 1699999999.0, 1700000001.0])
        generator = IdentifierGenerator(clock=lambda: next(ticks))
        millis = [int(generator.generate().split('_')[1]) for _ in range(3)]
        self.assertEqual(millis, [1700000000500, 1700000000500, 1700000001000])

    def test_identifiers_are_unique(self):
        generator = IdentifierGenerator(clock=lambda: 1700000000.0)
        generated = {generator.generate() for _ in range(500)}
        self.assertEqual(len(generated), 500)

    def test_short_suffix_is_rejected(self):
        with self.assertRaises(ValueError):
            IdentifierGenerator(suffix_length=6)


class VerificationUrlTests(SimpleTestCase):
    def test_derive_verification_url(self):
        self.assertEqual(
            derive_verification_url(SCENARIO_ID, ORIGIN),
            f"{ORIGIN}/verify?id={SCENARIO_ID}"
        )

    def test_trailing_slash_on_origin_is_dropped(self):
        self.assertEqual(
            IdentifierGenerator.derive_verification_url(SCENARIO_ID, 'http://localhost:8000/'),
            f"http://localhost:8000/verify?id={SCENARIO_ID}"
        )

    def test_is_valid_format(self):
        self.assertTrue(is_valid_format(SCENARIO_ID))
        self.assertFalse(is_valid_format('doc_1700000000000_ABC123XYZ'))
        self.assertFalse(is_valid_format('doc_abc_123'))
        self.assertFalse(is_valid_format(f" {SCENARIO_ID}"))
        self.assertFalse(is_valid_format(''))
        self.assertFalse(is_valid_format(None))

    def test_identifier_from_url(self):
        self.assertEqual(identifier_from_url(f"{ORIGIN}/verify?id={SCENARIO_ID}"), SCENARIO_ID)
        self.assertEqual(identifier_from_url(f"{ORIGIN}/verify?id={SCENARIO_ID}&src=qr"), SCENARIO_ID)
        self.assertIsNone(identifier_from_url(f"{ORIGIN}/verify?id=not-an-id"))
        self.assertIsNone(identifier_from_url(f"{ORIGIN}/other?id={SCENARIO_ID}"))

    def test_extract_identifier_prefers_verification_url(self):
        text = f"stray doc_1600000000000_zzzzzzzzz then {ORIGIN}/verify?id={SCENARIO_ID}"
        self.assertEqual(extract_identifier(text), SCENARIO_ID)

    def test_extract_identifier_falls_back_to_bare_identifier(self):
        self.assertEqual(extract_identifier(f"(ID: {SCENARIO_ID}) Tj"), SCENARIO_ID)
        self.assertIsNone(extract_identifier('nothing to see here'))


class HashingServiceTests(SimpleTestCase):
    def test_digest_is_lowercase_sha256_hex(self):
        self.assertEqual(
            HashingService.digest(b'abc'),
            'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'
        )

    def test_digest_does_not_normalize(self):
        self.assertNotEqual(HashingService.digest(b'abc'), HashingService.digest(b'abc\n'))

    def test_compute_file_sha256_restores_position(self):
        data = b'x' * 10000
        file_obj = BytesIO(data)
        file_obj.seek(123)
        self.assertEqual(HashingService.compute_file_sha256(file_obj), hashlib.sha256(data).hexdigest())
        self.assertEqual(file_obj.tell(), 123)

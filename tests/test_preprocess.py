"""Tests for the passthrough / raw-pixel decision and POT resizing."""

import unittest

import numpy as np

from conftest import make_pixels

from KTXForge.config import CompressionOptions
from KTXForge.core import ImageAsset, decode_image, encode_png
from KTXForge.errors import UnsupportedInputFormat
from KTXForge.phases.policy import get_policy
from KTXForge.phases.preprocess import (
    is_power_of_two,
    prepare_input,
    previous_power_of_two,
    raw_pixels_reason,
)


def _asset(width, height, extension=".png", changed=False, decodable=True,
           file_path="/assets/tex.png"):
    pixels = make_pixels(width, height) if decodable else None
    return ImageAsset(
        image_id="tex", extension=extension, changed=changed,
        file_path=file_path, source=None if file_path else b"orig", pixels=pixels,
    )


def _prepare(image, fmt):
    options = CompressionOptions(format=fmt)
    return prepare_input(image, options, get_policy(fmt))


class TestPowerOfTwo(unittest.TestCase):
    def test_is_power_of_two(self):
        for n in (1, 2, 4, 64, 4096):
            self.assertTrue(is_power_of_two(n))
        for n in (0, 3, 6, 100, 4095):
            self.assertFalse(is_power_of_two(n))

    def test_previous_power_of_two(self):
        cases = {1: 1, 2: 2, 3: 2, 5: 4, 100: 64, 129: 128, 1023: 512, 1024: 1024,
                 70000: 65536}
        for n, expected in cases.items():
            with self.subTest(n=n):
                self.assertEqual(previous_power_of_two(n), expected)


class TestRawPixelsReason(unittest.TestCase):
    def test_passthrough(self):
        self.assertIsNone(raw_pixels_reason(_asset(16, 16), get_policy("etc1")))

    def test_non_pot_for_pot_format(self):
        reason = raw_pixels_reason(_asset(100, 64), get_policy("astc"))
        self.assertIn("100x64", reason)

    def test_non_pot_ok_for_pvrtc(self):
        self.assertIsNone(raw_pixels_reason(_asset(100, 64), get_policy("pvrtc1")))

    def test_changed(self):
        reason = raw_pixels_reason(_asset(16, 16, changed=True), get_policy("dxt5"))
        self.assertIn("changed", reason)

    def test_extension_not_accepted(self):
        image = _asset(16, 16, extension=".jpg", file_path="/assets/tex.jpg")
        self.assertIn(".jpg", raw_pixels_reason(image, get_policy("etc2")))
        self.assertIsNone(raw_pixels_reason(image, get_policy("dxt1")))

    def test_pot_check_takes_precedence(self):
        image = _asset(100, 64, extension=".jpg", changed=True, file_path="/a.jpg")
        self.assertIn("power of two", raw_pixels_reason(image, get_policy("etc1")))

    def test_undecodable_for_pot_format(self):
        image = _asset(0, 0, extension=".gif", decodable=False, file_path="/a.gif")
        self.assertIsNotNone(raw_pixels_reason(image, get_policy("astc")))


class TestPrepareInput(unittest.TestCase):
    def test_forwards_original_file(self):
        prepared = _prepare(_asset(16, 16), "etc1")
        self.assertTrue(prepared.passthrough)
        self.assertEqual(prepared.file_path, "/assets/tex.png")
        self.assertIsNone(prepared.data)

    def test_forwards_embedded_source(self):
        prepared = _prepare(_asset(16, 16, file_path=None), "astc")
        self.assertTrue(prepared.passthrough)
        self.assertEqual(prepared.data, b"orig")
        self.assertEqual(prepared.extension, ".png")

    def test_undecodable_gif_for_astc_raises(self):
        image = _asset(0, 0, extension=".gif", decodable=False, file_path="/a.gif")
        # astc needs POT dimensions, which an undecodable gif cannot prove
        with self.assertRaises(UnsupportedInputFormat):
            _prepare(image, "astc")

    def test_resizes_to_previous_power_of_two(self):
        image = _asset(100, 70)
        before = image.pixels.copy()
        prepared = _prepare(image, "etc2")
        self.assertFalse(prepared.passthrough)
        self.assertEqual(prepared.extension, ".png")
        decoded = decode_image(".png", prepared.data)
        self.assertEqual(decoded.shape[:2], (64, 64))
        np.testing.assert_array_equal(image.pixels, before)
        self.assertEqual(image.dimensions, (100, 70))

    def test_211_square_resized_to_128(self):
        prepared = _prepare(_asset(211, 211), "etc1")
        self.assertEqual(decode_image(".png", prepared.data).shape[:2], (128, 128))

    def test_reencodes_changed_image_without_resize(self):
        image = _asset(24, 10, changed=True)
        prepared = _prepare(image, "dxt5")
        self.assertEqual(prepared.data, encode_png(image.pixels))

    def test_reencodes_unaccepted_extension(self):
        image = _asset(16, 16, extension=".bmp", file_path="/a.bmp")
        prepared = _prepare(image, "etc1")
        self.assertFalse(prepared.passthrough)
        self.assertEqual(prepared.extension, ".png")

    def test_undecodable_raw_path_raises(self):
        image = _asset(0, 0, extension=".tga", decodable=False, changed=True,
                       file_path="/a.tga")
        with self.assertRaises(UnsupportedInputFormat) as ctx:
            _prepare(image, "dxt1")
        self.assertIn('"dxt1"', str(ctx.exception))


if __name__ == "__main__":
    unittest.main(verbosity=2)

"""
Unit tests for image encoding helpers.
"""

import base64
import unittest
from unittest.mock import patch

from PIL import Image

from clipfilter.core.image_processing import (
    base64_to_image,
    decode_base64,
    image_to_base64_png,
    to_data_url,
)


class TestImageProcessing(unittest.TestCase):
    def test_png_round_trip_keeps_size_and_pixels(self):
        source = Image.new("RGBA", (3, 2), (10, 20, 30, 255))
        image = base64_to_image(image_to_base64_png(source))
        self.assertEqual(image.size, (3, 2))
        self.assertEqual(image.format, "PNG")
        self.assertEqual(image.convert("RGBA").getpixel((0, 0)), (10, 20, 30, 255))

    def test_data_url(self):
        self.assertEqual(to_data_url("QUJD"), "data:image/png;base64,QUJD")
        self.assertEqual(to_data_url(""), "")

    def test_decode_is_lenient(self):
        self.assertEqual(decode_base64("QU\nJD\n"), b"ABC")
        self.assertEqual(decode_base64("QUI"), b"AB")
        self.assertEqual(decode_base64(base64.urlsafe_b64encode(b"\xfb\xff").decode()), b"\xfb\xff")
        self.assertEqual(decode_base64(""), b"")

    def test_decode_rejects_garbage(self):
        with self.assertRaises(ValueError):
            decode_base64("not*base64")

    def test_decompression_bomb_is_rejected(self):
        data = image_to_base64_png(Image.new("RGB", (5, 5)))
        with patch.object(Image, "MAX_IMAGE_PIXELS", 10):
            self.assertIsNone(base64_to_image(data))

    def test_non_image_data(self):
        self.assertIsNone(base64_to_image(base64.b64encode(b"plain text").decode()))
        self.assertIsNone(base64_to_image("%%%"))
        self.assertIsNone(base64_to_image(""))


if __name__ == "__main__":
    unittest.main()

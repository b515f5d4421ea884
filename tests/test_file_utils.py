import os
import sys
import unittest

# Ensure src is in path
sys.path.append(os.path.join(os.path.dirname(__file__), "../src"))

from file_utils import data_url_to_bytes, is_data_url, mime_to_ext, sanitize_filename


class TestFileUtils(unittest.TestCase):
    def test_sanitize_filename(self):
        self.assertEqual(sanitize_filename("my photo!.PNG"), "my_photo_.png")
        self.assertEqual(sanitize_filename("clean-name_1.jpg"), "clean-name_1.jpg")
        self.assertEqual(sanitize_filename("archive.tar.gz"), "archive.tar.gz")
        self.assertEqual(sanitize_filename("noext"), "noext")
        self.assertEqual(sanitize_filename(".png"), "image.png")
        self.assertEqual(sanitize_filename("   "), "")

    def test_mime_to_ext(self):
        self.assertEqual(mime_to_ext("image/png"), "png")
        self.assertEqual(mime_to_ext("image/jpeg"), "jpg")
        self.assertEqual(mime_to_ext("image/webp"), "webp")
        self.assertEqual(mime_to_ext("image/gif"), "gif")
        self.assertEqual(mime_to_ext("image/svg+xml"), "svg")
        self.assertEqual(mime_to_ext("application/pdf"), "bin")
        self.assertEqual(mime_to_ext(None), "bin")

    def test_data_url(self):
        self.assertTrue(is_data_url("DATA:image/png;base64,AAAA"))
        self.assertFalse(is_data_url("assets/a.png"))

        self.assertEqual(data_url_to_bytes("data:image/png;base64,aGVsbG8="), (b"hello", "image/png"))
        self.assertEqual(data_url_to_bytes("data:text/plain,hi%20there"), (b"hi there", "text/plain"))
        self.assertEqual(data_url_to_bytes("data:,x"), (b"x", "application/octet-stream"))

    def test_invalid_data_url(self):
        with self.assertRaises(ValueError):
            data_url_to_bytes("assets/a.png")
        with self.assertRaises(ValueError):
            data_url_to_bytes("data:image/png;base64")


if __name__ == "__main__":
    unittest.main()

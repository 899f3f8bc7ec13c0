"""
Unit tests for localized UI strings.
"""

import tempfile
import unittest
from pathlib import Path

from clipfilter.utils.localization import Localizer


class TestLocalizer(unittest.TestCase):
    def test_bundled_languages(self):
        localizer = Localizer()
        self.assertIn("en", localizer.languages())
        self.assertIn("ja", localizer.languages())
        self.assertNotEqual(localizer.get("filter_busy"), "filter_busy")
        self.assertNotEqual(localizer.get("filter_busy", "ja"), localizer.get("filter_busy", "en"))

    def test_missing_key_and_language_fall_back_to_key(self):
        localizer = Localizer(language="xx")
        self.assertEqual(localizer.get("filter_busy"), "filter_busy")
        self.assertEqual(Localizer().get("no_such_key"), "no_such_key")

    def test_custom_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "lang.ini"
            path.write_text("[en]\nGreeting = Hello %s\n", encoding="utf-8")
            localizer = Localizer(path)
            self.assertEqual(localizer.get("Greeting"), "Hello %s")
            self.assertEqual(localizer.get("greeting"), "greeting")

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            localizer = Localizer(Path(tmp) / "absent.ini")
            self.assertEqual(localizer.languages(), [])
            self.assertEqual(localizer.get("model"), "model")

    def test_malformed_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "lang.ini"
            path.write_text("no section header\n", encoding="utf-8")
            self.assertEqual(Localizer(path).get("model"), "model")


if __name__ == "__main__":
    unittest.main()

"""
Unit tests for provider catalog loading and lookups.
"""

import json
import tempfile
import unittest
from pathlib import Path

from clipfilter.core.catalog import ProviderCatalog, normalize_provider_id, parse_provider
from clipfilter.core.session import IOType

ALPHA = {
    "default-endpoint": "https://alpha.example.com/v1",
    "models": {"endpoint": "/models", "headers": {"Authorization": "Bearer <<api_key>>"}},
    "text-text": {
        "endpoint": "/chat",
        "headers": {"Content-Type": "application/json", "Authorization": "Bearer <<api_key>>"},
        "payload": {"model": "<<model>>", "prompt": "<<prompt>>"},
        "result": "choices[0].text",
    },
    "text-image": {
        "payload": {"prompt": "<<prompt>>"},
    },
}

ZETA = {
    "text-text": {"endpoint": "/z", "result": "out"},
    "image-text": {"endpoint": "/zi", "result": "out"},
}


class TestCatalogLoad(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        (self.dir / "Alpha.json").write_text(json.dumps(ALPHA), encoding="utf-8")
        (self.dir / "Zeta.json").write_text(json.dumps(ZETA), encoding="utf-8")
        (self.dir / "Broken.json").write_text("{ not json", encoding="utf-8")
        (self.dir / "Empty.json").write_text("", encoding="utf-8")
        (self.dir / "List.json").write_text("[]", encoding="utf-8")
        (self.dir / "BadModels.json").write_text(
            json.dumps({"models": {"endpoint": 5}, "text-text": {"payload": {}}}), encoding="utf-8"
        )
        (self.dir / "BadResult.json").write_text(
            json.dumps({"text-text": {"endpoint": "/c", "result": 3}}), encoding="utf-8"
        )
        (self.dir / "NoTemplates.json").write_text(
            json.dumps({"default-endpoint": "https://x", "models": {"endpoint": "/m"}}), encoding="utf-8"
        )
        (self.dir / "notes.txt").write_text("ignored", encoding="utf-8")
        self.catalog = ProviderCatalog.load(self.dir)

    def tearDown(self):
        self._tmp.cleanup()

    def test_bad_files_are_skipped(self):
        self.assertEqual(self.catalog.provider_ids(), ["Alpha", "Zeta"])

    def test_template_fields(self):
        alpha = self.catalog.find_provider("Alpha")
        self.assertEqual(alpha.default_endpoint, "https://alpha.example.com/v1")

        tt = self.catalog.find_template_by_io(alpha, IOType.TEXT, IOType.TEXT)
        self.assertEqual(tt.id, "text-text")
        self.assertEqual(tt.provider_id, "Alpha")
        self.assertEqual(tt.endpoint, "/chat")
        self.assertEqual(tt.result_path, "choices[0].text")
        self.assertEqual(tt.headers, (("Content-Type", "application/json"), ("Authorization", "Bearer <<api_key>>")))
        self.assertEqual(json.loads(tt.payload), {"model": "<<model>>", "prompt": "<<prompt>>"})

    def test_template_defaults(self):
        ti = self.catalog.find_template_by_id("text-image")
        self.assertEqual(ti.input, IOType.TEXT)
        self.assertEqual(ti.output, IOType.IMAGE)
        self.assertEqual(ti.endpoint, "/")
        self.assertEqual(ti.result_path, "")
        self.assertEqual(ti.headers, ())

    def test_models_descriptor_defaults(self):
        models = self.catalog.find_provider("Alpha").models
        self.assertEqual(models.endpoint, "/models")
        self.assertEqual(models.method, "GET")
        self.assertEqual(models.result_path, "data")
        self.assertIsNone(self.catalog.find_provider("Zeta").models)

    def test_find_template_any_uses_catalog_order(self):
        self.assertEqual(self.catalog.find_template_any(IOType.TEXT, IOType.TEXT).provider_id, "Alpha")
        self.assertEqual(self.catalog.find_template_any(IOType.IMAGE, IOType.TEXT).provider_id, "Zeta")
        self.assertIsNone(self.catalog.find_template_any(IOType.IMAGE, IOType.IMAGE))

    def test_lookups_are_case_sensitive(self):
        self.assertIsNone(self.catalog.find_provider("alpha"))

    def test_missing_directory_gives_empty_catalog(self):
        catalog = ProviderCatalog.load(self.dir / "nope")
        self.assertEqual(len(catalog), 0)
        self.assertIsNone(catalog.first_provider())
        self.assertIsNone(catalog.find_template_any(IOType.TEXT, IOType.TEXT))


class TestBundledDefinitions(unittest.TestCase):
    def test_bundled_providers(self):
        catalog = ProviderCatalog.load()
        self.assertEqual(catalog.provider_ids(), ["OpenAI", "OpenRouter"])
        for provider in catalog:
            with self.subTest(provider=provider.id):
                self.assertEqual(
                    sorted(t.id for t in provider.templates),
                    ["image-image", "image-text", "text-image", "text-text"],
                )
                self.assertIsNotNone(provider.models)

    def test_openai_image_edit_is_multipart(self):
        catalog = ProviderCatalog.load()
        template = catalog.find_template_by_io(catalog.find_provider("OpenAI"), IOType.IMAGE, IOType.IMAGE)
        self.assertIn(("Content-Type", "multipart/form-data"), template.headers)


class TestProviderIds(unittest.TestCase):
    def test_normalize(self):
        self.assertEqual(normalize_provider_id("OpenAI-v2"), "OpenAI")
        self.assertEqual(normalize_provider_id("OpenRouter"), "OpenRouter")
        self.assertEqual(normalize_provider_id(""), "")
        self.assertEqual(normalize_provider_id(None), "")

    def test_non_object_entries_are_ignored(self):
        provider = parse_provider("P", {"text-text": "oops", "image-text": {}})
        self.assertEqual(provider.default_endpoint, "")
        self.assertEqual([t.id for t in provider.templates], ["image-text"])

    def test_non_string_fields_are_rejected(self):
        cases = {
            "default-endpoint": {"default-endpoint": 5, "text-text": {}},
            "models endpoint": {"models": {"endpoint": 5}, "text-text": {}},
            "models method": {"models": {"endpoint": "/m", "method": ["GET"]}, "text-text": {}},
            "template endpoint": {"text-text": {"endpoint": {"path": "/c"}}},
            "template result": {"text-text": {"result": 3}},
        }
        for name, document in cases.items():
            with self.subTest(case=name):
                with self.assertRaises(ValueError):
                    parse_provider("P", document)


if __name__ == "__main__":
    unittest.main()

"""
Unit tests for the filter executor state machine and single-flight guard.
"""

import json
import threading
import unittest
from unittest.mock import patch

from PIL import Image

from clipfilter.core.catalog import ApiProvider, ProviderCatalog, TemplateDefinition
from clipfilter.core.errors import (
    AcquisitionError,
    ClipboardError,
    ConfigurationError,
    FailureKind,
    TransportError,
)
from clipfilter.core.executor import FilterExecutor, FilterState, build_system_prompt
from clipfilter.core.extraction import ApiCallResult
from clipfilter.core.image_processing import image_to_base64_png
from clipfilter.core.session import AppConfig, FilterDefinition, IOType, ModelConfig
from clipfilter.integrations.clipboard import MemoryClipboard
from clipfilter.integrations.http_transport import TransportResponse
from clipfilter.utils.background_worker import BackgroundWorker

CHAT_PAYLOAD = json.dumps({
    "model": "<<model>>",
    "messages": [
        {"role": "system", "content": "<<system_prompt>>"},
        {"role": "user", "content": "<<prompt>>"},
    ],
})
VISION_PAYLOAD = json.dumps({"model": "<<model>>", "prompt": "<<prompt>>", "image": "<<image_url>>"})


def chat_response(text):
    return json.dumps({"choices": [{"message": {"content": text}}]})


def image_response(size=(2, 2)):
    return json.dumps({"data": [{"b64_json": image_to_base64_png(Image.new("RGB", size, "blue"))}]})


def make_catalog():
    headers = (("Content-Type", "application/json"), ("Authorization", "Bearer <<api_key>>"))
    templates = (
        TemplateDefinition("text-text", "Test", IOType.TEXT, IOType.TEXT, "/chat",
                           "choices[0].message.content", headers, CHAT_PAYLOAD),
        TemplateDefinition("image-text", "Test", IOType.IMAGE, IOType.TEXT, "/chat",
                           "choices[0].message.content", headers, VISION_PAYLOAD),
        TemplateDefinition("text-image", "Test", IOType.TEXT, IOType.IMAGE, "/images",
                           "data[0].b64_json", headers, '{"prompt": "<<prompt>>"}'),
    )
    return ProviderCatalog([ApiProvider(id="Test", templates=templates)])


class FakeTransport:
    def __init__(self, text="", error="", status_code=200):
        self.response = TransportResponse(text=text, status_code=status_code, error=error)
        self.calls = []

    def send(self, endpoint, headers, body, method="POST"):
        self.calls.append((endpoint, headers, body, method))
        return self.response


class BlockingTransport(FakeTransport):
    """Holds the request open until released."""

    def __init__(self, text):
        super().__init__(text)
        self.entered = threading.Event()
        self.release = threading.Event()

    def send(self, endpoint, headers, body, method="POST"):
        self.entered.set()
        self.release.wait(5)
        return super().send(endpoint, headers, body, method)


class FailingSink(MemoryClipboard):
    def write_image(self, image):
        raise ClipboardError("clipboard busy")


class TestFilterExecutor(unittest.TestCase):
    def setUp(self):
        self.app_config = AppConfig(
            models=[
                ModelConfig("First", "https://api.example.com/v1", "model-a", "key-a", "Test"),
                ModelConfig("Second", "https://other.example.com/v1", "model-b", "key-b", "Test"),
            ],
            filters=[FilterDefinition("Translate", IOType.TEXT, IOType.TEXT, 0, "Translate into English.")],
        )
        self.catalog = make_catalog()
        self.translate = self.app_config.filters[0]

    def make_executor(self, clipboard, transport, sink=None, worker=None):
        return FilterExecutor(self.app_config, self.catalog, clipboard, sink or clipboard, transport, worker)

    def test_text_to_text(self):
        clipboard = MemoryClipboard(text="Bonjour")
        transport = FakeTransport(chat_response("Hello"))
        outcome = self.make_executor(clipboard, transport).run(self.translate)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.state, FilterState.SUCCESS)
        self.assertIsNone(outcome.kind)
        self.assertEqual(clipboard.text, "Hello")

        endpoint, headers, body, method = transport.calls[0]
        self.assertEqual(endpoint.url, "https://api.example.com/v1/chat")
        self.assertIn(("Authorization", "Bearer key-a"), headers)
        payload = json.loads(body)
        self.assertEqual(payload["model"], "model-a")
        self.assertEqual(payload["messages"][0]["content"], build_system_prompt(IOType.TEXT, IOType.TEXT))
        self.assertEqual(payload["messages"][1]["content"], "Translate into English.\n\nBonjour")

    def test_system_prompt(self):
        self.assertEqual(
            build_system_prompt(IOType.IMAGE, IOType.TEXT),
            "Follow the instructions strictly and convert the input image to the output text. "
            "No additional text or comments are allowed.",
        )

    def test_out_of_range_model_index_uses_first_model(self):
        self.translate.model_index = 7
        clipboard = MemoryClipboard(text="Bonjour")
        transport = FakeTransport(chat_response("Hello"))
        outcome = self.make_executor(clipboard, transport).run(self.translate)

        self.assertTrue(outcome.success)
        self.assertEqual(json.loads(transport.calls[0][2])["model"], "model-a")

    def test_selected_model_is_used(self):
        self.translate.model_index = 1
        transport = FakeTransport(chat_response("Hello"))
        self.make_executor(MemoryClipboard(text="x"), transport).run(self.translate)
        self.assertEqual(transport.calls[0][0].host, "other.example.com")

    def test_unknown_provider_falls_back_to_first(self):
        self.app_config.models[0].provider_id = "Gone"
        transport = FakeTransport(chat_response("Hello"))
        outcome = self.make_executor(MemoryClipboard(text="x"), transport).run(self.translate)
        self.assertTrue(outcome.success)

    def test_legacy_provider_id_is_normalized(self):
        self.app_config.models[0].provider_id = "Test-v2"
        transport = FakeTransport(chat_response("Hello"))
        self.assertTrue(self.make_executor(MemoryClipboard(text="x"), transport).run(self.translate).success)

    def test_no_matching_template(self):
        f = FilterDefinition("Sketch", IOType.IMAGE, IOType.IMAGE, 0, "Sketch it")
        transport = FakeTransport(image_response())
        outcome = self.make_executor(MemoryClipboard(image=Image.new("RGB", (1, 1))), transport).run(f)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.kind, FailureKind.CONFIGURATION)
        self.assertEqual(outcome.state, FilterState.RESOLVING_TEMPLATE)
        self.assertIn("no matching template", outcome.message)
        self.assertEqual(transport.calls, [])

    def test_no_models(self):
        self.app_config.models.clear()
        outcome = self.make_executor(MemoryClipboard(text="x"), FakeTransport()).run(self.translate)
        self.assertEqual(outcome.kind, FailureKind.CONFIGURATION)

    def test_empty_clipboard(self):
        transport = FakeTransport(chat_response("Hello"))
        outcome = self.make_executor(MemoryClipboard(), transport).run(self.translate)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.kind, FailureKind.ACQUISITION)
        self.assertEqual(outcome.state, FilterState.ACQUIRING_INPUT)
        self.assertEqual(transport.calls, [])

    def test_missing_image_input(self):
        f = FilterDefinition("Describe", IOType.IMAGE, IOType.TEXT, 0, "Describe")
        outcome = self.make_executor(MemoryClipboard(text="not an image"), FakeTransport()).run(f)
        self.assertEqual(outcome.kind, FailureKind.ACQUISITION)

    def test_image_to_text(self):
        f = FilterDefinition("Describe", IOType.IMAGE, IOType.TEXT, 0, "Describe")
        clipboard = MemoryClipboard(image=Image.new("RGB", (3, 3), "green"))
        transport = FakeTransport(chat_response("A green square"))
        outcome = self.make_executor(clipboard, transport).run(f)

        self.assertTrue(outcome.success)
        self.assertEqual(clipboard.text, "A green square")
        payload = json.loads(transport.calls[0][2])
        self.assertTrue(payload["image"].startswith("data:image/png;base64,"))
        self.assertEqual(payload["prompt"], "Describe\n\n")

    def test_text_to_image(self):
        f = FilterDefinition("Draw", IOType.TEXT, IOType.IMAGE, 0, "Draw")
        clipboard = MemoryClipboard(text="a fox")
        outcome = self.make_executor(clipboard, FakeTransport(image_response((4, 2)))).run(f)

        self.assertTrue(outcome.success)
        self.assertEqual(clipboard.image.size, (4, 2))

    def test_error_status_is_a_warning(self):
        transport = FakeTransport(chat_response("Hello"), error="HTTP status 400", status_code=400)
        clipboard = MemoryClipboard(text="x")
        outcome = self.make_executor(clipboard, transport).run(self.translate)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.warnings, ["HTTP status 400"])
        self.assertEqual(clipboard.text, "Hello")

    def test_error_body_without_content_fails_extraction(self):
        transport = FakeTransport('{"error": {"message": "invalid key"}}', error="HTTP status 401", status_code=401)
        outcome = self.make_executor(MemoryClipboard(text="x"), transport).run(self.translate)

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.kind, FailureKind.EXTRACTION)
        self.assertEqual(outcome.warnings, ["HTTP status 401"])

    def test_empty_body_skips_extraction(self):
        transport = FakeTransport("", error="ConnectionError: refused", status_code=None)
        with patch("clipfilter.core.executor.extract") as extract:
            outcome = self.make_executor(MemoryClipboard(text="x"), transport).run(self.translate)

        extract.assert_not_called()
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.kind, FailureKind.TRANSPORT)
        self.assertEqual(outcome.state, FilterState.REQUESTING)

    def test_failed_image_write_releases_image(self):
        f = FilterDefinition("Draw", IOType.TEXT, IOType.IMAGE, 0, "Draw")
        sink = FailingSink()
        with patch.object(ApiCallResult, "release", autospec=True) as release:
            outcome = self.make_executor(MemoryClipboard(text="a fox"), FakeTransport(image_response()), sink=sink).run(f)

        release.assert_called_once()
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.kind, FailureKind.OUTPUT)
        self.assertEqual(outcome.state, FilterState.WRITING_OUTPUT)

    def test_unexpected_collaborator_error_becomes_outcome(self):
        class ExplodingTransport(FakeTransport):
            def send(self, *args, **kwargs):
                raise RuntimeError("boom")

        outcome = self.make_executor(MemoryClipboard(text="x"), ExplodingTransport()).run(self.translate)
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.kind, FailureKind.TRANSPORT)
        self.assertIn("boom", outcome.message)

    def test_stages_raise_typed_errors(self):
        text_template = self.catalog.find_template_by_id("text-text")
        image_template = self.catalog.find_template_by_id("image-text")
        executor = self.make_executor(MemoryClipboard(), FakeTransport(""))

        with self.assertRaises(AcquisitionError):
            executor._acquire(text_template)
        with self.assertRaises(AcquisitionError):
            executor._acquire(image_template)
        with self.assertRaises(TransportError):
            executor._request(self.translate, self.app_config.models[0], text_template, "x", "", [])

        lonely = FilterDefinition("Lonely", IOType.IMAGE, IOType.IMAGE, 0, "")
        with self.assertRaises(ConfigurationError):
            executor._resolve(lonely)

    def test_collaborator_clipfilter_error_keeps_its_kind(self):
        class RefusingTransport(FakeTransport):
            def send(self, *args, **kwargs):
                raise TransportError("connection refused")

        outcome = self.make_executor(MemoryClipboard(text="x"), RefusingTransport()).run(self.translate)
        self.assertEqual(outcome.state, FilterState.REQUESTING)
        self.assertEqual(outcome.kind, FailureKind.TRANSPORT)
        self.assertEqual(outcome.message, "connection refused")

    def test_unusable_result_is_an_extraction_error(self):
        clipboard = MemoryClipboard(text="x")
        executor = self.make_executor(clipboard, FakeTransport(chat_response("Hello")))
        with patch("clipfilter.core.executor.extract", return_value=ApiCallResult(kind=IOType.TEXT)):
            outcome = executor.run(self.translate)
        self.assertEqual(outcome.state, FilterState.EXTRACTING_RESULT)
        self.assertEqual(outcome.kind, FailureKind.EXTRACTION)
        self.assertEqual(clipboard.text, "x")


class TestSingleFlight(unittest.TestCase):
    def setUp(self):
        self.app_config = AppConfig(
            models=[ModelConfig("First", "https://api.example.com/v1", "model-a", "key-a", "Test")],
            filters=[FilterDefinition("Translate", IOType.TEXT, IOType.TEXT, 0, "Translate")],
        )
        self.worker = BackgroundWorker(name="TestWorker")

    def tearDown(self):
        self.worker.shutdown()

    def test_second_invocation_is_rejected(self):
        transport = BlockingTransport(chat_response("Hello"))
        clipboard = MemoryClipboard(text="Bonjour")
        executor = FilterExecutor(self.app_config, make_catalog(), clipboard, clipboard, transport, self.worker)
        f = self.app_config.filters[0]

        done = threading.Event()
        outcomes = []

        def on_complete(outcome):
            outcomes.append(outcome)
            done.set()

        self.assertTrue(executor.submit(f, on_complete))
        self.assertTrue(transport.entered.wait(5))
        self.assertTrue(executor.busy)

        self.assertFalse(executor.submit(f, on_complete))
        rejected = executor.run(f)
        self.assertFalse(rejected.success)
        self.assertEqual(rejected.kind, FailureKind.BUSY)

        transport.release.set()
        self.assertTrue(done.wait(5))

        self.assertEqual(len(transport.calls), 1)
        self.assertEqual(len(outcomes), 1)
        self.assertTrue(outcomes[0].success)
        self.assertEqual(clipboard.text, "Hello")
        self.assertFalse(executor.busy)

    def test_next_run_allowed_after_completion(self):
        transport = FakeTransport(chat_response("Hello"))
        clipboard = MemoryClipboard(text="Bonjour")
        executor = FilterExecutor(self.app_config, make_catalog(), clipboard, clipboard, transport, self.worker)
        f = self.app_config.filters[0]

        self.assertTrue(executor.run(f).success)
        self.assertTrue(executor.run(f).success)
        self.assertEqual(len(transport.calls), 2)

    def test_submit_creates_worker_on_demand(self):
        transport = FakeTransport(chat_response("Hello"))
        clipboard = MemoryClipboard(text="Bonjour")
        executor = FilterExecutor(self.app_config, make_catalog(), clipboard, clipboard, transport)
        done = threading.Event()
        try:
            self.assertTrue(executor.submit(self.app_config.filters[0], lambda outcome: done.set()))
            self.assertTrue(done.wait(5))
        finally:
            executor.shutdown()
        self.assertEqual(clipboard.text, "Hello")


if __name__ == "__main__":
    unittest.main()

"""
Filter Execution
================

Runs one filter end to end:

    IDLE -> RESOLVING_TEMPLATE -> ACQUIRING_INPUT -> REQUESTING
         -> EXTRACTING_RESULT -> WRITING_OUTPUT -> SUCCESS | FAILED

Every failure, whether an expected one (empty clipboard, bad network) or an
exception raised by a collaborator, ends the run with a failed
``FilterOutcome``; nothing propagates to the caller.

Only one run may be in flight at a time. ``run()`` executes synchronously on
the calling thread; ``submit()`` hands the run to a BackgroundWorker and
returns immediately. Either way a second invocation made while a run is in
flight is rejected with ``FailureKind.BUSY`` before any network call.

Author: clipfilter Project
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from clipfilter.core import config
from clipfilter.core.catalog import ProviderCatalog, TemplateDefinition, normalize_provider_id
from clipfilter.core.errors import (
    AcquisitionError,
    ClipFilterError,
    ConfigurationError,
    ExtractionError,
    FailureKind,
    TransportError,
)
from clipfilter.core.extraction import extract
from clipfilter.core.image_processing import image_to_base64_png, to_data_url
from clipfilter.core.request_builder import build_request
from clipfilter.core.session import AppConfig, FilterDefinition, IOType, ModelConfig

logger = logging.getLogger(__name__)


class FilterState(Enum):
    IDLE = "idle"
    RESOLVING_TEMPLATE = "resolving_template"
    ACQUIRING_INPUT = "acquiring_input"
    REQUESTING = "requesting"
    EXTRACTING_RESULT = "extracting_result"
    WRITING_OUTPUT = "writing_output"
    SUCCESS = "success"
    FAILED = "failed"


# Failure kind for unexpected exceptions, by the stage they escaped from
_STAGE_FAILURE_KIND = {
    FilterState.RESOLVING_TEMPLATE: FailureKind.CONFIGURATION,
    FilterState.ACQUIRING_INPUT: FailureKind.ACQUISITION,
    FilterState.REQUESTING: FailureKind.TRANSPORT,
    FilterState.EXTRACTING_RESULT: FailureKind.EXTRACTION,
    FilterState.WRITING_OUTPUT: FailureKind.OUTPUT,
}


@dataclass
class FilterOutcome:
    """
    Result of one filter run.

    Attributes:
        success: True when the result was written to the clipboard
        state: SUCCESS, or the stage at which the run failed
        kind: Failure category (None on success)
        message: Diagnostic detail for the log
        warnings: Non-fatal problems, e.g. an HTTP error status
    """
    success: bool
    state: FilterState
    kind: Optional[FailureKind] = None
    message: str = ""
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def failed(cls, state: FilterState, kind: FailureKind, message: str,
               warnings: Optional[List[str]] = None) -> "FilterOutcome":
        return cls(False, state, kind, message, list(warnings or []))


def build_system_prompt(input_kind: IOType, output_kind: IOType) -> str:
    return config.SYSTEM_PROMPT_TEMPLATE.format(input=input_kind.value, output=output_kind.value)


class FilterExecutor:
    """
    Single-flight filter runner.

    Args:
        app_config: Shared model and filter lists; read, never mutated
        catalog: Loaded provider catalog
        source: ClipboardSource collaborator
        sink: ClipboardSink collaborator
        transport: HttpTransport collaborator
        worker: BackgroundWorker for ``submit()`` (created on first use)
    """

    def __init__(self, app_config: AppConfig, catalog: ProviderCatalog, source, sink,
                 transport, worker=None):
        self.app_config = app_config
        self.catalog = catalog
        self.source = source
        self.sink = sink
        self.transport = transport
        self._worker = worker
        self._owns_worker = False
        self._in_flight = threading.Lock()
        self.state = FilterState.IDLE

    @property
    def busy(self) -> bool:
        return self._in_flight.locked()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, f: FilterDefinition) -> FilterOutcome:
        """Run a filter on the calling thread."""
        if not self._in_flight.acquire(blocking=False):
            return self._reject(f)
        try:
            return self._execute(f)
        finally:
            self._in_flight.release()

    def submit(self, f: FilterDefinition,
               on_complete: Optional[Callable[[FilterOutcome], None]] = None) -> bool:
        """
        Run a filter on the background worker.

        Returns:
            False if another run is in flight (nothing is queued), else True.
            ``on_complete`` is called on the worker thread with the outcome.
        """
        if not self._in_flight.acquire(blocking=False):
            self._reject(f)
            return False
        try:
            self._get_worker().submit(self._run_on_worker, f, on_complete)
        except Exception:
            self._in_flight.release()
            raise
        return True

    def shutdown(self) -> None:
        if self._owns_worker and self._worker is not None:
            self._worker.shutdown()

    def _get_worker(self):
        if self._worker is None:
            from clipfilter.utils.background_worker import BackgroundWorker
            self._worker = BackgroundWorker(name="FilterWorker")
            self._owns_worker = True
        return self._worker

    def _run_on_worker(self, f: FilterDefinition, on_complete) -> None:
        try:
            outcome = self._execute(f)
        finally:
            self._in_flight.release()
        if on_complete is not None:
            on_complete(outcome)

    def _reject(self, f: FilterDefinition) -> FilterOutcome:
        logger.warning(f"Filter '{f.title}' rejected: another filter is still running")
        return FilterOutcome.failed(FilterState.IDLE, FailureKind.BUSY, "another filter is running")

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _enter(self, state: FilterState) -> None:
        self.state = state
        logger.debug(f"Filter state -> {state.name}")

    def _execute(self, f: FilterDefinition) -> FilterOutcome:
        logger.info(f"RunFilter: '{f.title}' input={f.input.value} output={f.output.value}")
        warnings: List[str] = []
        try:
            self._enter(FilterState.RESOLVING_TEMPLATE)
            model, template = self._resolve(f)

            self._enter(FilterState.ACQUIRING_INPUT)
            text_input, image_b64 = self._acquire(template)

            self._enter(FilterState.REQUESTING)
            raw = self._request(f, model, template, text_input, image_b64, warnings)

            self._enter(FilterState.EXTRACTING_RESULT)
            result = extract(raw, template)
            if not result.ok:
                what = "empty text" if template.output == IOType.TEXT else "no image"
                raise ExtractionError(f"template returned {what}")

            self._enter(FilterState.WRITING_OUTPUT)
            self._write(result)
        except ClipFilterError as e:
            return self._fail(f, e.kind, str(e), warnings)
        except Exception as e:
            logger.exception(f"Unexpected error in filter '{f.title}' during {self.state.name}")
            kind = _STAGE_FAILURE_KIND.get(self.state, FailureKind.CONFIGURATION)
            return self._fail(f, kind, f"{type(e).__name__}: {e}", warnings)

        self._enter(FilterState.SUCCESS)
        logger.info(f"Filter '{f.title}' succeeded")
        return FilterOutcome(True, FilterState.SUCCESS, warnings=warnings)

    def _fail(self, f: FilterDefinition, kind: FailureKind, message: str,
              warnings: List[str]) -> FilterOutcome:
        stage = self.state
        logger.error(f"Filter '{f.title}' failed at {stage.name} ({kind.value}): {message}")
        self._enter(FilterState.FAILED)
        return FilterOutcome.failed(stage, kind, message, warnings)

    def _resolve(self, f: FilterDefinition):
        model = self.app_config.model_for(f)
        if model is None:
            raise ConfigurationError("no models configured")

        provider_id = normalize_provider_id(model.provider_id)
        provider = self.catalog.find_provider(provider_id)
        if provider is None:
            provider = self.catalog.first_provider()
            if provider is not None:
                logger.warning(f"Provider '{model.provider_id}' not found; using '{provider.id}'")

        template = None
        if provider is not None:
            template = self.catalog.find_template_by_io(provider, f.input, f.output)
        if template is None:
            template = self.catalog.find_template_any(f.input, f.output)
        if template is None:
            raise ConfigurationError("no matching template")

        logger.debug(f"Using template '{template.provider_id}/{template.id}' with model '{model.model_name}'")
        return model, template

    def _acquire(self, template: TemplateDefinition):
        if template.input == IOType.TEXT:
            text = self.source.read_text()
            if not text:
                raise AcquisitionError("no text in clipboard")
            return text, ""

        image = self.source.read_image()
        if image is None:
            raise AcquisitionError("no image in clipboard")
        try:
            image_b64 = image_to_base64_png(image)
        except (OSError, ValueError) as e:
            raise AcquisitionError(f"base64 encode image failed: {e}") from e
        finally:
            image.close()
        if not image_b64:
            raise AcquisitionError("base64 encode image failed")
        return "", image_b64

    def _request(self, f: FilterDefinition, model: ModelConfig, template: TemplateDefinition,
                 text_input: str, image_b64: str, warnings: List[str]) -> str:
        system_prompt = build_system_prompt(f.input, f.output)
        prompt = f.prompt + config.PROMPT_SEPARATOR + text_input
        request = build_request(template, model, system_prompt, prompt,
                                image_b64=image_b64, image_data_url=to_data_url(image_b64))

        response = self.transport.send(request.endpoint, request.headers, request.body, request.method)
        if response.error:
            # Non-fatal: error bodies are still handed to the extractor.
            logger.warning(f"Transport reported '{response.error}' for template '{template.id}'")
            warnings.append(response.error)
        if not response.text:
            raise TransportError(response.error or "empty response")
        return response.text

    def _write(self, result) -> None:
        if result.kind == IOType.TEXT:
            self.sink.write_text(result.text)
            return
        try:
            self.sink.write_image(result.image)
        except Exception:
            result.release()
            raise

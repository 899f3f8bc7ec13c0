"""
Provider Catalog
================

Loads the API provider definitions that describe how to talk to each HTTP
JSON API. A definition source is a directory of JSON documents, one per
provider, named ``<ProviderId>.json``. Each top-level key is a template id of
the form ``<input>-<output>`` (e.g. ``text-image``), except for two reserved
keys:

- ``default-endpoint``: the provider's default server URL
- ``models``: descriptor for the model-listing call used by discovery

Example document::

    {
      "default-endpoint": "https://api.openai.com/v1",
      "models": {"endpoint": "/models", "method": "GET",
                 "headers": {"Authorization": "Bearer <<api_key>>"},
                 "result": "data"},
      "text-text": {"endpoint": "/chat/completions",
                    "headers": {"Content-Type": "application/json"},
                    "payload": {"model": "<<model>>", "...": "..."},
                    "result": "choices[0].message.content"}
    }

Loading fails softly: a file that cannot be read or parsed is logged and
skipped, and a provider without templates is discarded. The catalog is loaded
once and treated as read-only afterwards; reloading replaces it wholesale.

Author: clipfilter Project
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from clipfilter.core import config
from clipfilter.core.session import IOType

logger = logging.getLogger(__name__)

HeaderList = Tuple[Tuple[str, str], ...]


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class TemplateDefinition:
    """
    One (input kind, output kind) API call for a provider.

    Attributes:
        id: Template id, unique within the provider (e.g. 'image-text')
        provider_id: Owning provider id
        input: Input kind
        output: Output kind
        endpoint: Endpoint fragment or absolute URL (may contain placeholders)
        result_path: Dotted/indexed path to the result, may be empty
        headers: Ordered header key/value pairs (values may contain placeholders)
        payload: Raw payload text, usually JSON, containing placeholders
    """
    id: str
    provider_id: str
    input: IOType
    output: IOType
    endpoint: str = config.DEFAULT_TEMPLATE_ENDPOINT
    result_path: str = ""
    headers: HeaderList = ()
    payload: str = ""


@dataclass(frozen=True)
class ModelsDescriptor:
    """How to list a provider's models."""
    endpoint: str = ""
    method: str = config.DEFAULT_MODELS_METHOD
    headers: HeaderList = ()
    payload: str = ""
    result_path: str = config.DEFAULT_MODELS_RESULT_PATH


@dataclass(frozen=True)
class ApiProvider:
    """A named API vendor grouping one or more templates."""
    id: str
    default_endpoint: str = ""
    templates: Tuple[TemplateDefinition, ...] = ()
    models: Optional[ModelsDescriptor] = None


# ============================================================================
# PARSING HELPERS
# ============================================================================

def normalize_provider_id(raw: Optional[str]) -> str:
    """
    Strip a legacy variant suffix from a provider id.

    Older configurations stored ids such as 'OpenAI-v2'; everything from the
    first hyphen on is dropped so they keep matching the catalog.

    Example:
        >>> normalize_provider_id("OpenAI-v2")
        'OpenAI'
    """
    if not raw:
        return ""
    return raw.split("-", 1)[0]


def _parse_headers(raw) -> HeaderList:
    if not isinstance(raw, dict):
        return ()
    return tuple((str(k), v if isinstance(v, str) else json.dumps(v)) for k, v in raw.items())


def _stringify_payload(raw) -> str:
    if raw is None:
        return ""
    return json.dumps(raw, ensure_ascii=False)


def _split_template_id(template_id: str) -> Tuple[IOType, IOType]:
    # 'text-image' -> (TEXT, IMAGE); an id without a hyphen uses itself for both
    if "-" in template_id:
        raw_in, raw_out = template_id.split("-", 1)
    else:
        raw_in = raw_out = template_id
    return IOType.parse(raw_in), IOType.parse(raw_out)


def _string_field(section: dict, key: str, default: str, where: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str):
        raise ValueError(f"'{key}' in {where} must be a string, got {type(value).__name__}")
    return value


def parse_provider(provider_id: str, document: dict) -> ApiProvider:
    """
    Build an ApiProvider from one parsed definition document.

    Args:
        provider_id: Id taken from the file name
        document: Parsed JSON object

    Returns:
        ApiProvider (possibly with zero templates; the caller discards those)

    Raises:
        ValueError: If ``default-endpoint`` or a section's ``endpoint``,
            ``method`` or ``result`` is present but not a string
    """
    default_endpoint = _string_field(document, config.DEFAULT_ENDPOINT_KEY, "", provider_id)

    templates: List[TemplateDefinition] = []
    models: Optional[ModelsDescriptor] = None

    for key, value in document.items():
        if not isinstance(value, dict):
            continue
        if key == config.MODELS_KEY:
            models = ModelsDescriptor(
                endpoint=_string_field(value, "endpoint", "", key),
                method=_string_field(value, "method", config.DEFAULT_MODELS_METHOD, key),
                headers=_parse_headers(value.get("headers")),
                payload=_stringify_payload(value.get("payload")),
                result_path=_string_field(value, "result", config.DEFAULT_MODELS_RESULT_PATH, key),
            )
            continue
        if not key:
            continue
        input_kind, output_kind = _split_template_id(key)
        templates.append(TemplateDefinition(
            id=key,
            provider_id=provider_id,
            input=input_kind,
            output=output_kind,
            endpoint=_string_field(value, "endpoint", config.DEFAULT_TEMPLATE_ENDPOINT, key),
            result_path=_string_field(value, "result", "", key),
            headers=_parse_headers(value.get("headers")),
            payload=_stringify_payload(value.get("payload")),
        ))

    return ApiProvider(
        id=provider_id,
        default_endpoint=default_endpoint,
        templates=tuple(templates),
        models=models,
    )


# ============================================================================
# CATALOG
# ============================================================================

class ProviderCatalog:
    """
    Immutable, ordered set of API providers.

    Lookups are pure. Catalog order is the sorted order of the definition
    file names, which makes ``find_template_any`` deterministic.
    """

    def __init__(self, providers: Optional[List[ApiProvider]] = None):
        self._providers: Tuple[ApiProvider, ...] = tuple(providers or ())

    @classmethod
    def load(cls, source: Union[str, Path, None] = None) -> "ProviderCatalog":
        """
        Load every ``*.json`` provider definition in a directory.

        Never raises. Unreadable or malformed files are skipped and logged;
        a missing directory yields an empty catalog.

        Args:
            source: Directory of definitions (defaults to the bundled apidef/)

        Returns:
            ProviderCatalog
        """
        directory = Path(source) if source is not None else config.APIDEF_DIR
        if not directory.is_dir():
            logger.warning(f"API definition directory missing: {directory}")
            return cls()

        providers: List[ApiProvider] = []
        for path in sorted(directory.glob("*.json")):
            if not path.is_file():
                continue
            try:
                text = path.read_text(encoding="utf-8-sig")
                if not text.strip():
                    logger.warning(f"API definition file empty: {path}")
                    continue
                document = json.loads(text)
                if not isinstance(document, dict):
                    logger.error(f"API definition is not a JSON object: {path}")
                    continue
                provider = parse_provider(path.stem, document)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load API definition {path}: {e}")
                continue

            if not provider.id or not provider.templates:
                logger.warning(f"Skipping provider '{provider.id}' from {path}: no templates")
                continue
            providers.append(provider)
            logger.debug(
                f"Loaded provider '{provider.id}' with templates "
                f"{[t.id for t in provider.templates]}"
            )

        logger.info(f"Provider catalog loaded: {len(providers)} provider(s) from {directory}")
        return cls(providers)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def providers(self) -> Tuple[ApiProvider, ...]:
        return self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self):
        return iter(self._providers)

    def first_provider(self) -> Optional[ApiProvider]:
        return self._providers[0] if self._providers else None

    def find_provider(self, provider_id: str) -> Optional[ApiProvider]:
        """Find a provider by exact (case-sensitive) id."""
        for provider in self._providers:
            if provider.id == provider_id:
                return provider
        return None

    def find_template_by_id(self, template_id: str) -> Optional[TemplateDefinition]:
        """Return the first template with this id in catalog order."""
        for provider in self._providers:
            for template in provider.templates:
                if template.id == template_id:
                    return template
        return None

    @staticmethod
    def find_template_by_io(provider: ApiProvider, input_kind: IOType,
                            output_kind: IOType) -> Optional[TemplateDefinition]:
        for template in provider.templates:
            if template.input == input_kind and template.output == output_kind:
                return template
        return None

    def find_template_any(self, input_kind: IOType, output_kind: IOType) -> Optional[TemplateDefinition]:
        """Search all providers in catalog order; first match wins."""
        for provider in self._providers:
            template = self.find_template_by_io(provider, input_kind, output_kind)
            if template is not None:
                return template
        return None

    def provider_ids(self) -> List[str]:
        return [p.id for p in self._providers]

    def as_dict(self) -> Dict[str, List[str]]:
        """Provider id -> template ids, for diagnostics."""
        return {p.id: [t.id for t in p.templates] for p in self._providers}

"""
Model Discovery
===============

Lists the models a provider offers and picks sensible defaults from them.

Key Components:
- fetch_models(): Call a provider's model-listing descriptor
- pick_model_by_patterns(): Ordered regex preference over model ids
- perform_initial_setup(): First-run configuration of four models and the
  default filters

Author: clipfilter Project
"""

import logging
import re
from typing import Any, Iterable, List, Optional

from clipfilter.core import config
from clipfilter.core.catalog import ApiProvider, ProviderCatalog
from clipfilter.core.endpoint import resolve_endpoint
from clipfilter.core.errors import ConfigurationError, ModelDiscoveryError
from clipfilter.core.extraction import MISSING, parse_json, walk_path
from clipfilter.core.placeholders import PlaceholderContext, substitute
from clipfilter.core.request_builder import render_headers
from clipfilter.core.session import AppConfig, FilterDefinition, IOType, ModelConfig

logger = logging.getLogger(__name__)


def _models_array(document: Any, result_path: str) -> Any:
    # Empty segments are skipped here, so an empty path addresses the root.
    path = ".".join(part for part in (result_path or "").split(".") if part)
    if not path:
        return document
    return walk_path(document, path)


def fetch_models(provider: ApiProvider, server_url: str, api_key: str, transport) -> List[str]:
    """
    Fetch the model ids a provider offers.

    Args:
        provider: Provider with a model-listing descriptor
        server_url: Server base URL (the provider default is used when empty)
        api_key: API key substituted into the descriptor
        transport: HttpTransport collaborator

    Returns:
        Non-empty list of model ids in response order

    Raises:
        ModelDiscoveryError: No descriptor, unresolvable endpoint, request
            failure, unexpected response shape, or an empty list
    """
    descriptor = provider.models
    if descriptor is None or not descriptor.endpoint:
        raise ModelDiscoveryError(f"provider '{provider.id}' does not define a models endpoint")

    server_url = server_url or provider.default_endpoint
    context = PlaceholderContext(api_key=api_key)

    fragment = substitute(descriptor.endpoint, context)
    endpoint = resolve_endpoint(server_url, fragment)
    if endpoint is None:
        raise ModelDiscoveryError(f"cannot resolve models endpoint (server={server_url!r})")

    headers = render_headers(descriptor.headers, context)
    method = "POST" if re.search("post", descriptor.method or "", re.IGNORECASE) else "GET"
    body = substitute(descriptor.payload, context).encode("utf-8") if method == "POST" else b""

    logger.info(f"Fetching models for provider '{provider.id}' from {endpoint.url}")
    response = transport.send(endpoint, headers, body, method)
    if not response.text:
        raise ModelDiscoveryError(f"model listing failed: {response.error or 'empty response'}")
    if response.error:
        logger.warning(f"Model listing reported '{response.error}', parsing body anyway")

    document = parse_json(response.text)
    if document is MISSING:
        raise ModelDiscoveryError("model listing response is not JSON")

    items = _models_array(document, descriptor.result_path)
    if items is MISSING:
        raise ModelDiscoveryError(f"models result path '{descriptor.result_path}' missing")
    if not isinstance(items, list):
        raise ModelDiscoveryError(f"models result path '{descriptor.result_path}' is not an array")

    models: List[str] = []
    for item in items:
        if isinstance(item, dict):
            model_id = item.get("id")
            if isinstance(model_id, str) and model_id:
                models.append(model_id)
        elif isinstance(item, str) and item:
            models.append(item)

    if not models:
        raise ModelDiscoveryError(f"provider '{provider.id}' returned no models")
    logger.info(f"Provider '{provider.id}' lists {len(models)} model(s)")
    return models


def pick_model_by_patterns(models: List[str], patterns: Iterable[str]) -> str:
    """
    Pick a model by ordered preference.

    Each pattern is tried in turn against every model (case-insensitive
    search); the first hit wins. Invalid patterns never match. Without any
    hit the first model is returned, or '' for an empty list.

    Example:
        >>> pick_model_by_patterns(["gpt-4o", "gpt-4o-mini"], ["gpt-.*-mini", "gpt-.*"])
        'gpt-4o-mini'
    """
    for pattern in patterns:
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            logger.warning(f"Ignoring invalid model pattern {pattern!r}: {e}")
            continue
        for model in models:
            if compiled.search(model):
                return model
    return models[0] if models else ""


def setup_model_index(input_kind: IOType, output_kind: IOType) -> int:
    """Index of the setup model serving an (input, output) pair."""
    keys = list(config.SETUP_MODEL_NAMES)
    return keys.index((input_kind.value, output_kind.value))


def perform_initial_setup(catalog: ProviderCatalog, provider_id: str, server_url: str,
                          api_key: str, transport, app_config: Optional[AppConfig] = None,
                          default_filters: Optional[List[FilterDefinition]] = None) -> AppConfig:
    """
    Build a working configuration from a provider's model list.

    Creates one model per (input, output) pair, choosing a chat model for
    text output and an image model for image output, then assigns every
    default filter the model matching its pair. Language and hotkey are kept
    from ``app_config`` when given.

    Args:
        catalog: Loaded provider catalog
        provider_id: Provider to configure (first catalog provider when empty)
        server_url: Server base URL (provider default when empty)
        api_key: API key for the provider
        transport: HttpTransport collaborator
        app_config: Existing configuration to take language and hotkey from
        default_filters: Filters to install (a single Translate filter when empty)

    Returns:
        New AppConfig

    Raises:
        ConfigurationError: The catalog is empty or the provider is unknown
        ModelDiscoveryError: Model listing failed
    """
    if not len(catalog):
        raise ConfigurationError("no API providers are available")
    provider = catalog.find_provider(provider_id) if provider_id else catalog.first_provider()
    if provider is None:
        raise ConfigurationError(f"unknown provider '{provider_id}'")

    server_url = server_url or provider.default_endpoint
    models = fetch_models(provider, server_url, api_key, transport)

    setup_models = []
    for (input_kind, output_kind), name in config.SETUP_MODEL_NAMES.items():
        patterns = config.IMAGE_MODEL_PATTERNS if output_kind == "image" else config.LLM_MODEL_PATTERNS
        chosen = pick_model_by_patterns(models, patterns)
        logger.info(f"Setup: '{name}' uses model '{chosen}'")
        setup_models.append(ModelConfig(
            name=name,
            server_url=server_url,
            model_name=chosen,
            api_key=api_key,
            provider_id=provider.id,
        ))

    filters = list(default_filters or [])
    if not filters:
        filters = [FilterDefinition(
            title=config.DEFAULT_FILTER["title"],
            input=IOType.parse(config.DEFAULT_FILTER["input"]),
            output=IOType.parse(config.DEFAULT_FILTER["output"]),
            prompt=config.DEFAULT_FILTER["prompt"],
        )]
    for f in filters:
        f.model_index = setup_model_index(f.input, f.output)

    result = AppConfig(models=setup_models, filters=filters)
    if app_config is not None:
        result.language = app_config.language
        result.hotkey = app_config.hotkey
    return result

"""
Application Configuration Persistence
======================================

Serializes and deserializes the clipfilter AppConfig.

Key Responsibilities:
---------------------
- File-System Persistence: Stores config as pretty JSON in
  ``~/.clipfilter/config.json``. A missing file falls back to the bundled
  ``defconf.json`` and, failing that, to a built-in default.
- State Synchronization: Maps the JSON shape
  ``{language, hotkey, models[], filters[]}`` onto the dataclasses in
  ``clipfilter.core.session``.
- Key Protection: API keys are decrypted on load and encrypted on save
  through the SecretStore.
- Security Logging: Save and load events are logged with keys masked.

Loading never raises; a broken file is logged and defaults are used.
Saving returns False on failure and leaves the in-memory state alone.

Author: clipfilter Project
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from clipfilter.core import config
from clipfilter.core.catalog import ProviderCatalog, normalize_provider_id
from clipfilter.core.errors import PersistenceError
from clipfilter.core.session import AppConfig, FilterDefinition, HotkeyConfig, IOType, ModelConfig
from clipfilter.utils.logger import log_config

PathLike = Union[str, Path]

CONFIG_PATH = config.CONFIG_DIR / config.CONFIG_FILE_NAME

logger = logging.getLogger(__name__)


# ============================================================================
# JSON <-> DATACLASSES
# ============================================================================

def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def filters_from_list(items: Any) -> List[FilterDefinition]:
    """Parse the ``filters`` array, dropping entries without a title."""
    filters: List[FilterDefinition] = []
    if not isinstance(items, list):
        return filters
    for item in items:
        if not isinstance(item, dict):
            continue
        title = _str(item.get("title"))
        if not title:
            continue
        filters.append(FilterDefinition(
            title=title,
            input=IOType.parse(_str(item.get("input"))),
            output=IOType.parse(_str(item.get("output"))),
            model_index=_as_int(item.get("modelIndex"), 0),
            prompt=_str(item.get("prompt")),
        ))
    return filters


def config_from_dict(data: Dict[str, Any], secret_store=None) -> AppConfig:
    """
    Build an AppConfig from a parsed config document.

    Provider ids are normalized, API keys unprotected, models without a name
    and filters without a title dropped, and out-of-range model indices
    clamped to 0.
    """
    app_config = AppConfig()
    app_config.language = _str(data.get("language")) or config.DEFAULT_LANGUAGE

    hotkey = data.get("hotkey")
    if isinstance(hotkey, dict):
        app_config.hotkey = HotkeyConfig(
            modifiers=_as_int(hotkey.get("modifiers"), config.DEFAULT_HOTKEY_MODIFIERS),
            key=_as_int(hotkey.get("key"), config.DEFAULT_HOTKEY_KEY),
        )

    models = data.get("models")
    if isinstance(models, list):
        for item in models:
            if not isinstance(item, dict):
                continue
            name = _str(item.get("name"))
            if not name:
                continue
            api_key = _str(item.get("apiKey"))
            if secret_store is not None:
                api_key = secret_store.unprotect(api_key)
            app_config.models.append(ModelConfig(
                name=name,
                server_url=_str(item.get("serverUrl")),
                model_name=_str(item.get("modelName")),
                api_key=api_key.strip(),
                provider_id=normalize_provider_id(_str(item.get("providerId"))),
            ))

    app_config.filters = filters_from_list(data.get("filters"))
    app_config.clamp_model_indices()
    return app_config


def config_to_dict(app_config: AppConfig, secret_store=None) -> Dict[str, Any]:
    """
    Serialize an AppConfig to the persisted JSON shape.

    API keys are protected when a secret store is given. If protection fails
    the key is written as plaintext so it is not lost.
    """
    models = []
    for m in app_config.models:
        api_key = m.api_key
        if secret_store is not None and api_key:
            try:
                api_key = secret_store.protect(api_key)
            except PersistenceError as e:
                logger.warning(f"API key for model '{m.name}' stored unencrypted: {e}")
        models.append({
            "name": m.name,
            "serverUrl": m.server_url,
            "modelName": m.model_name,
            "providerId": m.provider_id,
            "apiKey": api_key,
        })

    return {
        "language": app_config.language,
        "hotkey": {
            "modifiers": app_config.hotkey.modifiers,
            "key": app_config.hotkey.key,
        },
        "models": models,
        "filters": [
            {
                "title": f.title,
                "input": f.input.value,
                "output": f.output.value,
                "modelIndex": f.model_index,
                "prompt": f.prompt,
            }
            for f in app_config.filters
        ],
    }


# ============================================================================
# DEFAULTS
# ============================================================================

def builtin_default_document() -> Dict[str, Any]:
    return {
        "language": config.DEFAULT_LANGUAGE,
        "hotkey": {
            "modifiers": config.DEFAULT_HOTKEY_MODIFIERS,
            "key": config.DEFAULT_HOTKEY_KEY,
        },
        "models": [dict(config.DEFAULT_MODEL)],
        "filters": [dict(config.DEFAULT_FILTER)],
    }


def _read_document(path: Path) -> Dict[str, Any]:
    """
    Read a JSON object from disk.

    Raises:
        PersistenceError: If the file is missing, empty, unreadable or not an object
    """
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise PersistenceError(f"cannot read {path}: {e}") from e
    if not text.strip():
        raise PersistenceError(f"{path} is empty")
    try:
        data = json.loads(text)
    except ValueError as e:
        raise PersistenceError(f"{path} is corrupted: {e}") from e
    if not isinstance(data, dict):
        raise PersistenceError(f"{path} is not a JSON object")
    return data


def load_default_document(default_path: Optional[PathLike] = None) -> Dict[str, Any]:
    """Bundled defconf.json, or the built-in default when it is unusable."""
    path = Path(default_path) if default_path is not None else config.DEFAULT_CONFIG_PATH
    try:
        return _read_document(path)
    except PersistenceError as e:
        logger.warning(f"Default configuration unavailable, using built-in defaults: {e}")
        return builtin_default_document()


def load_default_filters(default_path: Optional[PathLike] = None) -> List[FilterDefinition]:
    return filters_from_list(load_default_document(default_path).get("filters"))


# ============================================================================
# PUBLIC API
# ============================================================================

def load_config(path: Optional[PathLike] = None, secret_store=None,
                default_path: Optional[PathLike] = None) -> AppConfig:
    """
    Load the configuration.

    Args:
        path: config.json location (defaults to ``~/.clipfilter/config.json``)
        secret_store: SecretStore used to decrypt API keys
        default_path: defconf.json location (defaults to the bundled file)

    Returns:
        AppConfig (never raises)
    """
    path = Path(path) if path is not None else CONFIG_PATH

    if path.exists():
        logger.info(f"Loading configuration from {path}")
        try:
            data = _read_document(path)
        except PersistenceError as e:
            logger.error(f"Failed to load configuration: {e}")
            data = load_default_document(default_path)
    else:
        logger.info(f"No existing configuration file found at {path}, using defaults")
        data = load_default_document(default_path)

    log_config("Loaded Configuration", data, logger)
    app_config = config_from_dict(data, secret_store)
    logger.info(
        f"Configuration loaded: {len(app_config.models)} model(s), "
        f"{len(app_config.filters)} filter(s)"
    )
    return app_config


def ensure_model_providers(app_config: AppConfig, catalog: ProviderCatalog) -> None:
    """Give every model without a provider id the first catalog provider."""
    first = catalog.first_provider()
    if first is None:
        return
    for m in app_config.models:
        if not m.provider_id:
            m.provider_id = first.id
            logger.debug(f"Model '{m.name}' assigned default provider '{first.id}'")


def reassign_model_on_delete(app_config: AppConfig, index: int) -> None:
    """Delete ``models[index]`` and keep every filter's model index valid."""
    if index < 0 or index >= len(app_config.models):
        return
    removed = app_config.models.pop(index)
    app_config.reassign_model_on_delete(index)
    logger.info(f"Model '{removed.name}' deleted; filter model indices reassigned")


def save_config(app_config: AppConfig, path: Optional[PathLike] = None, secret_store=None,
                catalog: Optional[ProviderCatalog] = None) -> bool:
    """
    Persist the configuration as pretty-printed JSON.

    Args:
        app_config: Configuration to save
        path: Target file (defaults to ``~/.clipfilter/config.json``)
        secret_store: SecretStore used to encrypt API keys
        catalog: When given, empty provider ids are backfilled first

    Returns:
        True on success, False if the file could not be written
    """
    path = Path(path) if path is not None else CONFIG_PATH
    if catalog is not None:
        ensure_model_providers(app_config, catalog)

    data = config_to_dict(app_config, secret_store)
    log_config("Saving Configuration", data, logger)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error(f"Failed to save configuration to {path}: {e}", exc_info=True)
        return False

    logger.info(f"Configuration saved successfully to {path}")
    return True

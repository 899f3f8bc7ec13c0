"""
Session Management Module
==========================

This module defines the user-facing configuration structures for clipfilter.
The AppConfig class is the explicit context object handed to the engine: it
holds the model list and the filter list for the lifetime of the process and
is passed by reference into each filter run.

The configuration is persisted between sessions using the config_manager
utility.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import logging

from clipfilter.core import config


# ============================================================================
# INPUT / OUTPUT KIND
# ============================================================================

class IOType(Enum):
    """Kind of clipboard content a filter consumes or produces."""
    TEXT = "text"
    IMAGE = "image"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "IOType":
        """Parse a config or template string; anything but 'image' is text."""
        if raw and raw.strip().lower() == "image":
            return cls.IMAGE
        return cls.TEXT


# ============================================================================
# CONFIGURATION DATACLASSES
# ============================================================================

@dataclass
class ModelConfig:
    """
    Configuration for an AI model endpoint.

    Attributes:
        name: Display name for the model
        server_url: API server base URL (e.g., https://api.openai.com/v1)
        model_name: Model identifier sent to the API (e.g., gpt-4o-mini)
        api_key: API key, plaintext in memory; only persisted encrypted
        provider_id: Id of the ApiProvider whose templates serve this model
    """
    name: str = ""
    server_url: str = ""
    model_name: str = ""
    api_key: str = ""
    provider_id: str = ""

    def __repr__(self) -> str:
        return (
            f"ModelConfig(name={self.name!r}, server_url={self.server_url!r}, "
            f"model_name={self.model_name!r}, provider_id={self.provider_id!r}, "
            f"has_api_key={bool(self.api_key)})"
        )


@dataclass
class FilterDefinition:
    """
    A clipboard transformation filter.

    Attributes:
        title: Display name for the filter
        input: Kind of clipboard content consumed
        output: Kind of clipboard content produced
        model_index: Index into AppConfig.models (clamped to 0 when out of range)
        prompt: Instruction sent to the AI model
    """
    title: str = ""
    input: IOType = IOType.TEXT
    output: IOType = IOType.TEXT
    model_index: int = 0
    prompt: str = ""


@dataclass
class HotkeyConfig:
    """Global hotkey as Win32-style modifier flags plus a virtual key code."""
    modifiers: int = config.DEFAULT_HOTKEY_MODIFIERS
    key: int = config.DEFAULT_HOTKEY_KEY


# ============================================================================
# APPLICATION CONTEXT
# ============================================================================

@dataclass
class AppConfig:
    """
    Application state shared between the shell and the engine.

    Owned by the application shell. Mutated only from the foreground between
    filter runs, never while a run is in flight.
    """
    language: str = config.DEFAULT_LANGUAGE
    hotkey: HotkeyConfig = field(default_factory=HotkeyConfig)
    models: List[ModelConfig] = field(default_factory=list)
    filters: List[FilterDefinition] = field(default_factory=list)

    def model_for(self, f: FilterDefinition) -> Optional[ModelConfig]:
        """Return the model a filter uses, clamping a bad index to 0."""
        if not self.models:
            return None
        index = f.model_index
        if index < 0 or index >= len(self.models):
            logging.getLogger(__name__).warning(
                f"Filter '{f.title}' model index {index} out of range "
                f"({len(self.models)} models); using model 0"
            )
            index = 0
        return self.models[index]

    def find_filter(self, title: str) -> Optional[FilterDefinition]:
        for f in self.filters:
            if f.title == title:
                return f
        return None

    def clamp_model_indices(self) -> None:
        """Reset every out-of-range filter model index to 0."""
        for f in self.filters:
            if f.model_index < 0 or f.model_index >= len(self.models):
                f.model_index = 0

    def reassign_model_on_delete(self, index: int) -> None:
        """
        Keep filter model indices valid after models[index] is removed.

        Filters that used the deleted model fall back to model 0; filters that
        pointed past it shift down by one.
        """
        for f in self.filters:
            if f.model_index == index:
                f.model_index = 0
            elif f.model_index > index:
                f.model_index -= 1

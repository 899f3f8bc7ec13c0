"""
Placeholder Substitution
========================

Replaces the ``<<token>>`` placeholders used in endpoint, header and payload
templates with runtime values.

Recognised tokens:

- ``<<model>>``           model identifier
- ``<<system_prompt>>``   instructional system prompt
- ``<<prompt>>``          user prompt (filter prompt + clipboard text)
- ``<<input_text>>``      alias of ``<<prompt>>``
- ``<<api_key>>``         API key
- ``<<image>>``           input image as bare base64
- ``<<image_url>>``       input image as a ``data:image/png;base64,`` URL

Unknown tokens are left untouched. Header and endpoint values are substituted
raw; payload values are JSON-escaped so they can sit inside a JSON string
literal without breaking the document.
"""

import re
from dataclasses import dataclass
from typing import Dict

from clipfilter.core import config

_TOKEN_PATTERN = re.compile("|".join(re.escape(t) for t in (
    config.TOKEN_MODEL,
    config.TOKEN_SYSTEM_PROMPT,
    config.TOKEN_PROMPT,
    config.TOKEN_INPUT_TEXT,
    config.TOKEN_API_KEY,
    config.TOKEN_IMAGE_URL,
    config.TOKEN_IMAGE,
)))

_JSON_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


@dataclass(frozen=True)
class PlaceholderContext:
    """Runtime values available to templates."""
    model: str = ""
    system_prompt: str = ""
    prompt: str = ""
    api_key: str = ""
    image_b64: str = ""
    image_data_url: str = ""

    def values(self) -> Dict[str, str]:
        return {
            config.TOKEN_MODEL: self.model,
            config.TOKEN_SYSTEM_PROMPT: self.system_prompt,
            config.TOKEN_PROMPT: self.prompt,
            config.TOKEN_INPUT_TEXT: self.prompt,
            config.TOKEN_API_KEY: self.api_key,
            config.TOKEN_IMAGE_URL: self.image_data_url,
            config.TOKEN_IMAGE: self.image_b64,
        }


def json_escape(value: str) -> str:
    """Escape backslash, double quote, newline, carriage return and tab."""
    return "".join(_JSON_ESCAPES.get(ch, ch) for ch in value)


def substitute(template: str, context: PlaceholderContext, escape_for_json: bool = False) -> str:
    """
    Replace every occurrence of every recognised token in ``template``.

    Args:
        template: Template text
        context: Runtime values
        escape_for_json: Escape each value for embedding in a JSON string

    Returns:
        The rendered text
    """
    if not template:
        return template or ""
    values = context.values()

    def replace(match: "re.Match") -> str:
        value = values[match.group(0)]
        return json_escape(value) if escape_for_json else value

    # Single pass: substituted values are never rescanned for tokens.
    return _TOKEN_PATTERN.sub(replace, template)

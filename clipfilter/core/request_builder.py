"""
Request Building
================

Renders a concrete HTTP request from a TemplateDefinition plus runtime values.

- Endpoint and header values are substituted without escaping.
- The payload is substituted with JSON escaping and sent as UTF-8.
- When any header declares ``multipart/form-data`` the JSON payload is
  ignored and a multipart body carrying ``model``, ``prompt`` and (when an
  input image exists) a binary ``image`` part is built instead, with a fresh
  random boundary appended to that header.

Author: clipfilter Project
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from clipfilter.core import config
from clipfilter.core.catalog import TemplateDefinition
from clipfilter.core.endpoint import Endpoint, resolve_endpoint
from clipfilter.core.errors import ConfigurationError
from clipfilter.core.image_processing import decode_base64, to_data_url
from clipfilter.core.placeholders import PlaceholderContext, substitute
from clipfilter.core.session import ModelConfig

logger = logging.getLogger(__name__)

Headers = List[Tuple[str, str]]


@dataclass
class BuiltRequest:
    """A fully rendered request, ready for the transport."""
    endpoint: Endpoint
    headers: Headers
    body: bytes
    method: str = "POST"
    multipart: bool = False


# ============================================================================
# HEADERS
# ============================================================================

def render_headers(headers: Iterable[Tuple[str, str]], context: PlaceholderContext) -> Headers:
    """Substitute placeholders in header values; never JSON-escaped."""
    return [(key, substitute(value, context, escape_for_json=False)) for key, value in headers]


def is_multipart(headers: Iterable[Tuple[str, str]]) -> bool:
    return any(config.MULTIPART_CONTENT_TYPE in value.lower() for _, value in headers)


def new_boundary() -> str:
    return f"{config.MULTIPART_BOUNDARY_PREFIX}{secrets.token_hex(12)}"


def add_boundary(headers: Headers, boundary: str) -> Headers:
    """Append ``; boundary=...`` to every header declaring multipart/form-data."""
    out: Headers = []
    for key, value in headers:
        if config.MULTIPART_CONTENT_TYPE in value.lower():
            value = f"{value}; boundary={boundary}"
        out.append((key, value))
    return out


# ============================================================================
# BODIES
# ============================================================================

def build_multipart_body(boundary: str, model: str, prompt: str, image_b64: str = "") -> bytes:
    """
    Build a multipart/form-data body.

    Parts: ``model`` and ``prompt`` as text, then ``image`` as a PNG file when
    ``image_b64`` decodes to non-empty bytes.
    """
    image_bytes = b""
    if image_b64:
        try:
            image_bytes = decode_base64(image_b64)
        except ValueError as e:
            logger.warning(f"Input image could not be decoded for multipart upload: {e}")

    delimiter = f"--{boundary}\r\n".encode("utf-8")
    parts = []

    def add_text(name: str, value: str) -> None:
        parts.append(delimiter)
        parts.append(f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8"))
        parts.append(value.encode("utf-8") + b"\r\n")

    add_text("model", model)
    add_text("prompt", prompt)
    if image_bytes:
        parts.append(delimiter)
        parts.append(
            f'Content-Disposition: form-data; name="image"; '
            f'filename="{config.MULTIPART_IMAGE_FILENAME}"\r\n'
            f"Content-Type: {config.MULTIPART_IMAGE_MIME}\r\n\r\n".encode("utf-8")
        )
        parts.append(image_bytes + b"\r\n")
    parts.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(parts)


def render_payload(template: TemplateDefinition, context: PlaceholderContext) -> str:
    return substitute(template.payload, context, escape_for_json=True)


# ============================================================================
# ENTRY POINT
# ============================================================================

def build_context(model: ModelConfig, system_prompt: str = "", prompt: str = "",
                  image_b64: str = "", image_data_url: Optional[str] = None) -> PlaceholderContext:
    return PlaceholderContext(
        model=model.model_name,
        system_prompt=system_prompt,
        prompt=prompt,
        api_key=model.api_key,
        image_b64=image_b64,
        image_data_url=to_data_url(image_b64) if image_data_url is None else image_data_url,
    )


def build_request(template: TemplateDefinition, model: ModelConfig, system_prompt: str,
                  prompt: str, image_b64: str = "", image_data_url: Optional[str] = None) -> BuiltRequest:
    """
    Render the endpoint, headers and body for one template call.

    Args:
        template: Template to render
        model: Model configuration (server URL, model id, API key)
        system_prompt: Instructional system prompt
        prompt: User prompt
        image_b64: Input image as base64 PNG, empty for text input
        image_data_url: Data-URL form of the image (derived when omitted)

    Returns:
        BuiltRequest

    Raises:
        ConfigurationError: If the endpoint resolves to an empty host
    """
    context = build_context(model, system_prompt, prompt, image_b64, image_data_url)

    fragment = substitute(template.endpoint, context, escape_for_json=False)
    endpoint = resolve_endpoint(model.server_url, fragment)
    if endpoint is None:
        raise ConfigurationError(
            f"cannot resolve endpoint for template '{template.id}' "
            f"(server={model.server_url!r}, endpoint={fragment!r})"
        )

    headers = render_headers(template.headers, context)
    if is_multipart(headers):
        boundary = new_boundary()
        headers = add_boundary(headers, boundary)
        body = build_multipart_body(boundary, model.model_name, prompt, image_b64)
        logger.debug(f"Template '{template.id}' uses multipart/form-data ({len(body)} bytes)")
        return BuiltRequest(endpoint=endpoint, headers=headers, body=body, multipart=True)

    body = render_payload(template, context).encode("utf-8")
    return BuiltRequest(endpoint=endpoint, headers=headers, body=body)

"""
Response Extraction
===================

Pulls a text or image result out of an API response whose exact shape is not
known in advance. Two independent strategies are used:

1. Structured path extraction. The response is parsed as JSON and a result
   path such as ``choices[0].message.content`` is walked through it. Any miss
   (absent key, index out of bounds, wrong container type, empty segment)
   yields "not found", never an error.

2. Heuristic scanning. The raw response text is scanned for well-known field
   names (``content``, ``b64_json``, ``images``/``image_url``/``url``). This
   survives responses that are not valid JSON or do not match the template.

For text output the path is tried first, then the ``content`` scan. For image
output the path is tried first (any ``data:image`` prefix stripped), then the
strategies named in ``config.IMAGE_EXTRACTION_ORDER``. The first candidate
that decodes to an image wins.

Author: clipfilter Project
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from PIL import Image

from clipfilter.core import config
from clipfilter.core.catalog import TemplateDefinition
from clipfilter.core.image_processing import base64_to_image
from clipfilter.core.session import IOType

logger = logging.getLogger(__name__)

MISSING = object()

_SEGMENT = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
_INDEX = re.compile(r"\[(\d+)\]")


# ============================================================================
# RESULT TYPE
# ============================================================================

@dataclass
class ApiCallResult:
    """
    Outcome of one template call: text or an owned image, never both.

    ``kind`` is the template's declared output kind.
    """
    kind: IOType
    text: str = ""
    image: Optional[Image.Image] = None

    @property
    def ok(self) -> bool:
        if self.kind == IOType.TEXT:
            return bool(self.text)
        return self.image is not None

    def release(self) -> None:
        """Close the owned image, if any."""
        if self.image is not None:
            try:
                self.image.close()
            finally:
                self.image = None


# ============================================================================
# STRUCTURED PATH EXTRACTION
# ============================================================================

def parse_path(path: str) -> Optional[List[Tuple[str, Tuple[int, ...]]]]:
    """
    Split a result path into (key, indices) segments.

    Returns:
        The segments, or None if the path is empty or any segment is empty
        or malformed.

    Example:
        >>> parse_path("choices[0].message.content")
        [('choices', (0,)), ('message', ()), ('content', ())]
    """
    if not path:
        return None
    segments = []
    for raw in path.split("."):
        if not raw:
            return None
        match = _SEGMENT.match(raw)
        if not match:
            return None
        key, brackets = match.groups()
        if not key and not brackets:
            return None
        indices = tuple(int(i) for i in _INDEX.findall(brackets))
        segments.append((key, indices))
    return segments


def walk_path(value: Any, path: str) -> Any:
    """
    Walk a parsed JSON value along ``path``.

    Returns:
        The addressed value, or ``MISSING``
    """
    segments = parse_path(path)
    if segments is None:
        return MISSING
    current = value
    for key, indices in segments:
        if key:
            if not isinstance(current, dict) or key not in current:
                return MISSING
            current = current[key]
        for index in indices:
            if not isinstance(current, list) or index >= len(current):
                return MISSING
            current = current[index]
    return current


def parse_json(raw: str) -> Any:
    """Parse response text, returning ``MISSING`` when it is not JSON."""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return MISSING


def extract_by_path(raw: str, path: str) -> str:
    """
    Return the value at ``path`` in the JSON document ``raw`` as text.

    Strings are returned as-is; other values are re-serialised as JSON.
    Returns an empty string when the document does not parse, the path
    misses, or the value is null.
    """
    if not path:
        return ""
    document = parse_json(raw)
    if document is MISSING:
        return ""
    value = walk_path(document, path)
    if value is MISSING or value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


# ============================================================================
# HEURISTIC SCANNING
# ============================================================================

CONTENT_ESCAPES = {"n": "\n", '"': '"'}
B64_ESCAPES = {'"': '"', "\\": "\\", "/": "/"}
STANDARD_ESCAPES = {'"': '"', "\\": "\\", "/": "/", "n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f"}


def _field_value_start(raw: str, field: str, start: int = 0) -> int:
    """Index just past the opening quote of ``"field": "``, or -1."""
    pattern = re.compile(r'"' + re.escape(field) + r'"\s*:\s*"')
    match = pattern.search(raw, start)
    return match.end() if match else -1


def read_json_string(raw: str, start: int, escapes: Dict[str, str]) -> Tuple[str, bool]:
    """
    Read a JSON string body starting at ``start`` up to the next unescaped quote.

    Only the escapes in ``escapes`` are translated; other escape sequences
    are kept verbatim. With STANDARD_ESCAPES, ``\\uXXXX`` is decoded too.

    Returns:
        (text, closed) where ``closed`` tells whether a closing quote was found
    """
    out = []
    i = start
    decode_unicode = escapes is STANDARD_ESCAPES
    while i < len(raw):
        ch = raw[i]
        if ch == '"':
            return "".join(out), True
        if ch == "\\" and i + 1 < len(raw):
            nxt = raw[i + 1]
            if nxt in escapes:
                out.append(escapes[nxt])
                i += 2
                continue
            if decode_unicode and nxt == "u" and i + 5 < len(raw):
                try:
                    out.append(chr(int(raw[i + 2:i + 6], 16)))
                    i += 6
                    continue
                except ValueError:
                    pass
            out.append(ch)
            out.append(nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out), False


def scan_string_field(raw: str, field: str, escapes: Dict[str, str]) -> str:
    """Return the string value of the first ``"field": "..."`` in ``raw``."""
    start = _field_value_start(raw or "", field)
    if start < 0:
        return ""
    text, _ = read_json_string(raw, start, escapes)
    return text


def scan_content(raw: str) -> str:
    """Heuristic: first ``"content"`` string, unescaping only ``\\n`` and ``\\"``."""
    return scan_string_field(raw, "content", CONTENT_ESCAPES)


def scan_b64_json(raw: str) -> str:
    """Heuristic: first ``"b64_json"`` string, unescaping ``\\"``, ``\\\\`` and ``\\/``."""
    return scan_string_field(raw, "b64_json", B64_ESCAPES)


def scan_chat_image_url(raw: str) -> str:
    """
    Heuristic for vision-style chat responses that return generated images as
    ``images[].image_url.url`` data URLs.

    Locates ``"images"`` (or, failing that, ``"image_url"``), then the next
    ``"image_url"``/``"imageUrl"`` object, then its ``"url"`` string.
    """
    raw = raw or ""
    anchor = raw.find('"images"')
    if anchor < 0:
        anchor = raw.find('"image_url"')
        if anchor < 0:
            return ""
    url_obj = raw.find('"image_url"', anchor)
    if url_obj < 0:
        url_obj = raw.find('"imageUrl"', anchor)
    if url_obj < 0:
        return ""
    start = _field_value_start(raw, "url", url_obj)
    if start < 0:
        return ""
    value, closed = read_json_string(raw, start, STANDARD_ESCAPES)
    return value if closed else ""


def strip_data_url(value: str) -> str:
    """Drop everything up to and including the first comma of a data URL."""
    if value and "data:image" in value:
        comma = value.find(",")
        if comma != -1:
            return value[comma + 1:]
    return value


IMAGE_STRATEGIES: Dict[str, Callable[[str], str]] = {
    "b64_json": scan_b64_json,
    "content": scan_content,
    "chat_image_url": scan_chat_image_url,
}


# ============================================================================
# PUBLIC API
# ============================================================================

def extract_text(raw: str, result_path: str) -> str:
    text = extract_by_path(raw, result_path) if result_path else ""
    if not text:
        text = scan_content(raw)
        if text:
            logger.debug("Text result found by 'content' scan")
    return text


def image_candidates(raw: str, result_path: str) -> Iterator[Tuple[str, str]]:
    """Yield (strategy name, base64 candidate) pairs in policy order."""
    if result_path:
        value = strip_data_url(extract_by_path(raw, result_path))
        if value:
            yield "path", value
    for name in config.IMAGE_EXTRACTION_ORDER:
        strategy = IMAGE_STRATEGIES.get(name)
        if strategy is None:
            logger.warning(f"Unknown image extraction strategy '{name}'")
            continue
        value = strip_data_url(strategy(raw))
        if value:
            yield name, value


def extract_image(raw: str, result_path: str) -> Optional[Image.Image]:
    for name, candidate in image_candidates(raw, result_path):
        image = base64_to_image(candidate)
        if image is not None:
            logger.debug(f"Image result decoded via '{name}' ({image.size[0]}x{image.size[1]})")
            return image
        logger.debug(f"Image candidate from '{name}' did not decode")
    return None


def extract(raw: str, template: TemplateDefinition) -> ApiCallResult:
    """
    Extract the result of a template call from the raw response text.

    Args:
        raw: Response body text
        template: Template whose output kind and result path apply

    Returns:
        ApiCallResult; ``ok`` is False when nothing usable was found
    """
    if template.output == IOType.TEXT:
        text = extract_text(raw, template.result_path)
        if not text:
            logger.warning(f"Template '{template.id}' response had no text content. resp={raw[:512]!r}")
        return ApiCallResult(kind=IOType.TEXT, text=text)

    image = extract_image(raw, template.result_path)
    if image is None:
        logger.warning(f"Template '{template.id}' response produced no image")
    return ApiCallResult(kind=IOType.IMAGE, image=image)

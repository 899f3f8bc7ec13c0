"""
Endpoint Resolution
===================

Turns a model's server base URL and a template's endpoint fragment into the
(host, path, secure) triple the HTTP transport needs.

Rules:
    1. An empty fragment means ``/v1/chat/completions``.
    2. An absolute fragment (``http://`` or ``https://``) replaces the server
       base entirely; otherwise the fragment is appended to the base.
    3. The scheme is read from whichever string carries the host. Without a
       scheme the connection is secure.
    4. Any path segment left on the host after the scheme is stripped is moved
       in front of the path.
    5. The path always begins with ``/``, and a leading slash on the
       fragment does not change the result.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from clipfilter.core import config

logger = logging.getLogger(__name__)

_HTTPS = "https://"
_HTTP = "http://"


@dataclass(frozen=True)
class Endpoint:
    host: str
    path: str
    secure: bool = True

    @property
    def url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}{self.path}"


def is_absolute_url(value: str) -> bool:
    lowered = value.lower()
    return lowered.startswith(_HTTPS) or lowered.startswith(_HTTP)


def _join_paths(base: str, suffix: str) -> str:
    if not suffix:
        return base
    if not base:
        return suffix
    return base.rstrip("/") + "/" + suffix.lstrip("/")


def resolve_endpoint(server_base: str, fragment: str) -> Optional[Endpoint]:
    """
    Resolve a server base URL and an endpoint fragment.

    Args:
        server_base: Model server URL (e.g. 'https://api.openai.com/v1')
        fragment: Template endpoint, already placeholder-substituted

    Returns:
        Endpoint, or None when the resolved host is empty

    Example:
        >>> resolve_endpoint("https://api.openai.com/v1", "/chat/completions")
        Endpoint(host='api.openai.com', path='/v1/chat/completions', secure=True)
    """
    host = (server_base or "").strip()
    path = (fragment or "").strip() or config.DEFAULT_ENDPOINT_PATH

    if is_absolute_url(path):
        host, path = path, ""

    secure = True
    if host.lower().startswith(_HTTPS):
        host = host[len(_HTTPS):]
    elif host.lower().startswith(_HTTP):
        host = host[len(_HTTP):]
        secure = False

    slash = host.find("/")
    if slash != -1:
        path = _join_paths(host[slash:], path)
        host = host[:slash]

    if not path.startswith("/"):
        path = "/" + path

    if not host:
        logger.error(f"Endpoint resolution produced an empty host (base={server_base!r}, fragment={fragment!r})")
        return None
    return Endpoint(host=host, path=path, secure=secure)

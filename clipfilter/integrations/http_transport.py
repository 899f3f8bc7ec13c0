"""
HTTP Transport
==============

The HTTP collaborator the engine sends rendered requests through.

Errors are signalled out of band: ``send`` never raises for network or status
failures. A status of 400 or above, or a ``requests`` exception, is reported
in ``TransportResponse.error`` while whatever body arrived is still returned,
so the caller can attempt extraction on an error payload.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

import requests

from clipfilter.core import config
from clipfilter.core.endpoint import Endpoint
from clipfilter.utils.logger import log_api_request, log_api_response


@dataclass
class TransportResponse:
    """Body text plus out-of-band status."""
    text: str = ""
    status_code: Optional[int] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


class HttpTransport(Protocol):
    def send(self, endpoint: Endpoint, headers: List[Tuple[str, str]], body: bytes,
             method: str = "POST") -> TransportResponse:
        ...


class RequestsTransport:
    """
    HttpTransport backed by a ``requests.Session``.

    Attributes:
        timeout (float): Per-request timeout in seconds. The engine itself has
            no timeout, so this is the only bound on a hung server.
    """

    def __init__(self, timeout: float = config.NETWORK_TIMEOUT_SECONDS,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": config.USER_AGENT})

    def send(self, endpoint: Endpoint, headers: List[Tuple[str, str]], body: bytes,
             method: str = "POST") -> TransportResponse:
        """Issue one request; see the module docstring for error semantics."""
        method = (method or "POST").upper()
        url = endpoint.url
        header_map = {key: value for key, value in headers}
        multipart = any(config.MULTIPART_CONTENT_TYPE in v.lower() for v in header_map.values())
        log_api_request(self.logger, method, url, header_map, body, multipart=multipart)

        start = time.time()
        try:
            resp = self.session.request(
                method,
                url,
                headers=header_map,
                data=body if body else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.logger.error(f"HTTP {method} {url} failed: {type(e).__name__}: {e}")
            return TransportResponse(error=f"{type(e).__name__}: {e}")

        # JSON APIs answer in UTF-8 even when the charset is not declared.
        text = resp.content.decode("utf-8", errors="replace")
        log_api_response(self.logger, resp.status_code, text, time.time() - start)

        error = ""
        if resp.status_code >= 400:
            error = f"HTTP status {resp.status_code}"
            self.logger.warning(f"HTTP {method} {url} returned status {resp.status_code}")
        return TransportResponse(text=text, status_code=resp.status_code, error=error)

    def close(self) -> None:
        self.session.close()

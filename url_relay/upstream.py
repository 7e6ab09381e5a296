import logging
from typing import Dict, Optional

import requests

from .content import supported_accept_encoding
from .errors import UpstreamUnreachable
from .models import HOP_BY_HOP_HEADERS, Headers

logger = logging.getLogger(__name__)

# Derived by the transport from the target URL and the body.
TRANSPORT_MANAGED_HEADERS = HOP_BY_HOP_HEADERS | {'host', 'content-length', 'expect'}

# requests fills these in when absent; the caller's choice (or absence) wins.
SESSION_DEFAULT_HEADERS = ('User-Agent', 'Accept', 'Accept-Encoding')


class UpstreamInvoker:
    """Sends one outbound request per inbound request, never following redirects."""

    def __init__(self, timeout: float = 30):
        """
        Initialize the invoker.

        Args:
            timeout: Connect/read timeout in seconds handed to requests
        """
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    def send(self, method: str, url: str, headers: Headers,
             body: Optional[bytes] = None) -> requests.Response:
        """
        Forward a request to the target and return the unread response.

        The response is opened with ``stream=True``; the caller owns it and
        must close it.

        Raises:
            UpstreamUnreachable: On any transport failure (DNS, TLS, refused
                connection, timeout, garbage instead of HTTP)
        """
        logger.debug(f"Forwarding {method} {url}")
        try:
            return requests.request(
                method,
                url,
                headers=self._to_request_headers(headers),
                data=body or None,
                allow_redirects=False,
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise UpstreamUnreachable(f"Failed to reach {url}: {e}") from e

    @staticmethod
    def _to_request_headers(headers: Headers) -> Dict[str, Optional[str]]:
        """Flatten Headers into the mapping requests expects."""
        result: Dict[str, Optional[str]] = {}
        canonical: Dict[str, str] = {}
        for name, value in headers:
            lower = name.lower()
            if lower in TRANSPORT_MANAGED_HEADERS:
                continue
            if lower in canonical:
                # Repeated request headers are folded as the RFC allows; cookies use '; '
                separator = '; ' if lower == 'cookie' else ', '
                key = canonical[lower]
                result[key] = f"{result[key]}{separator}{value}"
            else:
                canonical[lower] = name
                result[name] = value

        accept_key = canonical.get('accept-encoding')
        if accept_key is not None:
            # HTML bodies are decompressed here, so only ask for codings we can undo
            result[accept_key] = supported_accept_encoding(result[accept_key])

        for name in SESSION_DEFAULT_HEADERS:
            if name.lower() not in canonical:
                result[name] = None
        return result

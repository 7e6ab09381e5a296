"""
Response classification and rewriting.

Every upstream response falls into exactly one class, checked in order:

- redirect: Location is made absolute and pointed back at the relay
- HTML: body is buffered, decoded and has its root-relative links rewritten
- anything else: raw bytes are streamed through untouched

Only the HTML branch holds a whole body in memory.
"""

import enum
import logging
import re
from urllib.parse import quote, urljoin

import requests
import urllib3

from .content import decode_text
from .errors import InvalidTargetURL, RedirectRewriteError, UpstreamUnreachable
from .models import BufferedText, Headers, InboundRequest, RelayResponse, StreamBody
from .resolver import origin_of, validate_url

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# Same unreserved set as JavaScript's encodeURIComponent
COMPONENT_SAFE_CHARS = "!'()*~"

# href="/x", src='/x', action="/x" but not protocol-relative "//host/x"
RELATIVE_PATH_PATTERN = re.compile(r'''((href|src|action)=["'])/(?!/)''')


class ResponseKind(enum.Enum):
    REDIRECT = 'redirect'
    HTML = 'html'
    STREAM = 'stream'


def classify(status_code: int, headers: Headers) -> ResponseKind:
    if status_code in REDIRECT_STATUSES:
        return ResponseKind.REDIRECT
    if 'text/html' in (headers.get('Content-Type') or '').lower():
        return ResponseKind.HTML
    return ResponseKind.STREAM


def encode_location(absolute_url: str) -> str:
    """Point an absolute URL back through the relay: '/' + percent-encoded URL."""
    return '/' + quote(absolute_url, safe=COMPONENT_SAFE_CHARS)


def rewrite_location(location: str, base_url: str) -> str:
    """
    Resolve a Location value against the response URL and encode it for the relay.

    Raises:
        RedirectRewriteError: If the result is not an absolute http(s) URL
    """
    try:
        absolute = urljoin(base_url, location.strip())
        validate_url(absolute)
    except (ValueError, InvalidTargetURL) as e:
        raise RedirectRewriteError(f"Cannot rewrite Location {location!r}: {e}") from e
    return encode_location(absolute)


def rewrite_relative_paths(text: str, scheme: str, host: str, origin: str) -> str:
    """Send root-relative href/src/action references back through the relay."""
    prefix = f"{scheme}://{host}/{origin}/"
    return RELATIVE_PATH_PATTERN.sub(lambda match: match.group(1) + prefix, text)


def upstream_headers(response: requests.Response) -> Headers:
    """Copy response headers, one entry per header line."""
    return Headers(response.raw.headers.iteritems())


class ResponseRewriter:
    """Turns an upstream response into the response the caller receives."""

    def __init__(self, buffer_size: int = 65536):
        """
        Initialize the rewriter.

        Args:
            buffer_size: Chunk size used when streaming bodies through
        """
        self._buffer_size = buffer_size

    def rewrite(self, response: requests.Response, request: InboundRequest,
                target_url: str) -> RelayResponse:
        """
        Classify and rewrite ``response``.

        Ownership of ``response`` passes to the returned RelayResponse; it is
        closed here if rewriting fails.
        """
        try:
            headers = upstream_headers(response)
            kind = classify(response.status_code, headers)
            logger.debug(f"{target_url} -> {response.status_code} ({kind.value})")

            if kind is ResponseKind.REDIRECT:
                return self._rewrite_redirect(response, headers, target_url)
            # HEAD responses carry no body to rewrite; keep the upstream framing
            if kind is ResponseKind.HTML and request.method != 'HEAD':
                return self._rewrite_html(response, headers, request, target_url)
            return self._stream(response, headers)
        except BaseException:
            response.close()
            raise

    def _rewrite_redirect(self, response: requests.Response, headers: Headers,
                          target_url: str) -> RelayResponse:
        location = headers.get('Location')
        if not location:
            raise RedirectRewriteError(
                f"Redirect {response.status_code} from {target_url} has no Location header"
            )
        headers.set('Location', rewrite_location(location, response.url or target_url))
        return self._stream(response, headers)

    def _rewrite_html(self, response: requests.Response, headers: Headers,
                      request: InboundRequest, target_url: str) -> RelayResponse:
        try:
            raw = response.raw.read(decode_content=False)
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise UpstreamUnreachable(f"Failed to read response from {target_url}: {e}") from e
        finally:
            response.close()

        text, charset = decode_text(
            raw,
            headers.get('Content-Type'),
            headers.get('Content-Encoding'),
        )
        text = rewrite_relative_paths(text, request.scheme, request.host, origin_of(target_url))

        headers.remove('Content-Encoding')
        headers.remove('Content-Length')
        return RelayResponse(
            status_code=response.status_code,
            reason=response.reason or '',
            headers=headers,
            body=BufferedText(text, charset),
        )

    def _stream(self, response: requests.Response, headers: Headers) -> RelayResponse:
        chunks = response.raw.stream(self._buffer_size, decode_content=False)
        return RelayResponse(
            status_code=response.status_code,
            reason=response.reason or '',
            headers=headers,
            body=StreamBody(chunks, on_close=response.close),
        )

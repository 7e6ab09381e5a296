import logging
from typing import Optional

from .config import RelayConfig
from .errors import RelayError
from .headers import DEFAULT_RESERVED_PREFIX, apply_header_policy, filter_request_headers
from .landing import landing_page
from .models import InboundRequest, RelayResponse
from .resolver import resolve_target_url
from .rewriter import ResponseRewriter
from .upstream import UpstreamInvoker

logger = logging.getLogger(__name__)


class Relay:
    """
    Request translation and response rewriting pipeline.

    resolve target -> filter headers -> send upstream -> classify/rewrite
    -> cache and CORS headers. Any failure along the way becomes the JSON
    error envelope.
    """

    def __init__(self, invoker: Optional[UpstreamInvoker] = None,
                 rewriter: Optional[ResponseRewriter] = None,
                 reserved_header_prefix: str = DEFAULT_RESERVED_PREFIX):
        self._invoker = invoker or UpstreamInvoker()
        self._rewriter = rewriter or ResponseRewriter()
        self._reserved_header_prefix = reserved_header_prefix

    @classmethod
    def from_config(cls, config: RelayConfig) -> 'Relay':
        return cls(
            invoker=UpstreamInvoker(timeout=config.get('upstream_timeout')),
            rewriter=ResponseRewriter(buffer_size=config.get('buffer_size')),
            reserved_header_prefix=config.get('reserved_header_prefix'),
        )

    def handle(self, request: InboundRequest) -> RelayResponse:
        """Produce the response for one inbound request; never raises."""
        if request.path in ('', '/'):
            return landing_page()

        try:
            response = self._forward(request)
        except RelayError as e:
            logger.warning(f"{request.method} {request.path} failed: {e.__class__.__name__}: {e}")
            response = RelayResponse.error_envelope(e)
        except Exception as e:
            logger.exception(f"Unexpected error relaying {request.method} {request.path}")
            response = RelayResponse.error_envelope(e)

        apply_header_policy(response.headers)
        return response

    def _forward(self, request: InboundRequest) -> RelayResponse:
        target_url = resolve_target_url(request.path[1:], request.query, request.scheme)
        headers = filter_request_headers(request.headers, self._reserved_header_prefix)
        upstream = self._invoker.send(request.method, target_url, headers, request.body)
        return self._rewriter.rewrite(upstream, request, target_url)

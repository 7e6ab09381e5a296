"""
A stateless HTTP relay that fetches the URL encoded in the request path.
"""

from .server import RelayServer
from .handler import RequestHandler
from .pipeline import Relay
from .models import Headers, InboundRequest, RelayResponse
from .config import RelayConfig

__all__ = ['RelayServer', 'RequestHandler', 'Relay', 'Headers', 'InboundRequest',
           'RelayResponse', 'RelayConfig']

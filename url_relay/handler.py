import socket
import logging
from typing import BinaryIO, Optional, Tuple

from .headers import apply_header_policy
from .models import InboundRequest, RelayResponse
from .pipeline import Relay

logger = logging.getLogger(__name__)

MAX_LINE_LENGTH = 65536
MAX_HEADERS = 100


class RequestHandler:
    """Handles one client connection: read a request, relay it, write the response."""

    def __init__(self, relay: Relay, default_host: str, default_scheme: str = 'http',
                 timeout: float = 5):
        """
        Initialize the request handler.

        Args:
            relay: Pipeline that turns requests into responses
            default_host: Host reported to the pipeline when the client sends none
            default_scheme: Scheme reported when no X-Forwarded-Proto is sent
            timeout: Socket timeout in seconds
        """
        self._relay = relay
        self._default_host = default_host
        self._default_scheme = default_scheme
        self._timeout = timeout

    def handle_client(self, client_socket: socket.socket,
                      client_address: Tuple[str, int]) -> None:
        """
        Handle an individual client connection.

        Args:
            client_socket: Socket object for client connection
            client_address: Tuple of client's IP and port
        """
        client_socket.settimeout(self._timeout)
        rfile = client_socket.makefile('rb')

        try:
            try:
                request = self._read_request(rfile, client_socket)
            except ValueError as e:
                logger.warning(f"Bad request from {client_address}: {e}")
                response = RelayResponse.error_envelope(e)
                apply_header_policy(response.headers)
                self._send_response(client_socket, response)
                return

            if request is None:
                return

            response = self._relay.handle(request)
            self._send_response(client_socket, response, include_body=request.method != 'HEAD')

        except Exception as e:
            logger.error(f"Error handling client {client_address}: {e}")
        finally:
            rfile.close()
            client_socket.close()

    def _read_request(self, rfile: BinaryIO,
                      client_socket: socket.socket) -> Optional[InboundRequest]:
        """Read the request head and body; None when the client sent nothing."""
        lines = []
        while True:
            line = rfile.readline(MAX_LINE_LENGTH + 1)
            if len(line) > MAX_LINE_LENGTH:
                raise ValueError("Request line or header too long")
            if not line:
                if not lines:
                    return None
                raise ValueError("Connection closed before end of headers")
            # HTTP messages have headers and body separated by an empty line
            if line in (b'\r\n', b'\n'):
                if not lines:
                    continue
                break
            lines.append(line.rstrip(b'\r\n').decode('latin-1'))
            if len(lines) > MAX_HEADERS + 1:
                raise ValueError("Too many request headers")

        request = InboundRequest.from_head(
            '\r\n'.join(lines),
            default_scheme=self._default_scheme,
            default_host=self._default_host,
        )

        if (request.headers.get('Expect') or '').lower() == '100-continue':
            client_socket.sendall(b'HTTP/1.1 100 Continue\r\n\r\n')

        if 'chunked' in (request.headers.get('Transfer-Encoding') or '').lower():
            request.body = self._read_chunked(rfile)
        elif request.headers.get('Content-Length') is not None:
            content_length = request.headers.get('Content-Length').strip()
            if not content_length.isdigit():
                raise ValueError(f"Invalid Content-Length: {content_length!r}")
            request.body = self._read_exact(rfile, int(content_length))

        return request

    def _read_exact(self, rfile: BinaryIO, length: int) -> bytes:
        data = rfile.read(length)
        if len(data) < length:
            raise ValueError("Connection closed before end of body")
        return data

    def _read_chunked(self, rfile: BinaryIO) -> bytes:
        """Decode a chunked request body."""
        body = bytearray()
        while True:
            size_line = rfile.readline(MAX_LINE_LENGTH + 1)
            try:
                size = int(size_line.split(b';', 1)[0].strip(), 16)
            except ValueError:
                raise ValueError(f"Invalid chunk size line: {size_line!r}") from None
            if size == 0:
                # Skip trailers up to the final empty line
                while rfile.readline(MAX_LINE_LENGTH + 1) not in (b'\r\n', b'\n', b''):
                    pass
                return bytes(body)
            body.extend(self._read_exact(rfile, size))
            rfile.readline(MAX_LINE_LENGTH + 1)

    def _send_response(self, client_socket: socket.socket, response: RelayResponse,
                       include_body: bool = True) -> None:
        """Write the response, closing its body whatever happens."""
        try:
            client_socket.sendall(response.to_head())
            if include_body:
                for chunk in response.iter_body():
                    client_socket.sendall(chunk)
        finally:
            response.close()

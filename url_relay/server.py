import socket
import threading
import logging
from typing import Optional, Tuple

from .config import RelayConfig
from .handler import RequestHandler
from .pipeline import Relay

logger = logging.getLogger(__name__)

class RelayServer:
    """Socket listener for the relay; one daemon thread per client connection."""

    def __init__(self, host: str = "localhost", port: int = 8080,
                 relay: Optional[Relay] = None, scheme: str = "http",
                 client_timeout: float = 5, max_connections: int = 128):
        """
        Initialize the relay server.

        Args:
            host: Host address to bind the relay
            port: Port number to listen on; 0 picks a free port
            relay: Pipeline used for every request
            scheme: Scheme callers use to reach the relay
            client_timeout: Socket timeout for client connections in seconds
            max_connections: Listen backlog
        """
        self._host = host
        self._port = port
        self._relay = relay or Relay()
        self._scheme = scheme
        self._client_timeout = client_timeout
        self._max_connections = max_connections

        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        self._serving = threading.Event()
        self._stopped = threading.Event()

    @classmethod
    def from_config(cls, config: RelayConfig) -> 'RelayServer':
        return cls(
            host=config.get('host'),
            port=config.get('port'),
            relay=Relay.from_config(config),
            scheme=config.get('scheme'),
            client_timeout=config.get('client_timeout'),
            max_connections=config.get('max_connections'),
        )

    @property
    def host(self) -> str:
        """Get the host address."""
        return self._host

    @property
    def port(self) -> int:
        """Get the port number; the bound port once the server is listening."""
        return self._port

    @property
    def server_socket(self) -> socket.socket:
        """Get the listening socket."""
        return self._listener

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is accepting connections."""
        return self._serving.wait(timeout)

    def start(self) -> None:
        """Bind, then accept connections until shutdown() is called."""
        try:
            self._bind()
            handler = RequestHandler(
                self._relay,
                default_host=f"{self._host}:{self._port}",
                default_scheme=self._scheme,
                timeout=self._client_timeout,
            )
            logger.info(f"Relay listening on {self._host}:{self._port}")
            self._serving.set()
            self._accept_loop(handler)
        finally:
            self._listener.close()

    def _bind(self) -> None:
        self._listener.bind((self._host, self._port))
        self._listener.listen(self._max_connections)
        self._port = self._listener.getsockname()[1]

    def _accept_loop(self, handler: RequestHandler) -> None:
        while not self._stopped.is_set():
            try:
                connection, address = self._listener.accept()
            except OSError as e:
                if not self._stopped.is_set():
                    logger.error(f"Accept failed: {e}")
                continue

            if self._stopped.is_set():
                connection.close()
                return
            self._dispatch(handler, connection, address)

    def _dispatch(self, handler: RequestHandler, connection: socket.socket,
                  address: Tuple[str, int]) -> None:
        worker = threading.Thread(
            target=handler.handle_client,
            args=(connection, address),
            name=f"relay-{address[0]}:{address[1]}",
            daemon=True,
        )
        worker.start()

    def shutdown(self) -> None:
        """Stop accepting connections; requests already in flight finish on their own."""
        self._stopped.set()
        # close() alone does not wake a blocked accept() everywhere
        if self._serving.is_set():
            try:
                socket.create_connection((self._host, self._port), timeout=1).close()
            except OSError:
                pass
        self._listener.close()

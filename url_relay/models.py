from typing import Callable, Iterable, Iterator, List, Optional, Tuple, Union
from dataclasses import dataclass
from urllib.parse import urlsplit
import json

# Connection-scoped headers; the relay frames every response itself.
HOP_BY_HOP_HEADERS = frozenset({
    'connection',
    'keep-alive',
    'proxy-connection',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailer',
    'transfer-encoding',
    'upgrade',
})


class Headers:
    """
    Ordered, case-insensitive header multiset.

    Repeated names (``Set-Cookie`` and friends) are kept as separate
    entries in their original order.
    """

    def __init__(self, items: Iterable[Tuple[str, str]] = ()):
        self._items: List[Tuple[str, str]] = [(name, value) for name, value in items]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value stored under ``name``."""
        lower = name.lower()
        for key, value in self._items:
            if key.lower() == lower:
                return value
        return default

    def get_all(self, name: str) -> List[str]:
        lower = name.lower()
        return [value for key, value in self._items if key.lower() == lower]

    def add(self, name: str, value: str) -> None:
        self._items.append((name, value))

    def set(self, name: str, value: str) -> None:
        """Replace every occurrence of ``name`` with a single entry at the first one's position."""
        lower = name.lower()
        updated = []
        replaced = False
        for key, existing in self._items:
            if key.lower() != lower:
                updated.append((key, existing))
            elif not replaced:
                updated.append((key, value))
                replaced = True
        if not replaced:
            updated.append((name, value))
        self._items = updated

    def remove(self, name: str) -> None:
        lower = name.lower()
        self._items = [(key, value) for key, value in self._items if key.lower() != lower]

    def items(self) -> List[Tuple[str, str]]:
        return list(self._items)

    def copy(self) -> 'Headers':
        return Headers(self._items)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"


@dataclass
class InboundRequest:
    """Model representing a request received by the relay."""
    method: str
    path: str
    query: str
    scheme: str
    host: str
    headers: Headers
    body: Optional[bytes] = None

    @classmethod
    def from_head(cls, head: str, default_scheme: str = 'http',
                  default_host: str = 'localhost') -> 'InboundRequest':
        """
        Create an InboundRequest from the request line and header block.

        Args:
            head: Everything before the blank line, decoded as latin-1
            default_scheme: Scheme used when no X-Forwarded-Proto is sent
            default_host: Host used when the client sends no Host header

        Raises:
            ValueError: If the request line or a header line is malformed
        """
        lines = head.split('\r\n')
        parts = lines[0].strip().split()
        if len(parts) != 3:
            raise ValueError(f"Malformed request line: {lines[0]!r}")
        method, target, _protocol = parts

        headers = Headers()
        for line in lines[1:]:
            if not line:
                continue
            if ':' not in line:
                raise ValueError(f"Malformed header line: {line!r}")
            key, value = line.split(':', 1)
            headers.add(key.strip(), value.strip())

        # Absolute-form targets are sent by clients configured to use us as a proxy
        if not target.startswith('/'):
            absolute = urlsplit(target)
            target = (absolute.path or '/') + (f"?{absolute.query}" if absolute.query else '')

        path, _, query = target.partition('?')
        forwarded_proto = (headers.get('X-Forwarded-Proto') or '').split(',')[0].strip().lower()
        scheme = forwarded_proto if forwarded_proto in ('http', 'https') else default_scheme

        return cls(
            method=method.upper(),
            path=path,
            query=f"?{query}" if query else '',
            scheme=scheme,
            host=headers.get('Host') or default_host,
            headers=headers,
        )


@dataclass
class StreamBody:
    """Body forwarded chunk by chunk without being held in memory."""
    chunks: Iterable[bytes]
    on_close: Callable[[], None] = lambda: None

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self.chunks:
            if chunk:
                yield chunk

    def close(self) -> None:
        self.on_close()


@dataclass
class BufferedText:
    """Body fully decoded to text; encoded again with ``charset`` on the way out."""
    text: str
    charset: str = 'utf-8'

    def encode(self) -> bytes:
        return self.text.encode(self.charset, errors='xmlcharrefreplace')

    def __iter__(self) -> Iterator[bytes]:
        yield self.encode()

    def close(self) -> None:
        pass


@dataclass
class RelayResponse:
    """Model representing a response leaving the relay."""
    status_code: int
    reason: str
    headers: Headers
    body: Union[StreamBody, BufferedText]

    def content_length(self) -> Optional[int]:
        """Length of the body on the wire, or None when only EOF ends it."""
        if isinstance(self.body, BufferedText):
            return len(self.body.encode())
        declared = self.headers.get('Content-Length')
        if declared is not None and declared.strip().isdigit():
            return int(declared)
        return None

    def to_head(self) -> bytes:
        """Serialize the status line and headers, blank line included."""
        length = self.content_length()
        lines = [f"HTTP/1.1 {self.status_code} {self.reason}".rstrip()]
        for name, value in self.headers:
            lowered = name.lower()
            if lowered in HOP_BY_HOP_HEADERS or lowered == 'content-length':
                continue
            lines.append(f"{name}: {value}")
        if length is not None:
            lines.append(f"Content-Length: {length}")
        lines.append('Connection: close')
        return ('\r\n'.join(lines) + '\r\n\r\n').encode('latin-1', errors='replace')

    def iter_body(self) -> Iterator[bytes]:
        return iter(self.body)

    def close(self) -> None:
        self.body.close()

    @classmethod
    def error_envelope(cls, error: BaseException) -> 'RelayResponse':
        """Create the uniform 500 response for any pipeline failure."""
        message = str(error) or error.__class__.__name__
        return cls(
            status_code=500,
            reason='Internal Server Error',
            headers=Headers([('Content-Type', 'application/json; charset=utf-8')]),
            body=BufferedText(json.dumps({'error': message})),
        )

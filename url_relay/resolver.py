import re
from urllib.parse import unquote, urlsplit

from .errors import InvalidTargetURL

SUPPORTED_SCHEMES = ('http', 'https')
DEFAULT_PORTS = {'http': 80, 'https': 443}

# '%' not followed by two hex digits
MALFORMED_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')


def ensure_scheme(url: str, default_scheme: str) -> str:
    """Prefix ``default_scheme://`` unless the URL already names http(s)."""
    if url.startswith('http://') or url.startswith('https://'):
        return url
    return f"{default_scheme}://{url}"


def resolve_target_url(path: str, query: str, scheme: str) -> str:
    """
    Turn the inbound path into the fully-qualified target URL.

    Args:
        path: Request path without its leading slash, still percent-encoded
        query: Inbound query string including the leading '?', or ''
        scheme: Scheme the caller used to reach the relay

    Returns:
        Absolute http(s) URL of the target

    Raises:
        InvalidTargetURL: If the result is not a usable URL
    """
    if MALFORMED_ESCAPE.search(path):
        raise InvalidTargetURL("Invalid URL: path contains a malformed percent escape")
    try:
        decoded = unquote(path, errors='strict')
    except UnicodeDecodeError as e:
        raise InvalidTargetURL(f"Invalid URL: path is not valid percent-encoded UTF-8 ({e.reason})") from e

    target = ensure_scheme(decoded, scheme) + query
    validate_url(target)
    return target


def validate_url(url: str) -> None:
    """Raise InvalidTargetURL unless ``url`` is an absolute http(s) URL."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise InvalidTargetURL(f"Invalid URL: {url!r} ({e})") from e

    if parts.scheme not in SUPPORTED_SCHEMES:
        raise InvalidTargetURL(f"Invalid URL: {url!r} (unsupported scheme {parts.scheme!r})")
    if not parts.hostname or any(ch.isspace() for ch in parts.netloc):
        raise InvalidTargetURL(f"Invalid URL: {url!r} (missing or malformed host)")
    if port == 0:
        raise InvalidTargetURL(f"Invalid URL: {url!r} (port 0)")


def origin_of(url: str) -> str:
    """Return scheme://host[:port] of ``url``, omitting the scheme's default port."""
    parts = urlsplit(url)
    host = parts.hostname or ''
    if ':' in host:
        host = f"[{host}]"
    port = parts.port
    if port is not None and port != DEFAULT_PORTS.get(parts.scheme):
        return f"{parts.scheme}://{host}:{port}"
    return f"{parts.scheme}://{host}"

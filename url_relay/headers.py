"""
Header rules applied on the way in and on the way out.

Inbound headers lose anything injected by the hosting edge (names that
start with the reserved prefix). Outbound responses always get no-cache
and permissive CORS headers, overwriting whatever the upstream sent.
"""

from .models import Headers

DEFAULT_RESERVED_PREFIX = 'cf-'

NO_CACHE_HEADERS = (
    ('Cache-Control', 'no-store'),
)

CORS_HEADERS = (
    ('Access-Control-Allow-Origin', '*'),
    ('Access-Control-Allow-Methods', 'GET, POST, PUT, DELETE'),
    ('Access-Control-Allow-Headers', '*'),
)


def filter_request_headers(headers: Headers,
                           reserved_prefix: str = DEFAULT_RESERVED_PREFIX) -> Headers:
    """
    Build the header set to send upstream.

    Args:
        headers: Headers received from the caller; left untouched
        reserved_prefix: Names starting with this prefix (any case) are dropped

    Returns:
        New Headers with the remaining entries in their original order
    """
    prefix = reserved_prefix.lower()
    return Headers(
        (name, value) for name, value in headers
        if not (prefix and name.lower().startswith(prefix))
    )


def set_no_cache_headers(headers: Headers) -> None:
    for name, value in NO_CACHE_HEADERS:
        headers.set(name, value)


def set_cors_headers(headers: Headers) -> None:
    for name, value in CORS_HEADERS:
        headers.set(name, value)


def apply_header_policy(headers: Headers) -> Headers:
    """Overwrite cache and CORS headers in place; safe to call repeatedly."""
    set_no_cache_headers(headers)
    set_cors_headers(headers)
    return headers

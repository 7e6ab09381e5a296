import codecs
import gzip
import zlib
from typing import Optional, Tuple

import brotli

from .errors import BodyDecodeError

DEFAULT_CHARSET = 'utf-8'

# Codings decompress_body can undo
SUPPORTED_CODINGS = ('gzip', 'x-gzip', 'deflate', 'br', 'identity')


def supported_accept_encoding(accept_encoding: str) -> str:
    """
    Drop codings from an Accept-Encoding value that decompress_body cannot undo.

    Quality parameters are kept. Falls back to ``identity`` when nothing usable remains.
    """
    kept = []
    for entry in accept_encoding.split(','):
        coding = entry.split(';', 1)[0].strip().lower()
        if coding in SUPPORTED_CODINGS:
            kept.append(entry.strip())
    return ', '.join(kept) or 'identity'


def _inflate(body: bytes) -> bytes:
    # Servers disagree on whether "deflate" carries the zlib wrapper
    try:
        return zlib.decompress(body)
    except zlib.error:
        return zlib.decompress(body, -zlib.MAX_WBITS)


def decompress_body(body: bytes, content_encoding: Optional[str]) -> bytes:
    """
    Undo every coding listed in a Content-Encoding header.

    Codings are removed in reverse order of application.

    Raises:
        BodyDecodeError: For unknown codings or corrupt data
    """
    if not content_encoding:
        return body

    codings = [c.strip().lower() for c in content_encoding.split(',') if c.strip()]
    for coding in reversed(codings):
        try:
            if coding in ('gzip', 'x-gzip'):
                body = gzip.decompress(body)
            elif coding == 'deflate':
                body = _inflate(body)
            elif coding == 'br':
                body = brotli.decompress(body)
            elif coding != 'identity':
                raise BodyDecodeError(f"Unsupported Content-Encoding: {coding}")
        except (OSError, EOFError, zlib.error, brotli.error) as e:
            raise BodyDecodeError(f"Failed to decompress {coding} body: {e}") from e
    return body


def get_charset(content_type: Optional[str]) -> str:
    """Return the charset parameter of a Content-Type value, defaulting to UTF-8."""
    for param in (content_type or '').split(';')[1:]:
        key, _, value = param.partition('=')
        if key.strip().lower() == 'charset':
            charset = value.strip().strip('"\'')
            if charset:
                return charset
    return DEFAULT_CHARSET


def decode_text(body: bytes, content_type: Optional[str],
                content_encoding: Optional[str]) -> Tuple[str, str]:
    """
    Decompress and decode a text body.

    Returns:
        The decoded text and the charset it was decoded with

    Raises:
        BodyDecodeError: If the body cannot be decompressed or the charset is unknown
    """
    raw = decompress_body(body, content_encoding)
    charset = get_charset(content_type)
    try:
        codecs.lookup(charset)
    except LookupError as e:
        raise BodyDecodeError(f"Unknown charset: {charset}") from e
    return raw.decode(charset, errors='replace'), charset

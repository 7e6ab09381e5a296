"""Error types raised by the relay pipeline."""


class RelayError(Exception):
    """Base class for failures that end in the JSON error envelope."""


class InvalidTargetURL(RelayError):
    """The path did not resolve to a usable http(s) URL."""


class UpstreamUnreachable(RelayError):
    """The target could not be reached or did not answer with HTTP."""


class RedirectRewriteError(RelayError):
    """A redirect response carried a missing or unusable Location header."""


class BodyDecodeError(RelayError):
    """An HTML body could not be decompressed or decoded as text."""

"""Error taxonomy raised by the portal client.

Captcha challenges are not errors; they surface as ``auth.CaptchaRequired``.
"""
from __future__ import annotations

from typing import Optional

SNIPPET_CHARS = 200


def snippet(text: Optional[str], limit: int = SNIPPET_CHARS) -> str:
    """Shorten a response body for messages; full bodies may carry session data."""
    if not text:
        return ''
    text = str(text)
    if len(text) <= limit:
        return text
    return text[:limit] + '...'


class PortalError(Exception):
    """Base class for every failure the client reports."""


class NetworkError(PortalError):
    """DNS / connect / timeout / HTTP failure. Not retried by the client."""


class HttpStatusError(NetworkError):

    def __init__(self, status: int, method: str, url: str):
        self.status = status
        self.method = method.upper()
        self.url = url
        super().__init__(f"HTTP {status} on {self.method} {url}")


class TooManyRedirects(NetworkError):

    def __init__(self, url: str, hops: int):
        self.url = url
        self.hops = hops
        super().__init__(f"Too many redirects ({hops}) while requesting {url}")


class RpcExhausted(PortalError):
    """Every version ordinal was rejected with the wrong-data sentinel."""

    def __init__(self, path: str, attempts: int):
        self.path = path
        self.attempts = attempts
        super().__init__(f"RPC {path} rejected for all {attempts} envelope versions")


class RpcParseError(PortalError):

    def __init__(self, message: str, body: Optional[str] = None):
        self.snippet = snippet(body)
        super().__init__(f"{message}: {self.snippet!r}" if self.snippet else message)


class SessionIncomplete(PortalError):

    def __init__(self, cookie_name: str):
        self.cookie_name = cookie_name
        super().__init__(f"Session cookie '{cookie_name}' missing after warmup")


class AuthRejected(PortalError):

    def __init__(self, reason: str, suspicious: bool = False):
        self.reason = reason
        self.suspicious = suspicious
        super().__init__(reason)


class BackoffActive(PortalError):

    def __init__(self, remaining: float, reason: str):
        self.remaining = remaining
        self.reason = reason
        super().__init__(f"Backoff active for {remaining / 60.0:.0f} more min (reason: {reason})")


class NotAuthenticated(PortalError):
    """A protected call was requested before a successful login."""


class TokenNotFound(PortalError):
    """No extractor strategy produced the requested token."""


__all__ = [
    "PortalError",
    "NetworkError",
    "HttpStatusError",
    "TooManyRedirects",
    "RpcExhausted",
    "RpcParseError",
    "SessionIncomplete",
    "AuthRejected",
    "BackoffActive",
    "NotAuthenticated",
    "TokenNotFound",
    "snippet",
]

"""Portal session: cookie jar, origin and soft-expiry bookkeeping.

A Session is never repaired in place. When it is suspected to be invalid the
owner closes it and constructs a new one.
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Iterator, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter, Retry

from .config import ClientConfig
from .logger import Logger

log = Logger.bind(__name__)


def _domain_matches(host: str, cookie_domain: str) -> bool:
    domain = (cookie_domain or '').lstrip('.').lower()
    if not domain:
        return False
    return host == domain or host.endswith('.' + domain)


class Session:
    """Owns one ``requests.Session`` cookie jar for one portal origin."""

    def __init__(self, config: ClientConfig, clock: Callable[[], float] = time.monotonic):
        if not config.origin:
            raise ValueError("base_url is required (e.g. https://myschool.edupage.org)")
        self.config = config
        self.origin = config.origin
        self.host = (urlparse(self.origin).hostname or '').lower()
        self._clock = clock
        self.created_at = clock()
        self.authenticated = False
        self.invalid = False
        # one in-flight login / protected-call sequence per session
        self.lock = threading.RLock()
        self.http = requests.Session()
        # no transport retries; redirects are followed by CookieTransport
        adapter = HTTPAdapter(max_retries=Retry(total=0, redirect=0, raise_on_redirect=False, raise_on_status=False))
        self.http.mount("https://", adapter)
        self.http.mount("http://", adapter)
        self.http.headers.update({
            "User-Agent": config.user_agent,
            "Accept-Language": config.accept_language,
            "Accept": "application/json, text/plain, */*",
            "Connection": "keep-alive",
        })

    @property
    def cookies(self) -> requests.cookies.RequestsCookieJar:
        return self.http.cookies

    def age(self) -> float:
        return self._clock() - self.created_at

    def is_stale(self) -> bool:
        if self.invalid:
            return True
        max_age = self.config.session_max_age
        return bool(max_age) and self.age() >= max_age

    def mark_authenticated(self) -> None:
        """Login succeeded; the soft-expiry window restarts from now."""
        self.authenticated = True
        self.created_at = self._clock()

    def invalidate(self, reason: str) -> None:
        if not self.invalid:
            log.debug(f"session invalidated host={self.host} reason={reason}")
        self.invalid = True
        self.authenticated = False

    def iter_cookies(self, name: Optional[str] = None) -> Iterator:
        """Cookies visible to this session's host, including parent-domain cookies."""
        for cookie in self.http.cookies:
            if name is not None and cookie.name != name:
                continue
            if _domain_matches(self.host, cookie.domain):
                yield cookie

    def has_cookie(self, name: str) -> bool:
        return any(True for _ in self.iter_cookies(name))

    def cookie_names(self) -> list[str]:
        return sorted({c.name for c in self.iter_cookies()})

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = ["Session"]

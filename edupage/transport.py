"""HTTP transport with a cookie store and manual redirect following.

``requests`` is always called with ``allow_redirects=False`` so that the
Set-Cookie headers of every intermediate 30x hop land in the session jar
before the next hop is issued.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode, urljoin, urlparse, urlunparse, parse_qsl

import requests

from .errors import HttpStatusError, NetworkError, TooManyRedirects
from .logger import Logger
from .session import Session

log = Logger.bind(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
MAX_HOPS = 8

FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded; charset=UTF-8'
JSON_CONTENT_TYPE = 'application/json; charset=UTF-8'


@dataclass
class HttpResponse:
    status: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ''
    hops: int = 0

    def json(self) -> Any:
        return json.loads(self.text)


def with_query(url: str, params: Optional[Mapping[str, Any]]) -> str:
    """Append/overwrite query parameters on ``url``."""
    if not params:
        return url
    p = urlparse(url)
    qs = [(k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k not in params]
    qs.extend((k, str(v)) for k, v in params.items())
    return urlunparse(p._replace(query=urlencode(qs)))


def next_method(status: int, method: str) -> str:
    """Verb used for the hop after a redirect with ``status``."""
    method = method.upper()
    if status == 303:
        return 'GET'
    if status == 302 and method != 'GET':
        return 'GET'
    return method


class CookieTransport:

    def __init__(self, session: Session, timeout: Optional[float] = None, max_hops: Optional[int] = None):
        self.session = session
        self.timeout = timeout if timeout is not None else session.config.timeout
        self.max_hops = max_hops if max_hops is not None else (session.config.max_hops or MAX_HOPS)

    @property
    def origin(self) -> str:
        return self.session.origin

    def absolute(self, url: str) -> str:
        if urlparse(url).scheme:
            return url
        return urljoin(self.origin + '/', url)

    def _merge_cookies(self, resp: requests.Response) -> None:
        if resp.cookies:
            self.session.cookies.update(resp.cookies)

    def request(self, method: str, url: str, data: Any = None, headers: Optional[Mapping[str, str]] = None,
                params: Optional[Mapping[str, Any]] = None, timeout: Optional[float] = None) -> HttpResponse:
        """Issue a request and follow redirects by hand.

        Raises NetworkError on transport failure, TooManyRedirects past the hop cap.
        """
        start_url = with_query(self.absolute(url), params)
        current_url = start_url
        current_method = method.upper()
        current_data = data
        current_headers = dict(headers or {})
        hop_timeout = timeout if timeout is not None else self.timeout

        for hop in range(self.max_hops):
            started = time.perf_counter()
            try:
                resp = self.session.http.request(
                    current_method,
                    current_url,
                    data=current_data,
                    headers=current_headers,
                    timeout=hop_timeout,
                    allow_redirects=False,
                )
            except requests.RequestException as e:
                raise NetworkError(f"{current_method} {current_url} failed: {e}") from e
            self._merge_cookies(resp)
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            log.debug(f"http {current_method} {current_url} status={resp.status_code} hop={hop} {elapsed_ms:.1f}ms")

            if resp.status_code not in REDIRECT_STATUSES:
                return HttpResponse(status=resp.status_code, text=resp.text, headers=dict(resp.headers),
                                    url=current_url, hops=hop)
            location = resp.headers.get('Location')
            if not location:
                return HttpResponse(status=resp.status_code, text=resp.text, headers=dict(resp.headers),
                                    url=current_url, hops=hop)

            method_after = next_method(resp.status_code, current_method)
            if method_after != current_method:
                current_data = None
                current_headers = {k: v for k, v in current_headers.items() if k.lower() != 'content-type'}
            current_method = method_after
            current_url = urljoin(current_url, location)

        raise TooManyRedirects(start_url, self.max_hops)

    # --- convenience helpers (fail on 4xx/5xx) ---
    def _checked(self, method: str, url: str, **kwargs: Any) -> HttpResponse:
        res = self.request(method, url, **kwargs)
        if res.status >= 400:
            raise HttpStatusError(res.status, method, res.url)
        return res

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None, timeout: Optional[float] = None,
            params: Optional[Mapping[str, Any]] = None) -> HttpResponse:
        return self._checked('GET', url, headers=headers, timeout=timeout, params=params)

    def post_form(self, url: str, form: Mapping[str, Any], headers: Optional[Mapping[str, str]] = None,
                  timeout: Optional[float] = None, params: Optional[Mapping[str, Any]] = None) -> HttpResponse:
        merged = dict(headers or {})
        merged['Content-Type'] = FORM_CONTENT_TYPE
        body = urlencode([(k, str(v)) for k, v in form.items()])
        return self._checked('POST', url, data=body, headers=merged, timeout=timeout, params=params)

    def post_json(self, url: str, payload: Any, headers: Optional[Mapping[str, str]] = None,
                  timeout: Optional[float] = None) -> HttpResponse:
        merged = dict(headers or {})
        merged['Content-Type'] = JSON_CONTENT_TYPE
        body = json.dumps(payload, ensure_ascii=False).encode('utf-8')
        return self._checked('POST', url, data=body, headers=merged, timeout=timeout)


__all__ = ["CookieTransport", "HttpResponse", "with_query", "next_method", "REDIRECT_STATUSES"]

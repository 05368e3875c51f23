import io
from collections import defaultdict, deque
from dataclasses import dataclass, field
from http.client import HTTPMessage
from typing import Callable, Deque, Dict, List, Tuple, Union
from urllib.parse import urlsplit

import pytest
import requests
from requests.adapters import HTTPAdapter
from urllib3._collections import HTTPHeaderDict
from urllib3.response import HTTPResponse

from edupage.backoff import BackoffController
from edupage.config import ClientConfig
from edupage.session import Session
from edupage.transport import CookieTransport

ORIGIN = 'https://myschool.edupage.org'


@dataclass
class Reply:
    status: int = 200
    body: str = ''
    headers: List[Tuple[str, str]] = field(default_factory=list)


class _OriginalResponse:
    """Just enough of http.client.HTTPResponse for cookie extraction."""

    def __init__(self, msg: HTTPMessage):
        self.msg = msg

    def isclosed(self) -> bool:
        return True

    def close(self) -> None:
        pass


def _raw(reply: Reply) -> HTTPResponse:
    msg = HTTPMessage()
    headers = HTTPHeaderDict()
    for k, v in reply.headers:
        msg.add_header(k, v)
        headers.add(k, v)
    return HTTPResponse(
        body=io.BytesIO(reply.body.encode('utf-8')),
        headers=headers,
        status=reply.status,
        reason='Stub',
        preload_content=False,
        original_response=_OriginalResponse(msg),
    )


Handler = Union[Reply, Callable[[requests.PreparedRequest], Reply]]


class StubAdapter(HTTPAdapter):
    """Serves queued replies keyed by (METHOD, url without query).

    The last reply of a queue is repeated once the others are used up.
    """

    def __init__(self):
        super().__init__()
        self.routes: Dict[Tuple[str, str], Deque[Handler]] = defaultdict(deque)
        self.sent: List[requests.PreparedRequest] = []

    @staticmethod
    def _key(method: str, url: str) -> Tuple[str, str]:
        p = urlsplit(url)
        return method.upper(), f"{p.scheme}://{p.netloc}{p.path}"

    def add(self, method: str, url: str, *replies: Handler) -> "StubAdapter":
        self.routes[self._key(method, url)].extend(replies)
        return self

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.sent.append(request)
        queue = self.routes.get(self._key(request.method, request.url))
        if not queue:
            raise requests.ConnectionError(f"no stub for {request.method} {request.url}")
        handler = queue.popleft() if len(queue) > 1 else queue[0]
        reply = handler(request) if callable(handler) else handler
        return self.build_response(request, _raw(reply))

    def sent_to(self, path: str) -> List[requests.PreparedRequest]:
        return [r for r in self.sent if urlsplit(r.url).path == path]


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(base_url=ORIGIN, username='jan.novak', password='secret')


@pytest.fixture
def stub() -> StubAdapter:
    return StubAdapter()


@pytest.fixture
def session(config, stub):
    s = Session(config)
    s.http.mount('https://', stub)
    s.http.mount('http://', stub)
    yield s
    s.close()


@pytest.fixture
def transport(session) -> CookieTransport:
    return CookieTransport(session)


class FakeClock:

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backoff(clock) -> BackoffController:
    return BackoffController(base=300.0, cap=21600.0, clock=clock)

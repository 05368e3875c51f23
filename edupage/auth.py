"""Two-step login handshake (getToken, then login) and result classification.

The portal reports a captcha / suspicious-activity challenge inconsistently:
sometimes via ``needCaptcha``/``captchaSrc``, sometimes only in the error
text. Both signals are checked, flag first.
"""
from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional
from urllib.parse import urljoin

from .config import DEFAULT_CHALLENGE_PATTERNS
from .errors import AuthRejected, NetworkError, PortalError, RpcParseError
from .logger import Logger
from .sequencer import compact_json
from .transport import CookieTransport
from .warmup import TIMETABLE_DASHBOARD

log = Logger.bind(__name__)

LOGIN_PATH = '/login/'
LOGIN_CMD = 'MainLogin'

# rejection texts that point at a server-side block rather than a typo
BLOCK_PATTERNS = ('block', 'gesperrt', 'locked')


class AuthState(enum.Enum):
    IDLE = 'idle'
    TOKEN_REQUESTED = 'token_requested'
    LOGGING_IN = 'logging_in'
    AUTHENTICATED = 'authenticated'
    CAPTCHA_CHALLENGE = 'captcha_challenge'
    REJECTED = 'rejected'
    FAILED = 'failed'


class AuthResult:
    """Base of the login outcome variants. Only ``AuthOk`` permits proceeding."""

    ok = False


@dataclass(frozen=True)
class AuthOk(AuthResult):
    context: Dict[str, Any] = field(default_factory=dict)
    ok = True


@dataclass(frozen=True)
class CaptchaRequired(AuthResult):
    challenge_url: Optional[str] = None
    message: str = ''


@dataclass(frozen=True)
class Rejected(AuthResult):
    reason: str = 'Login failed'
    suspicious: bool = False


@dataclass(frozen=True)
class Transient(AuthResult):
    error: Optional[BaseException] = None

    @property
    def reason(self) -> str:
        return str(self.error) if self.error else 'transient error'


def error_text(response: Any) -> str:
    if not isinstance(response, dict):
        return ''
    err = response.get('err')
    if isinstance(err, dict):
        return str(err.get('error_text') or '')
    return ''


def matches_challenge(text: str, patterns: Iterable[str]) -> bool:
    lowered = (text or '').lower()
    return any(p.lower() in lowered for p in patterns if p)


def challenge_url(origin: str, src: Optional[str]) -> Optional[str]:
    if not src:
        return None
    return urljoin(origin.rstrip('/') + '/', src)


def classify(response: Any, origin: str, patterns: Iterable[str] = DEFAULT_CHALLENGE_PATTERNS) -> AuthResult:
    """Map a login RPC response onto an AuthResult."""
    if not isinstance(response, dict):
        return Rejected(reason=f"Unexpected login response type {type(response).__name__}")

    src = response.get('captchaSrc')
    if str(response.get('needCaptcha', '')) == '1' or src:
        return CaptchaRequired(challenge_url=challenge_url(origin, src), message=error_text(response))

    text = error_text(response)
    if text and matches_challenge(text, patterns):
        return CaptchaRequired(challenge_url=challenge_url(origin, src), message=text)

    if response.get('status') != 'OK':
        return Rejected(reason=text or 'Login failed', suspicious=matches_challenge(text, BLOCK_PATTERNS))

    context = {k: v for k, v in response.items() if k != 'err'}
    return AuthOk(context=context)


def raise_for_result(result: AuthResult) -> AuthResult:
    """Raise the matching error for a failed login; AuthOk and CaptchaRequired pass through."""
    if isinstance(result, Rejected):
        raise AuthRejected(result.reason, suspicious=result.suspicious)
    if isinstance(result, Transient):
        if isinstance(result.error, PortalError):
            raise result.error
        raise NetworkError(result.reason)
    return result


class AuthFlow:

    def __init__(self, transport: CookieTransport, subdomain: str = '',
                 patterns: Iterable[str] = DEFAULT_CHALLENGE_PATTERNS,
                 login_timeout: Optional[float] = None):
        self.transport = transport
        self.subdomain = subdomain
        self.patterns = tuple(patterns)
        self.login_timeout = login_timeout
        self.state = AuthState.IDLE

    @property
    def origin(self) -> str:
        return self.transport.origin

    def rpc(self, action: Optional[str], params: Mapping[str, Any], timeout: Optional[float] = None) -> Any:
        """POST /login/?cmd=MainLogin&akcia=<action> with rpcparams=<json>."""
        query = {'cmd': LOGIN_CMD}
        if action:
            query['akcia'] = action
        res = self.transport.post_form(LOGIN_PATH, {'rpcparams': compact_json(dict(params or {}))},
                                       params=query, timeout=timeout)
        try:
            return res.json()
        except ValueError as e:
            raise RpcParseError(f"login rpc {action} returned non-JSON body", res.text) from e

    def get_login_data(self) -> Optional[Dict[str, Any]]:
        """Optional ``getData`` call supplying tu/gu/au context; None when unavailable."""
        try:
            res = self.transport.get(LOGIN_PATH, params={'cmd': LOGIN_CMD, 'akcia': 'getData'})
            data = json.loads(res.text)
        except (PortalError, ValueError) as e:
            log.debug(f"login getData unavailable: {e}")
            return None
        return data if isinstance(data, dict) else None

    def get_token(self, username: str) -> Any:
        self.state = AuthState.TOKEN_REQUESTED
        return self.rpc('getToken', {'username': username, 'edupage': self.subdomain})

    def login(self, username: str, password: str, token: str, captcha_text: str = '',
              context: Optional[Mapping[str, Any]] = None) -> Any:
        self.state = AuthState.LOGGING_IN
        context = context or {}
        params = {
            'username': username,
            'password': password,
            'userToken': token,
            'edupage': self.subdomain,
            'ctxt': captcha_text or '',
            'tu': context.get('tu'),
            'gu': context.get('gu') or TIMETABLE_DASHBOARD,
            'au': context.get('au'),
        }
        return self.rpc('login', params, timeout=self.login_timeout)

    def _finish(self, result: AuthResult) -> AuthResult:
        if isinstance(result, AuthOk):
            self.state = AuthState.AUTHENTICATED
        elif isinstance(result, CaptchaRequired):
            self.state = AuthState.CAPTCHA_CHALLENGE
        elif isinstance(result, Rejected):
            self.state = AuthState.REJECTED
        else:
            self.state = AuthState.FAILED
        return result

    def run(self, username: str, password: str, captcha_text: str = '') -> AuthResult:
        """Full handshake. Never raises for portal or transport failures."""
        self.state = AuthState.IDLE
        try:
            context = self.get_login_data()
            token_res = self.get_token(username)
            token = token_res.get('token') if isinstance(token_res, dict) else None
            if not token:
                reason = error_text(token_res) or 'No token'
                log.warn(f"login token refused user={username} reason={reason}")
                return self._finish(Rejected(reason=reason))
            login_res = self.login(username, password, token, captcha_text=captcha_text, context=context)
        except PortalError as e:
            log.warn(f"login transient failure user={username} error={e}")
            return self._finish(Transient(error=e))

        result = classify(login_res, self.origin, self.patterns)
        if isinstance(result, CaptchaRequired):
            log.error(f"captcha required user={username} url={result.challenge_url or '-'}")
        elif isinstance(result, Rejected):
            log.warn(f"login rejected user={username} reason={result.reason}")
        else:
            log.info(f"login ok user={username}")
        return self._finish(result)


__all__ = [
    "AuthFlow",
    "AuthState",
    "AuthResult",
    "AuthOk",
    "CaptchaRequired",
    "Rejected",
    "Transient",
    "classify",
    "raise_for_result",
]

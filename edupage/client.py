"""Consumer facade: authenticate, then call protected endpoints.

Flow per sync attempt:

    backoff gate -> AuthFlow -> SessionWarmup -> RpcRetrySequencer -> payload

Only login and warmup outcomes feed the backoff controller. A fully
successful protected call clears it.
"""
from __future__ import annotations

import threading
from typing import Any, Callable, Mapping, Optional
from urllib.parse import parse_qs, urlparse

from . import backoff as backoff_mod
from .auth import AuthFlow, AuthOk, AuthResult, CaptchaRequired, Rejected, Transient
from .backoff import BackoffController, get_backoff
from .config import ClientConfig
from .errors import BackoffActive, NotAuthenticated, RpcParseError, SessionIncomplete, TokenNotFound
from .extractors import GSH_EXTRACTORS, extract_first
from .logger import Logger
from .sequencer import RpcRetrySequencer
from .session import Session
from .transport import CookieTransport
from .warmup import TIMETABLE_DASHBOARD, SessionWarmup, get_profile

log = Logger.bind(__name__)

TTVIEWER_PATH = '/timetable/server/ttviewerjs?_func=getTTViewerData'


def action_from_path(path: str) -> str:
    """RPC action name carried in the ``__func`` / ``_func`` query parameter."""
    qs = parse_qs(urlparse(path).query)
    for key in ('__func', '_func'):
        values = qs.get(key)
        if values and values[0]:
            return values[0]
    raise ValueError(f"no action given and none found in path {path}")


class PortalClient:

    def __init__(self, config: ClientConfig, backoff: Optional[BackoffController] = None,
                 session_factory: Callable[[ClientConfig], Session] = Session):
        self.config = config
        self.backoff = backoff or get_backoff(config.backoff_base, config.backoff_cap)
        self._session_factory = session_factory
        self._session: Optional[Session] = None
        self._swap_lock = threading.Lock()
        self.warmup = SessionWarmup(get_profile(config.warmup_profile, config.required_cookie))
        self.last_result: Optional[AuthResult] = None
        self.last_warmup_page: Optional[str] = None

    # ---- session lifecycle ----
    @property
    def session(self) -> Optional[Session]:
        return self._session

    def reset_session(self) -> Session:
        """Discard the current session and start a new, empty one."""
        with self._swap_lock:
            old = self._session
            self._session = self._session_factory(self.config)
        if old is not None:
            old.close()
        log.debug(f"session created host={self._session.host}")
        return self._session

    def _usable_session(self) -> Session:
        current = self._session
        if current is None or current.is_stale():
            return self.reset_session()
        return current

    def _require_session(self) -> Session:
        current = self._session
        if current is None or not current.authenticated or current.is_stale():
            raise NotAuthenticated("call authenticate() first")
        return current

    def _gate(self) -> None:
        if not self.backoff.may_proceed():
            state = self.backoff.snapshot()
            remaining = self.backoff.remaining()
            log.debug(f"[Backoff] skipping attempt, wait {remaining / 60.0:.0f} min (reason: {state.last_reason})")
            raise BackoffActive(remaining, state.last_reason)

    # ---- public API ----
    def authenticate(self, username: Optional[str] = None, password: Optional[str] = None,
                     captcha_text: str = '') -> AuthResult:
        """Log in and return the classified outcome.

        The backoff gate is checked first. A human-solved ``captcha_text`` is
        an explicit retry and bypasses the gate.
        """
        username = username or self.config.username
        password = password or self.config.password
        if not username or not password:
            raise ValueError("username and password are required")
        if not captcha_text:
            self._gate()

        # a solved captcha must go out on the session the challenge was issued to
        session = self._session if captcha_text else None
        if session is None or session.invalid:
            session = self._usable_session()
        with session.lock:
            session.authenticated = False
            flow = AuthFlow(
                CookieTransport(session),
                subdomain=self.config.portal_subdomain,
                patterns=self.config.challenge_patterns,
                login_timeout=self.config.login_timeout,
            )
            result = flow.run(username, password, captcha_text=captcha_text)
            self._record(result, session, captcha_solved=bool(captcha_text))
        self.last_result = result
        return result

    def _record(self, result: AuthResult, session: Session, captcha_solved: bool = False) -> None:
        if isinstance(result, AuthOk):
            session.mark_authenticated()
            if captcha_solved:
                self.backoff.release('captcha solved')
        elif isinstance(result, CaptchaRequired):
            # keep the session: the challenge is bound to its cookies
            self.backoff.record_failure('Captcha required by portal', backoff_mod.CAPTCHA_DELAY)
        elif isinstance(result, Rejected):
            if result.suspicious:
                self.backoff.record_failure(f"Suspected block: {result.reason}", backoff_mod.SUSPICIOUS_DELAY)
            else:
                self.backoff.record_failure(f"Login failed: {result.reason}", backoff_mod.REJECTED_DELAY)
            session.invalidate('login rejected')
        elif isinstance(result, Transient):
            if self.backoff.may_proceed():
                self.backoff.record_failure(f"Error: {result.reason}", backoff_mod.ERROR_DELAY)
            session.invalidate('login transient failure')

    def _warm_up(self, session: Session, transport: CookieTransport) -> None:
        try:
            self.last_warmup_page = self.warmup.ensure(transport)
        except SessionIncomplete as e:
            self.backoff.record_failure(f"Session incomplete: missing {e.cookie_name}",
                                        backoff_mod.ERROR_DELAY)
            session.invalidate(str(e))
            raise

    def call_protected(self, path: str, params: Optional[Mapping[str, Any]] = None,
                       action: Optional[str] = None) -> Any:
        """Warm up the session and perform a version-negotiated envelope RPC."""
        action = action or action_from_path(path)
        self._gate()
        session = self._require_session()
        with session.lock:
            transport = CookieTransport(session)
            self._warm_up(session, transport)
            sequencer = RpcRetrySequencer(
                transport,
                max_eqav=self.config.max_eqav,
                use_encryption=self.config.use_encryption,
                timeout=self.config.timeout,
            )
            payload = sequencer.call(path, action, params or {})
        self.backoff.record_success()
        return payload

    def call_json(self, path: str, payload: Any, referer: Optional[str] = None) -> Any:
        """Warm up the session, then JSON POST with browser-like headers."""
        self._gate()
        session = self._require_session()
        with session.lock:
            transport = CookieTransport(session)
            self._warm_up(session, transport)
            headers = {
                'Accept': 'application/json,*/*',
                'X-Requested-With': 'XMLHttpRequest',
                'Origin': transport.origin,
                'Referer': transport.absolute(referer or TIMETABLE_DASHBOARD),
            }
            res = transport.post_json(path, payload, headers=headers, timeout=self.config.timeout)
        try:
            return res.json()
        except ValueError as e:
            raise RpcParseError(f"{path} returned non-JSON body", res.text) from e

    def fetch_gsh(self) -> str:
        """Timetable viewer hash (``_gsh``) needed by the timetable RPCs."""
        session = self._require_session()
        with session.lock:
            transport = CookieTransport(session)
            res = transport.post_json(TTVIEWER_PATH, {'args': [None]},
                                      headers={'Accept': 'application/json,*/*'}, timeout=self.config.timeout)
        token = extract_first(res.text, GSH_EXTRACTORS)
        if not token and self.last_warmup_page:
            token = extract_first(self.last_warmup_page, GSH_EXTRACTORS)
        if not token:
            raise TokenNotFound(f"No _gsh in getTTViewerData response (status {res.status})")
        return token

    def close(self) -> None:
        with self._swap_lock:
            old, self._session = self._session, None
        if old is not None:
            old.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = ["PortalClient", "action_from_path", "TTVIEWER_PATH"]

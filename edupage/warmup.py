"""Page-fetch warmup that lets the portal attach secondary session cookies.

The protected endpoints silently answer with a "please reload" page when the
cookie is missing, so the check after the replay is cookie presence in the
jar, not the HTTP status of the pages.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from urllib.parse import quote

from .errors import SessionIncomplete
from .logger import Logger
from .transport import CookieTransport

log = Logger.bind(__name__)

DEFAULT_REQUIRED_COOKIE = 'PHPSESSID'


def dashboard_path(mode: str) -> str:
    """``/dashboard/eb.php?eqa=<base64(mode=...)>`` as the portal's own links build it."""
    eqa = base64.b64encode(f"mode={mode}".encode('utf-8')).decode('ascii')
    return f"/dashboard/eb.php?eqa={quote(eqa, safe='')}"


TIMETABLE_DASHBOARD = dashboard_path('timetable')


@dataclass(frozen=True)
class WarmupStep:
    path: str
    referer: str = ''


@dataclass(frozen=True)
class WarmupRequirement:
    steps: Tuple[WarmupStep, ...]
    required_cookie: str = DEFAULT_REQUIRED_COOKIE

    def with_cookie(self, name: str) -> "WarmupRequirement":
        return WarmupRequirement(steps=self.steps, required_cookie=name or self.required_cookie)


PROFILES: Dict[str, WarmupRequirement] = {
    'timetable': WarmupRequirement(steps=(
        WarmupStep('/user/', '/'),
        WarmupStep(TIMETABLE_DASHBOARD, '/user/'),
        WarmupStep('/timetable/', TIMETABLE_DASHBOARD),
    )),
    'dashboard': WarmupRequirement(steps=(
        WarmupStep('/user/', '/'),
        WarmupStep('/dashboard/eb.php', '/user/'),
    )),
}


def get_profile(name: str, required_cookie: str = '') -> WarmupRequirement:
    try:
        profile = PROFILES[name]
    except KeyError:
        raise KeyError(f"warmup profile not found: {name} (available: {', '.join(sorted(PROFILES))})") from None
    return profile.with_cookie(required_cookie) if required_cookie else profile


class SessionWarmup:

    def __init__(self, requirement: WarmupRequirement):
        self.requirement = requirement

    def ensure(self, transport: CookieTransport) -> Optional[str]:
        """Replay the warmup pages; return the last page text.

        Raises SessionIncomplete when the required cookie is absent afterward.
        """
        done = log.time_block("warmup")
        last_text: Optional[str] = None
        for step in self.requirement.steps:
            headers = {'Referer': transport.absolute(step.referer)} if step.referer else {}
            headers['Accept'] = 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'
            res = transport.request('GET', step.path, headers=headers)
            log.debug(f"warmup page path={step.path} status={res.status}")
            last_text = res.text
        done()

        session = transport.session
        cookie = self.requirement.required_cookie
        if not session.has_cookie(cookie):
            log.warn(f"warmup incomplete cookie={cookie} present={session.cookie_names()}")
            raise SessionIncomplete(cookie)
        return last_text


__all__ = [
    "SessionWarmup",
    "WarmupRequirement",
    "WarmupStep",
    "PROFILES",
    "get_profile",
    "dashboard_path",
    "TIMETABLE_DASHBOARD",
]

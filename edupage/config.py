"""Client configuration.

Values come from (lowest to highest priority):
  1. ``ClientConfig`` defaults
  2. ``config.json`` at the project root (or an explicit path)
  3. ``EDUPAGE_*`` environment variables
"""
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .logger import Logger

log = Logger.bind(__name__)

CONFIG_JSON_PATH = Path(__file__).resolve().parent.parent / 'config.json'

DEFAULT_USER_AGENT = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                      "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36")

# case-insensitive substrings of login error texts that mean "human verification needed"
DEFAULT_CHALLENGE_PATTERNS: Tuple[str, ...] = ('suspic', 'verdächt', 'verif', 'captcha')

_re_edupage_host = re.compile(r'^https?://([^./]+)\.edupage\.org', re.IGNORECASE)


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = ''
    username: str = ''
    password: str = ''
    # portal subdomain sent as "edupage" in auth RPCs; derived from base_url when empty
    subdomain: str = ''
    timeout: float = 25.0
    login_timeout: float = 25.0
    max_hops: int = 8
    max_eqav: int = 7
    # eqaz flag sent with every envelope; the portal accepts both, '1' mirrors the browser
    use_encryption: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = 'en-US,en;q=0.9'
    warmup_profile: str = 'timetable'
    required_cookie: str = ''
    session_max_age: float = 3600.0
    backoff_base: float = 5 * 60.0
    backoff_cap: float = 6 * 60 * 60.0
    challenge_patterns: Tuple[str, ...] = field(default=DEFAULT_CHALLENGE_PATTERNS)

    @property
    def origin(self) -> str:
        return (self.base_url or '').strip().rstrip('/')

    @property
    def portal_subdomain(self) -> str:
        if self.subdomain:
            return self.subdomain
        m = _re_edupage_host.match(self.origin)
        return m.group(1) if m else ''

    def redacted(self) -> Dict[str, Any]:
        """Field dict safe for logging."""
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        if out.get('password'):
            out['password'] = '***'
        return out


def _coerce(name: str, raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ('1', 'true', 'yes', 'y', 'on')
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, tuple):
        if isinstance(raw, str):
            return tuple(p.strip() for p in raw.split(',') if p.strip())
        return tuple(str(p) for p in raw)
    if raw is None:
        raise ValueError(f"config {name} must not be null")
    return str(raw).strip()


def _apply(config: ClientConfig, values: Mapping[str, Any], source: str) -> ClientConfig:
    defaults = {f.name: getattr(config, f.name) for f in fields(config)}
    changes: Dict[str, Any] = {}
    for key, raw in values.items():
        if key not in defaults:
            log.debug(f"config ignore unknown key={key} source={source}")
            continue
        try:
            changes[key] = _coerce(key, raw, defaults[key])
        except (TypeError, ValueError) as e:
            raise ValueError(f"invalid config value key={key} source={source}: {e}") from e
    return replace(config, **changes) if changes else config


def _read_json(path: Path) -> Dict[str, Any]:
    with path.open('r', encoding='utf-8') as f:
        data = json.load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return data


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> ClientConfig:
    """Build a ``ClientConfig`` from config.json and the environment."""
    config = ClientConfig()
    json_path = Path(path) if path else CONFIG_JSON_PATH
    if json_path.exists():
        config = _apply(config, _read_json(json_path), str(json_path))
        log.debug(f"config loaded path={json_path}")
    elif path:
        raise FileNotFoundError(str(json_path))

    env = os.environ if environ is None else environ
    env_values = {}
    for f in fields(config):
        key = f"EDUPAGE_{f.name.upper()}"
        if env.get(key, '') != '':
            env_values[f.name] = env[key]
    return _apply(config, env_values, 'env')


__all__ = ["ClientConfig", "load_config", "DEFAULT_CHALLENGE_PATTERNS"]

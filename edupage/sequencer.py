"""Version-negotiated envelope RPC.

The portal answers ``eqwd:`` ("wrong data") when it cannot read the envelope
variant it was sent; the client then retries with the next version ordinal.
That sentinel is the only thing retried here. Transport failures propagate.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping
from urllib.parse import urlencode

from . import codec
from .errors import RpcExhausted, RpcParseError
from .logger import Logger
from .transport import CookieTransport

log = Logger.bind(__name__)


def compact_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(',', ':'))


@dataclass(frozen=True)
class EnvelopeRequest:
    path: str
    action: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def form(self) -> str:
        """Canonical ``action=...&params=...`` string, URL-encoded."""
        return urlencode([('action', self.action), ('params', compact_json(dict(self.params)))])


class RpcRetrySequencer:

    def __init__(self, transport: CookieTransport, max_eqav: int = codec.DEFAULT_MAX_EQAV,
                 use_encryption: bool = True, timeout: float | None = None):
        if max_eqav < 1:
            raise ValueError(f"max_eqav must be >= 1, got {max_eqav}")
        self.transport = transport
        self.max_eqav = max_eqav
        self.use_encryption = use_encryption
        self.timeout = timeout

    def call(self, path: str, action: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.send(EnvelopeRequest(path=path, action=action, params=params or {}))

    def send(self, request: EnvelopeRequest) -> Any:
        form = request.form()
        for eqav in range(1, self.max_eqav + 1):
            attempt = codec.encode(form, eqav, max_eqav=self.max_eqav, use_encryption=self.use_encryption)
            res = self.transport.post_form(
                request.path,
                attempt.form(),
                params=attempt.query(),
                timeout=self.timeout,
            )
            body = res.text or ''
            if codec.is_rejected(body):
                log.debug(f"rpc {request.action} eqav={eqav} rejected (wrong data), renegotiating")
                continue
            return self._parse(request, codec.decode(body), eqav)
        log.warn(f"rpc {request.action} exhausted path={request.path} attempts={self.max_eqav}")
        raise RpcExhausted(request.path, self.max_eqav)

    def _parse(self, request: EnvelopeRequest, text: str, eqav: int) -> Any:
        try:
            payload = json.loads(text)
        except ValueError as e:
            raise RpcParseError(f"rpc {request.action} eqav={eqav} returned non-JSON body", text) from e
        log.debug(f"rpc {request.action} ok eqav={eqav}")
        return payload


__all__ = ["RpcRetrySequencer", "EnvelopeRequest", "compact_json"]

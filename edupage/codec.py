"""Envelope codec for the portal's wrapped RPC convention.

Requests and responses use two independent encodings:

    request   eqav odd  -> 'dz:' + base64(raw_deflate(utf8(form)))
              eqav even -> base64(utf8(form))
    response  'eqz:' + base64(utf8(text)) -> text, anything else unchanged

``eqacs`` is the SHA-1 hex digest of the exact ``eqap`` string sent,
marker included.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import zlib
from dataclasses import dataclass
from typing import Dict

from .errors import RpcParseError

COMPRESSED_MARKER = 'dz:'
RESPONSE_MARKER = 'eqz:'
REJECT_MARKER = 'eqwd:'
DEFAULT_MAX_EQAV = 7


@dataclass(frozen=True)
class EnvelopeAttempt:
    eqav: int
    use_compression: bool
    eqap: str
    eqacs: str
    eqaz: str
    max_eqav: int = DEFAULT_MAX_EQAV

    def form(self) -> Dict[str, str]:
        """Form-encoded body fields."""
        return {'eqap': self.eqap, 'eqacs': self.eqacs, 'eqaz': self.eqaz}

    def query(self) -> Dict[str, str]:
        return {'eqav': str(self.eqav), 'maxEqav': str(self.max_eqav)}


def sha1_hex(text: str) -> str:
    return hashlib.sha1(text.encode('utf-8')).hexdigest()


def raw_deflate(data: bytes) -> bytes:
    # wbits=-15: raw DEFLATE stream, no zlib header or checksum
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)
    return compressor.compress(data) + compressor.flush()


def encode(form: str, eqav: int, max_eqav: int = DEFAULT_MAX_EQAV, use_encryption: bool = True) -> EnvelopeAttempt:
    if eqav < 1:
        raise ValueError(f"eqav must be >= 1, got {eqav}")
    raw = form.encode('utf-8')
    use_compression = eqav % 2 == 1
    if use_compression:
        eqap = COMPRESSED_MARKER + base64.b64encode(raw_deflate(raw)).decode('ascii')
    else:
        eqap = base64.b64encode(raw).decode('ascii')
    return EnvelopeAttempt(
        eqav=eqav,
        use_compression=use_compression,
        eqap=eqap,
        eqacs=sha1_hex(eqap),
        eqaz='1' if use_encryption else '0',
        max_eqav=max_eqav,
    )


def decode(text: str) -> str:
    if not text.startswith(RESPONSE_MARKER):
        return text
    payload = text[len(RESPONSE_MARKER):].strip()
    payload += '=' * (-len(payload) % 4)
    try:
        return base64.b64decode(payload, validate=False).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as e:
        raise RpcParseError(f"malformed {RESPONSE_MARKER} envelope ({e})", text) from e


def is_rejected(text: str) -> bool:
    return text.startswith(REJECT_MARKER)


__all__ = [
    "EnvelopeAttempt",
    "encode",
    "decode",
    "is_rejected",
    "sha1_hex",
    "COMPRESSED_MARKER",
    "RESPONSE_MARKER",
    "REJECT_MARKER",
    "DEFAULT_MAX_EQAV",
]

"""Token extractor strategies.

Pages embed session tokens (``_gsh`` and friends) in several shapes that have
changed over time. Each strategy handles one shape; ``extract_first`` tries a
list in order and returns the first hit.
"""
from __future__ import annotations

import json
import re
from typing import Iterable, Optional, Pattern, Protocol, Sequence, Union

from bs4 import BeautifulSoup

from .logger import Logger

log = Logger.bind(__name__)


class TokenExtractor(Protocol):

    name: str

    def extract(self, text: str) -> Optional[str]:
        """Return the token or None."""


class RegexExtractor:

    def __init__(self, pattern: Union[str, Pattern[str]], group: int = 1, name: str = ''):
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self.group = group
        self.name = name or f"regex:{self.pattern.pattern}"

    def extract(self, text: str) -> Optional[str]:
        m = self.pattern.search(text or '')
        if not m:
            return None
        return m.group(self.group) or None


class JsonKeyExtractor:
    """Follow a dotted key path (``r._gsh``) into a JSON document."""

    def __init__(self, path: str, name: str = ''):
        self.keys = [k for k in path.split('.') if k]
        self.name = name or f"json:{path}"

    def extract(self, text: str) -> Optional[str]:
        try:
            node = json.loads(text)
        except (TypeError, ValueError):
            return None
        for key in self.keys:
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        if node is None or isinstance(node, (dict, list)):
            return None
        value = str(node)
        return value or None


class HiddenInputExtractor:
    """``<input name="..." value="...">`` anywhere in an HTML page."""

    def __init__(self, field_name: str, name: str = ''):
        self.field_name = field_name
        self.name = name or f"input:{field_name}"

    def extract(self, text: str) -> Optional[str]:
        if not text or '<' not in text:
            return None
        soup = BeautifulSoup(text, 'lxml')
        node = soup.find('input', attrs={'name': self.field_name})
        if node is None:
            return None
        value = (node.get('value') or '').strip()
        return value or None


def extract_first(text: str, extractors: Iterable[TokenExtractor]) -> Optional[str]:
    for extractor in extractors:
        value = extractor.extract(text)
        if value:
            log.debug(f"token extracted strategy={extractor.name}")
            return value
    return None


GSH_EXTRACTORS: Sequence[TokenExtractor] = (
    JsonKeyExtractor('r._gsh'),
    RegexExtractor(r'["\']?_gsh["\']?\s*[:=]\s*["\']([0-9a-fA-F]+)["\']', name='regex:_gsh-assign'),
    RegexExtractor(r'[?&]_gsh=([0-9a-fA-F]+)', name='regex:_gsh-query'),
    HiddenInputExtractor('_gsh'),
)


__all__ = [
    "TokenExtractor",
    "RegexExtractor",
    "JsonKeyExtractor",
    "HiddenInputExtractor",
    "extract_first",
    "GSH_EXTRACTORS",
]

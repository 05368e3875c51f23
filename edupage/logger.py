"""Logging setup and the thin `Logger` wrapper used across the client.

Policy:
  - Concise English messages, key=value pairs (callers pre-format strings)
  - Console: no timestamp
  - Never log passwords, tokens or full response bodies
"""
from __future__ import annotations

import json
import logging
import os
import sys
import time
from logging.config import dictConfig
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from colorama import Fore, Style
from colorama import init as colorama_init

LEVEL_STYLE: Dict[int, str] = {
    logging.DEBUG: Style.DIM + Fore.CYAN,
    logging.INFO: Style.NORMAL + Fore.GREEN,
    logging.WARNING: Style.NORMAL + Fore.YELLOW,
    logging.ERROR: Style.BRIGHT + Fore.RED,
    logging.CRITICAL: Style.BRIGHT + Fore.RED,
}

CONSOLE_FORMAT = "[ %(levelname)5s ] %(name)s : %(message)s"


class ColorFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base = super().format(record)
        prefix = LEVEL_STYLE.get(record.levelno)
        if not prefix:
            return base
        return f"{prefix}{base}{Style.RESET_ALL}"


def _level_from_env(default: int) -> int:
    raw = os.environ.get('EDUPAGE_LOG_LEVEL', '').strip().upper()
    if not raw:
        return default
    value = logging.getLevelName(raw)
    return value if isinstance(value, int) else default


def _apply_inline(level: int) -> None:
    colorama_init()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter(fmt=CONSOLE_FORMAT))
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)


def setup_logging(level: int = logging.INFO) -> None:
    """Initialize logging.

    Priority:
      1. log.config.json at CWD or project root (dictConfig)
      2. Inline color console handler

    ``EDUPAGE_LOG_LEVEL`` overrides ``level`` when set.
    """
    level = _level_from_env(level)
    candidates = [
        Path.cwd() / 'log.config.json',
        Path(__file__).resolve().parent.parent / 'log.config.json',
    ]
    for p in candidates:
        if not p.is_file():
            continue
        try:
            with p.open('r', encoding='utf-8') as f:
                data = json.load(f)
            dictConfig(data)
        except (OSError, ValueError) as e:
            print(f"[logging] config load fail {p}: {e}", file=sys.stderr)
            continue
        logging.getLogger().setLevel(level)
        logging.getLogger(__name__).debug(f"{p} loaded.")
        return
    _apply_inline(level)
    logging.getLogger(__name__).debug("inline logging config active")


_LOGGER = logging.getLogger


class Logger:
    """Named wrapper around stdlib loggers.

        log = Logger.bind(__name__)
        log.info("login ok user=...")
    """

    def __init__(self, name: Optional[str] = None):
        self._name = name or __name__

    @staticmethod
    def bind(name: str) -> "Logger":
        return Logger(name)

    @property
    def name(self) -> str:
        return self._name

    def debug(self, msg: str) -> None:
        _LOGGER(self._name).debug(msg)

    def info(self, msg: str) -> None:
        _LOGGER(self._name).info(msg)

    def warn(self, msg: str) -> None:
        _LOGGER(self._name).warning(msg)

    def error(self, msg: str) -> None:
        _LOGGER(self._name).error(msg)

    def exception(self, msg: Any) -> None:
        _LOGGER(self._name).exception(msg)

    def time_block(self, label: str) -> Callable[[], float]:
        """Return a closure that logs and returns elapsed ms when invoked.

        Usage:
            done = log.time_block("warmup")
            ... work ...
            done()
        """
        start = time.perf_counter()

        def _end() -> float:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            self.debug(f"{label} {elapsed_ms:.1f}ms")
            return elapsed_ms

        return _end


__all__ = ["Logger", "setup_logging", "ColorFormatter"]

from typing import Callable


class Console:
    """Interactive prompts for run.py. ``reader`` is swappable for tests."""

    reader: Callable[[str], str] = input

    @classmethod
    def _read(cls, prompt: str) -> str | None:
        try:
            return cls.reader(prompt).strip()
        except (EOFError, KeyboardInterrupt):  # noqa: PERF203
            print()
            return None

    @classmethod
    def confirm(cls, prompt: str) -> bool:
        while True:
            raw = cls._read(f"{prompt} [ y/n/q(uit) ] : ")
            if raw is None: return False
            raw = raw.lower()
            if not raw: continue
            if raw in ('q', 'quit'): return False
            if raw in ('y', 'yes'): return True
            if raw in ('n', 'no'): return False

    @classmethod
    def input_str(cls, prompt: str, allow_quit: bool = True) -> str:
        """Non-empty answer, or '' when the user quits."""
        while True:
            raw = cls._read(f"{prompt} : ")
            if raw is None: return ''
            if not raw: continue
            if allow_quit and raw.lower() in ('q', 'quit'): return ''
            return raw

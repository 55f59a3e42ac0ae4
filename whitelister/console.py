from __future__ import annotations

import sys
from typing import Callable, Iterator, Optional, TextIO, TypeVar

from .infra.errors import InputValidationError


T = TypeVar("T")


class Console:
    """Interactive prompt I/O.

    ``input_fn`` follows the contract of :func:`input`: it returns one line
    without its terminator and raises ``EOFError`` at end of input. Tests pass
    a scripted function instead of reading a terminal.
    """

    def __init__(self, input_fn: Callable[[str], str] = input, out: Optional[TextIO] = None):
        self._input = input_fn
        self._out = out

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    def say(self, message: str = "") -> None:
        print(message, file=self.out)

    def warn(self, message: str) -> None:
        self.say(f"WARNING: {message}")

    def ask(self, prompt: str, parse: Callable[[str], T]) -> T:
        """Prompt until ``parse`` accepts the answer. EOFError propagates."""
        while True:
            raw = self._input(prompt)
            try:
                return parse(raw)
            except InputValidationError as e:
                self.say(f"{e}. Please try again.")

    def ask_lines(self, prompt: str) -> Iterator[str]:
        """Yield non-blank lines until end of input (Ctrl-D on a terminal)."""
        self.say(prompt)
        while True:
            try:
                raw = self._input("")
            except EOFError:
                self.say()
                return
            line = raw.strip()
            if line:
                yield line

    def choose(self, prompt: str, choices: str) -> str:
        """Single-letter choice, case-insensitive. Returns the lower-case letter."""
        allowed = choices.lower()

        def _parse(raw: str) -> str:
            s = raw.strip().lower()
            if len(s) != 1 or s not in allowed:
                raise InputValidationError(f"answer one of: {', '.join(allowed)}")
            return s

        return self.ask(prompt, _parse)

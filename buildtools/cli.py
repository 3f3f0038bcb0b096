"""Terminal output: markup rendering, a logging handler and a log-backed writer."""

from __future__ import annotations

import logging
import re
import sys
from typing import TextIO

_RESET = "\x1b[0m"

_FOREGROUND = {
    "black": 30,
    "red": 31,
    "green": 32,
    "yellow": 33,
    "blue": 34,
    "magenta": 35,
    "cyan": 36,
    "lightgrey": 37,
    "darkgrey": 90,
    "lightred": 91,
    "lightgreen": 92,
    "lightyellow": 93,
    "lightblue": 94,
    "lightmagenta": 95,
    "lightcyan": 96,
    "white": 97,
}
_BACKGROUND = {f"bg-{name}": code + 10 for name, code in _FOREGROUND.items()}
_ATTRIBUTES = {
    "bold": (1, 22),
    "dim": (2, 22),
    "italic": (3, 23),
    "underline": (4, 24),
    "blink": (5, 25),
    "reverse": (7, 27),
    "hidden": (8, 28),
}
_FOREGROUND_RESET = 39
_BACKGROUND_RESET = 49

_TAG = re.compile(r"<(/?)([a-z-]+)>")


def _sgr(code: int) -> str:
    return f"\x1b[{code}m"


def render_markup(text: str) -> str:
    """Replace colour and style tags such as <green>...</green> with ANSI sequences."""
    stacks: dict[str, list[int]] = {"fg": [], "bg": []}

    def colour(kind: str, code: int, closing: bool, reset: int) -> str:
        stack = stacks[kind]
        if not closing:
            stack.append(code)
            return _sgr(code)
        if stack:
            stack.pop()
        return _sgr(stack[-1]) if stack else _sgr(reset)

    def replace(match: re.Match[str]) -> str:
        closing = match.group(1) == "/"
        name = match.group(2)
        if name in _FOREGROUND:
            return colour("fg", _FOREGROUND[name], closing, _FOREGROUND_RESET)
        if name in _BACKGROUND:
            return colour("bg", _BACKGROUND[name], closing, _BACKGROUND_RESET)
        if name in _ATTRIBUTES:
            on, off = _ATTRIBUTES[name]
            return _sgr(off if closing else on)
        return match.group(0)

    return _RESET + _TAG.sub(replace, text) + _RESET


class MarkupHandler(logging.Handler):
    """A logging handler writing each message, with its markup rendered, to a stream."""

    def __init__(self, stream: TextIO | None = None, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.stream = sys.stdout if stream is None else stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.stream.write(render_markup(record.getMessage()))
            self.stream.flush()
        except Exception:
            self.handleError(record)


class LogWriter:
    """A file-like object that logs every line written to it at info level."""

    def __init__(self, logger: logging.Logger) -> None:
        if not isinstance(logger, logging.Logger):
            raise TypeError(f"expected a logging.Logger, got {type(logger).__name__}")
        self.logger = logger

    def write(self, data: bytes | str) -> int:
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        for line in lines:
            self.logger.info("%s\n", line.removesuffix("\r"))
        return len(data)

    def flush(self) -> None:
        """Flush the handlers the logger writes through."""
        logger: logging.Logger | None = self.logger
        while logger is not None:
            for handler in logger.handlers:
                handler.flush()
            logger = logger.parent if logger.propagate else None


def is_verbose(logger: object) -> bool:
    """Whether the logger lets debug messages through."""
    if isinstance(logger, logging.Logger):
        return logger.getEffectiveLevel() <= logging.DEBUG
    return False
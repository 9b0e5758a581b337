"""Terminal output helpers: styled text, string buffers and fatal errors."""

from __future__ import annotations

import io
import os
import sys
from dataclasses import dataclass
from typing import Any, NoReturn


def _stream_is_tty(stream: Any) -> bool:
    try:
        return bool(stream is not None and stream.isatty())
    except (AttributeError, ValueError, OSError):
        return False


_IS_TERM = _stream_is_tty(sys.stdout) or _stream_is_tty(sys.stderr)


def is_terminal() -> bool:
    """Report whether stdout or stderr was a terminal at start-up."""
    return _IS_TERM


def _sgr(color: str | int) -> str:
    if isinstance(color, str) and color.startswith("#"):
        digits = color[1:]
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        if len(digits) != 6:
            raise ValueError(f"cli: invalid color '{color}'")
        try:
            r, g, b = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
        except ValueError:
            raise ValueError(f"cli: invalid color '{color}'") from None
        return f"38;2;{r};{g};{b}"
    try:
        n = int(color)
    except ValueError:
        raise ValueError(f"cli: invalid color '{color}'") from None
    if not 0 <= n <= 255:
        raise ValueError(f"cli: invalid color '{color}'")
    if n < 8:
        return str(30 + n)
    if n < 16:
        return str(90 + n - 8)
    return f"38;5;{n}"


@dataclass(frozen=True)
class Style:
    """A foreground colour plus an optional preset string.

    *color* forces colouring on or off; None means colour only when
    writing to a terminal and NO_COLOR is unset.
    """

    foreground: str | int | None = None
    value: str = ""
    color: bool | None = None

    def __post_init__(self) -> None:
        if self.foreground is not None:
            _sgr(self.foreground)

    def _colored(self) -> bool:
        if self.color is not None:
            return self.color
        return is_terminal() and not os.environ.get("NO_COLOR")

    def render(self, text: str | None = None) -> str:
        """Render the preset value followed by *text* with this style."""
        pieces = [self.value] if self.value else []
        if text is not None:
            pieces.append(text)
        out = " ".join(pieces)
        if not out or self.foreground is None or not self._colored():
            return out
        return f"\x1b[{_sgr(self.foreground)}m{out}\x1b[0m"

    def __str__(self) -> str:
        return self.render()


def fg(color: str | int, *args: str) -> Style:
    """Return a style with the given foreground colour and preset strings."""
    return Style(foreground=color, value=" ".join(args))


def _sprint(args: tuple[Any, ...]) -> str:
    # Spaces go between operands only when neither is a string.
    parts: list[str] = []
    prev_is_str = True
    for index, arg in enumerate(args):
        is_str = isinstance(arg, str)
        if index > 0 and not is_str and not prev_is_str:
            parts.append(" ")
        parts.append(str(arg))
        prev_is_str = is_str
    return "".join(parts)


def _sprintln(args: tuple[Any, ...]) -> str:
    return " ".join(str(arg) for arg in args) + "\n"


def _sprintf(fmt: str, args: tuple[Any, ...]) -> str:
    return fmt % args if args else fmt


class Buffer:
    """Accumulates text for display on a terminal; methods chain."""

    def __init__(self) -> None:
        self._out = io.StringIO()

    def print(self, *args: Any) -> Buffer:
        self._out.write(_sprint(args))
        return self

    def printf(self, fmt: str, *args: Any) -> Buffer:
        self._out.write(_sprintf(fmt, args))
        return self

    def println(self, *args: Any) -> Buffer:
        self._out.write(_sprintln(args))
        return self

    def stylef(self, style: Style, fmt: str, *args: Any) -> Buffer:
        self._out.write(style.render(_sprintf(fmt, args)))
        return self

    def styleln(self, style: Style, *args: Any) -> Buffer:
        self._out.write(style.render(_sprint(args)))
        self._out.write("\n")
        return self

    def write(self, text: str | bytes) -> int:
        """Append *text* (bytes are decoded as UTF-8) and return its length."""
        if isinstance(text, (bytes, bytearray)):
            length = len(text)
            self._out.write(bytes(text).decode("utf-8", errors="replace"))
            return length
        return self._out.write(text)

    def __str__(self) -> str:
        return self._out.getvalue()


_ERROR_STYLE = Style(foreground="#ac0000")


def _exit(message: str) -> NoReturn:
    print(_ERROR_STYLE.render("Error: ") + message, file=sys.stderr)
    raise SystemExit(1)


def fatal(*args: Any) -> NoReturn:
    """Print the arguments as an error message to stderr and exit with code 1."""
    _exit(_sprint(args))


def fatalf(fmt: str, *args: Any) -> NoReturn:
    """Format an error message, print it to stderr and exit with code 1."""
    _exit(_sprintf(fmt, args))


def ensure(statement: bool, *args: Any) -> None:
    """Call fatal with *args* if *statement* is false."""
    if not statement:
        fatal(*args)


def ensuref(statement: bool, fmt: str, *args: Any) -> None:
    """Call fatalf with *fmt* and *args* if *statement* is false."""
    if not statement:
        fatalf(fmt, *args)
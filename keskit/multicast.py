"""One-to-many writers and a writer that turns log lines into error log events."""

from __future__ import annotations

import threading
from typing import Any, Protocol

from .messages import ErrorLogEvent, to_json


class _Writer(Protocol):
    def write(self, data: bytes, /) -> Any: ...


class ShortWriteError(OSError):
    """Raised when a writer accepts fewer bytes than it was given."""

    def __init__(self) -> None:
        super().__init__("short write")


class Multicast:
    """Writes to a group of writers that may change concurrently.

    Adding a writer that is already a member does nothing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._group: tuple[_Writer, ...] = ()

    def __len__(self) -> int:
        return len(self._group)

    def add(self, writer: _Writer | None) -> None:
        """Add *writer*; future writes will also reach it."""
        if writer is None:
            return
        with self._lock:
            if any(member is writer for member in self._group):
                return
            self._group = (writer, *self._group)

    def remove(self, writer: _Writer | None) -> None:
        """Remove *writer*; future writes will no longer reach it."""
        if writer is None:
            return
        with self._lock:
            if not any(member is writer for member in self._group):
                return
            self._group = tuple(member for member in self._group if member is not writer)

    def write(self, data: bytes) -> int:
        """Write *data* to every member.

        All members are written to; the first failure is raised afterwards.
        """
        group = self._group
        if not group:
            return 0
        first: Exception | None = None
        for writer in group:
            try:
                written = writer.write(data)
            except Exception as exc:
                if first is None:
                    first = exc
                continue
            if written is not None and written < len(data) and first is None:
                first = ShortWriteError()
        if first is not None:
            raise first
        return len(data)


class LogWriter:
    """Encodes each write as a JSON error log event on the wrapped writer."""

    def __init__(self, writer: _Writer) -> None:
        self._writer = writer
        flush = getattr(writer, "flush", None)
        self._flush = flush if callable(flush) else None

    def write(self, data: bytes | str) -> int:
        """Write *data* as one event, without its trailing newline, and flush."""
        if not data:
            return 0
        size = len(data)
        if isinstance(data, str):
            text = data
        else:
            text = bytes(data).decode("utf-8", errors="replace")
        if text.endswith("\n"):
            text = text[:-1]
        line = to_json(ErrorLogEvent(message=text)) + "\n"
        self._writer.write(line.encode("utf-8"))
        if self._flush is not None:
            self._flush()
        return size
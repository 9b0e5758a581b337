"""API errors: the JSON error body sent to clients and reading it back."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any, BinaryIO

from .headers import CONTENT_LENGTH, CONTENT_TYPE, CONTENT_TYPE_HTML, CONTENT_TYPE_TEXT

# An error message should not exceed 5 KB.
_MAX_ERROR_SIZE = 5 * 1000


class APIError(Exception):
    """An error with an HTTP status code, as returned to or by a server.

    Status codes should lie in [400, 600): 4xx are client errors and
    5xx are server errors.
    """

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return self.message


def _is_api_error(err: BaseException) -> bool:
    if isinstance(err, APIError):
        return True
    status = getattr(err, "status", None)
    return isinstance(status, int) and not isinstance(status, bool)


def find_error(err: BaseException | None) -> BaseException | None:
    """Return the first error in *err*'s chain that carries an HTTP status.

    The chain is *err* itself followed by its cause (or unsuppressed
    context); exception groups are searched depth-first.
    """
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if _is_api_error(err):
            return err
        if isinstance(err, BaseExceptionGroup):
            for child in err.exceptions:
                found = find_error(child)
                if found is not None:
                    return found
            return None
        if err.__cause__ is not None:
            err = err.__cause__
        elif err.__suppress_context__:
            err = None
        else:
            err = err.__context__
    return None


def _escape(text: str) -> str:
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def encode_error(message: str) -> bytes:
    """Return the JSON body sent to a client for an error *message*."""
    encoded = _escape(json.dumps(message, ensure_ascii=False))
    return ('{"message":' + encoded + "\n}").encode("utf-8")


def _header(headers: Mapping[str, Any], name: str) -> str:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() != wanted:
            continue
        if isinstance(value, str):
            return value
        if isinstance(value, Sequence) and value:
            return str(value[0])
        return ""
    return ""


def _content_length(headers: Mapping[str, Any]) -> int:
    try:
        return int(_header(headers, CONTENT_LENGTH))
    except ValueError:
        return -1


def _read_message(headers: Mapping[str, Any], body: bytes | BinaryIO) -> str:
    size = _content_length(headers)
    if size <= 0 or size > _MAX_ERROR_SIZE:
        size = _MAX_ERROR_SIZE
    if isinstance(body, (bytes, bytearray, memoryview)):
        data = bytes(body)[:size]
    else:
        data = body.read(size) or b""

    if _header(headers, CONTENT_TYPE) in (CONTENT_TYPE_HTML, CONTENT_TYPE_TEXT):
        return data.decode("utf-8", errors="replace")

    text = data.decode("utf-8").lstrip()
    if not text:
        raise ValueError("EOF")
    value, _ = json.JSONDecoder().raw_decode(text)
    if not isinstance(value, dict):
        raise ValueError("json: error response is not an object")
    message = value.get("error")
    if message is None:
        return ""
    if not isinstance(message, str):
        raise ValueError("json: error message is not a string")
    return message


def read_error(status: int, headers: Mapping[str, Any], body: bytes | BinaryIO) -> APIError:
    """Build an APIError from an HTTP error response.

    The body is limited to a size reasonable for error messages. If the
    body cannot be read, the read failure becomes the error message.
    """
    try:
        message = _read_message(headers, body)
    except (ValueError, OSError) as exc:
        return APIError(status, str(exc))
    return APIError(status, message)
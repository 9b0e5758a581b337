"""Common HTTP header names, content types and Accept header matching."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

ACCEPT = "Accept"
AUTHORIZATION = "Authorization"
CONTENT_TYPE = "Content-Type"
CONTENT_LENGTH = "Content-Length"
ETAG = "ETag"
TRANSFER_ENCODING = "Transfer-Encoding"

FORWARDED = "Forwarded"
X_FORWARDED_FOR = "X-Forwarded-For"
X_FRAME_OPTIONS = "X-Frame-Options"

CONTENT_TYPE_BINARY = "application/octet-stream"
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_JSON_LINES = "application/x-ndjson"
CONTENT_TYPE_TEXT = "text/plain"
CONTENT_TYPE_HTML = "text/html"


def _matches(pattern: str, content_type: str) -> bool:
    if pattern == "*/*" or pattern == content_type:
        return True
    star = pattern.find("*")
    if star > 0 and pattern[star - 1] == "/":  # MIME patterns, like application/*
        return content_type.startswith(pattern[:star])
    return False


def accepts(headers: Mapping[str, Sequence[str] | str], content_type: str) -> bool:
    """Report whether the Accept header values in *headers* include *content_type*."""
    values = headers.get(ACCEPT)
    if not values:
        return False
    if isinstance(values, str):
        values = [values]
    return any(_matches(value, content_type) for value in values)
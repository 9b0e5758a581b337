import pytest

from keskit.headers import (
    ACCEPT,
    CONTENT_TYPE_BINARY,
    CONTENT_TYPE_HTML,
    CONTENT_TYPE_JSON,
    accepts,
)

ACCEPTS_CASES = [
    ({}, "", False),
    ({ACCEPT: []}, "", False),
    ({ACCEPT: [CONTENT_TYPE_JSON]}, CONTENT_TYPE_HTML, False),
    ({ACCEPT: [CONTENT_TYPE_HTML, CONTENT_TYPE_BINARY]}, CONTENT_TYPE_BINARY, True),
    ({ACCEPT: ["*/*"]}, CONTENT_TYPE_BINARY, True),
    ({ACCEPT: ["*/*"]}, CONTENT_TYPE_HTML, True),
    ({ACCEPT: ["*/*"]}, "", True),
    ({ACCEPT: ["*"]}, CONTENT_TYPE_HTML, False),
    ({ACCEPT: ["text/*"]}, CONTENT_TYPE_HTML, True),
    ({ACCEPT: ["text/*"]}, CONTENT_TYPE_JSON, False),
    ({ACCEPT: ["text*"]}, CONTENT_TYPE_HTML, False),
    ({ACCEPT: ["application/*"]}, CONTENT_TYPE_BINARY, True),
    ({ACCEPT: ["application/*"]}, CONTENT_TYPE_JSON, True),
]


@pytest.mark.parametrize("headers,content_type,expected", ACCEPTS_CASES)
def test_accepts(headers, content_type, expected):
    assert accepts(headers, content_type) is expected


def test_accepts_single_string_value():
    assert accepts({ACCEPT: "text/*"}, CONTENT_TYPE_HTML) is True
    assert accepts({ACCEPT: "text/*"}, CONTENT_TYPE_JSON) is False


def test_accepts_later_value_matches_after_failed_pattern():
    headers = {ACCEPT: ["text/*", CONTENT_TYPE_JSON]}
    assert accepts(headers, CONTENT_TYPE_JSON) is True
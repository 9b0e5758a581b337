"""An HTTP client that retries requests on temporary failures and 5xx replies."""

from __future__ import annotations

import http.client
import random
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import requests

_DEFAULT_RETRIES = 2
_DEFAULT_DELAY = 0.2
_DEFAULT_JITTER = 0.8

_TEMPORARY = (
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
    TimeoutError,
    EOFError,
    http.client.RemoteDisconnected,
    http.client.IncompleteRead,
)


class RetryError(Exception):
    """A request failed before a usable response was received."""

    def __init__(self, op: str, url: str, message: str) -> None:
        super().__init__(f'{op} "{url}": {message}')
        self.op = op
        self.url = url
        self.message = message


def drain_body(response: Any) -> None:
    """Read any remaining response body and close the response."""
    if response is None:
        return
    try:
        for _ in response.iter_content(8192):
            pass
    except (requests.RequestException, OSError, RuntimeError):
        pass
    finally:
        response.close()


def _chain(err: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    stack: list[Any] = [err]
    while stack:
        current = stack.pop()
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend((current.__cause__, current.__context__, getattr(current, "reason", None)))
        stack.extend(arg for arg in current.args if isinstance(arg, BaseException))


def is_temporary(err: BaseException | None) -> bool:
    """Report whether *err* is a timeout or a dropped connection."""
    if err is None:
        return False
    return any(isinstance(e, _TEMPORARY) for e in _chain(err))


def _resendable(data: Any) -> bool:
    if data is None or isinstance(data, (bytes, bytearray, str, Mapping, list, tuple)):
        return True
    return callable(getattr(data, "seek", None))


@dataclass
class Retry:
    """Sends requests and retries them on temporary errors or 5xx responses.

    Zero values for *n*, *delay* and *jitter* select 2 retries, a 0.2 s
    delay and 0.8 s of jitter. Each retry waits delay plus a random
    duration in [0, jitter).
    """

    session: requests.Session = field(default_factory=requests.Session)
    n: int = 0
    delay: float = 0.0
    jitter: float = 0.0
    timeout: float | None = None

    def get(self, url: str) -> requests.Response:
        return self.send(requests.Request("GET", url))

    def head(self, url: str) -> requests.Response:
        return self.send(requests.Request("HEAD", url))

    def post(self, url: str, content_type: str, body: Any) -> requests.Response:
        """POST *body*, which must be bytes, text or a seekable file."""
        return self.send(requests.Request("POST", url, headers={"Content-Type": content_type}, data=body))

    def post_form(self, url: str, data: Mapping[str, Any]) -> requests.Response:
        """POST *data* URL-encoded, with keys in sorted order."""
        body = urlencode(sorted(data.items()), doseq=True)
        return self.post(url, "application/x-www-form-urlencoded", body)

    def _pause(self) -> float:
        delay = self.delay or _DEFAULT_DELAY
        jitter = self.jitter or _DEFAULT_JITTER
        if jitter < 1e-6:
            unit = 1e-9
        elif jitter < 1e-3:
            unit = 1e-6
        else:
            unit = 1e-3
        return delay + random.randrange(max(1, round(jitter / unit))) * unit

    def _attempt(self, prepared: requests.PreparedRequest) -> tuple[requests.Response | None, Exception | None]:
        try:
            return self.session.send(prepared, stream=True, timeout=self.timeout), None
        except requests.RequestException as exc:
            return None, exc

    def send(self, request: requests.Request) -> requests.Response:
        """Send *request*, retrying on temporary errors and 5xx responses."""
        method = (request.method or "GET").upper()
        url = request.url
        body = request.data if request.data else None
        if not _resendable(body):
            raise RetryError(method, url, "http: request body is not seekable")
        seekable = body if callable(getattr(body, "seek", None)) else None

        prepared = self.session.prepare_request(request)
        retries = self.n or _DEFAULT_RETRIES

        resp, err = self._attempt(prepared)
        while retries > 0 and (is_temporary(err) or (resp is not None and resp.status_code >= 500)):
            if resp is not None:
                drain_body(resp)
                resp = None
            retries -= 1
            time.sleep(self._pause())
            if seekable is not None:
                seekable.seek(0)
                prepared.body = seekable
            resp, err = self._attempt(prepared)

        if is_temporary(err):
            if resp is not None:
                drain_body(resp)
            raise RetryError(method, url, f"http: temporary network error: {err}") from err
        if err is not None:
            raise err
        assert resp is not None
        return resp
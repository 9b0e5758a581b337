"""Authentication of requests forwarded by TLS proxies, and flushing writers."""

from __future__ import annotations

import hashlib
import ipaddress
import re
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote_plus

from cryptography import x509

from .apierror import APIError
from .certs import _decode_pem

IDENTITY_UNKNOWN = ""

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
Verifier = Callable[[x509.Certificate], list[list[x509.Certificate]]]


@dataclass
class ProxiedRequest:
    """An HTTP request together with the TLS state of its connection.

    *tls* is false for plain connections. Verification may replace the
    peer certificates and set the verified chains and the forwarded IP.
    """

    headers: Mapping[str, Sequence[str] | str] = field(default_factory=dict)
    tls: bool = True
    peer_certificates: list[x509.Certificate] = field(default_factory=list)
    verified_chains: list[list[x509.Certificate]] = field(default_factory=list)
    forwarded_ip: IPAddress | None = None


def _header_values(headers: Mapping[str, Sequence[str] | str], name: str) -> list[str] | None:
    wanted = name.lower()
    found: list[str] | None = None
    for key, value in headers.items():
        if key.lower() != wanted:
            continue
        values = [value] if isinstance(value, str) else list(value)
        found = (found or []) + values
    return found


def _is_ca(cert: x509.Certificate) -> bool:
    try:
        return bool(cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca)
    except x509.ExtensionNotFound:
        return False


def _der_elements(data: bytes) -> Iterator[tuple[int, bytes, bytes]]:
    pos = 0
    while pos < len(data):
        start = pos
        tag = data[pos]
        length = data[pos + 1]
        pos += 2
        if length & 0x80:
            count = length & 0x7F
            length = int.from_bytes(data[pos:pos + count], "big")
            pos += count
        end = pos + length
        yield tag, data[start:end], data[pos:end]
        pos = end


def _raw_spki(cert: x509.Certificate) -> bytes:
    _, _, tbs = next(_der_elements(cert.tbs_certificate_bytes))
    items = list(_der_elements(tbs))
    if items and items[0][0] == 0xA0:  # explicit version
        items = items[1:]
    return items[5][1]


def identify(request: ProxiedRequest) -> str:
    """Return the identity of the request's client certificate.

    The identity is the hex SHA-256 of the certificate's public key info.
    Without TLS or without exactly one non-CA certificate it is unknown ("").
    """
    if not request.tls:
        return IDENTITY_UNKNOWN
    leaves = [cert for cert in request.peer_certificates if not _is_ca(cert)]
    if len(leaves) != 1:
        return IDENTITY_UNKNOWN
    return hashlib.sha256(_raw_spki(leaves[0])).hexdigest()


_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _query_unescape(text: str) -> str:
    if _BAD_ESCAPE.search(text):
        raise ValueError("invalid URL escape")
    return unquote_plus(text)


def _split_host(hostport: str) -> str | None:
    colon = hostport.rfind(":")
    if colon < 0:
        return None
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0 or end + 1 != colon:
            return None
        return hostport[1:end]
    host = hostport[:colon]
    if ":" in host or "[" in host or "]" in host:
        return None
    return host


def _forwarded_ip(value: str) -> IPAddress | None:
    # "unknown" is the RFC 7239 identifier for unknown sources.
    if not value or value == "unknown":
        return None
    # In a chain of proxies the first address is the client's.
    value = value.split(",", 1)[0]
    host = _split_host(value)
    try:
        return ipaddress.ip_address(host if host is not None else value)
    except ValueError:
        return None


def _invalid_certificate() -> APIError:
    return APIError(400, "invalid client certificate")


class TLSProxy:
    """Recognises known TLS proxies and adopts the client they forward.

    The proxy must send the client certificate, URL-escaped PEM, in the
    *cert_header* header. If a *verifier* is set, it is called with the
    forwarded certificate and returns the verified chains or raises.
    """

    def __init__(self, cert_header: str = "", verifier: Verifier | None = None) -> None:
        self.cert_header = cert_header
        self.verifier = verifier
        self._lock = threading.Lock()
        self._identities: set[str] = set()

    def is_proxy(self, identity: str) -> bool:
        """Report whether *identity* belongs to a known TLS proxy."""
        with self._lock:
            return identity in self._identities

    def add(self, identity: str) -> None:
        """Register *identity* as a TLS proxy; the unknown identity is ignored."""
        if identity == IDENTITY_UNKNOWN:
            return
        with self._lock:
            self._identities.add(identity)

    def verify(self, request: ProxiedRequest) -> None:
        """Check the request's client certificate and adopt a forwarded client.

        Raises APIError if the request is not acceptable.
        """
        if not request.tls:
            raise APIError(400, "insecure connection: TLS required")

        # A proxy may also send intermediate or root CA certificates.
        leaves = [cert for cert in request.peer_certificates if not _is_ca(cert)]
        if not leaves:
            raise APIError(400, "no client certificate is present")
        if len(leaves) > 1:
            raise APIError(400, "too many client certificates are present")
        request.peer_certificates = leaves

        identity = identify(request)
        if identity == IDENTITY_UNKNOWN:
            raise APIError(403, "not authorized: insufficient permissions")
        if not self.is_proxy(identity):
            return

        cert = self.client_certificate(request.headers)
        request.peer_certificates = [cert]
        request.verified_chains = []
        if self.verifier is not None:
            try:
                request.verified_chains = self.verifier(cert)
            except Exception:
                raise APIError(403, "") from None

        forwarded = _header_values(request.headers, "X-Forwarded-For")
        if forwarded:
            ip = _forwarded_ip(forwarded[0])
            if ip is not None:
                request.forwarded_ip = ip

    def client_certificate(self, headers: Mapping[str, Sequence[str] | str]) -> x509.Certificate:
        """Extract the URL-escaped PEM client certificate forwarded in *headers*."""
        values = _header_values(headers, self.cert_header)
        if not values:
            raise APIError(400, "no client certificate is present")
        if len(values) != 1:
            raise APIError(400, "too many client certificates are present")
        try:
            text = _query_unescape(values[0])
        except ValueError:
            raise _invalid_certificate() from None
        block, _ = _decode_pem(text.encode("utf-8"))
        if block is None or block.type != "CERTIFICATE":
            raise _invalid_certificate()
        try:
            return x509.load_der_x509_certificate(block.bytes)
        except ValueError:
            raise _invalid_certificate() from None


class FlushOnWrite:
    """Wraps a response writer and flushes it after every successful write."""

    def __init__(self, writer: Any) -> None:
        self.writer = writer
        flush = getattr(writer, "flush", None)
        self._flush = flush if callable(flush) else None

    @property
    def headers(self) -> Any:
        return self.writer.headers

    def write_header(self, code: int) -> None:
        self.writer.write_header(code)

    def write(self, data: bytes) -> Any:
        """Write *data* to the wrapped writer, then flush it."""
        written = self.writer.write(data)
        if self._flush is not None:
            self._flush()
        return written

    def flush(self) -> None:
        """Flush the wrapped writer, if it can be flushed."""
        if self._flush is not None:
            self._flush()
"""Loading TLS certificates, private keys and CA certificate pools from PEM files."""

from __future__ import annotations

import base64
import binascii
import os
import re
import ssl
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes


@dataclass(frozen=True)
class _PEMBlock:
    type: str
    headers: dict[str, str]
    bytes: bytes


_BEGIN = re.compile(rb"(?:\A|\n)-----BEGIN ([^\r\n]*?)-----[ \t]*\r?\n")


def _parse_body(kind: bytes, body: bytes) -> _PEMBlock | None:
    lines = body.replace(b"\r\n", b"\n").split(b"\n")
    headers: dict[str, str] = {}
    idx = 0
    if lines and b":" in lines[0]:
        while idx < len(lines) and lines[idx].strip():
            key, sep, value = lines[idx].partition(b":")
            if not sep:
                return None
            headers[key.strip().decode("latin-1")] = value.strip().decode("latin-1")
            idx += 1
        idx += 1
    encoded = b"".join(line.strip() for line in lines[idx:])
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return None
    return _PEMBlock(kind.decode("latin-1"), headers, raw)


def _decode_pem(data: bytes) -> tuple[_PEMBlock | None, bytes]:
    """Find the next PEM block in *data*; return it and the remaining data."""
    pos = 0
    while True:
        match = _BEGIN.search(data, pos)
        if match is None:
            return None, data
        kind = match.group(1)
        end_marker = b"-----END " + kind + b"-----"
        end = data.find(end_marker, match.end())
        if end >= 0:
            block = _parse_body(kind, data[match.end():end])
            tail = data[end + len(end_marker):].lstrip(b" \t")
            if block is not None and (not tail or tail[:1] in (b"\n", b"\r")):
                rest = tail[2:] if tail.startswith(b"\r\n") else tail[1:]
                return block, rest
        pos = match.start() + 1


def _encode_pem(block: _PEMBlock) -> bytes:
    lines = [f"-----BEGIN {block.type}-----"]
    if block.headers:
        names = sorted(name for name in block.headers if name != "Proc-Type")
        if "Proc-Type" in block.headers:
            names.insert(0, "Proc-Type")
        lines.extend(f"{name}: {block.headers[name]}" for name in names)
        lines.append("")
    encoded = base64.b64encode(block.bytes).decode("ascii")
    lines.extend(encoded[i:i + 64] for i in range(0, len(encoded), 64))
    lines.append(f"-----END {block.type}-----")
    return ("\n".join(lines) + "\n").encode("ascii")


def _blocks(data: bytes) -> list[_PEMBlock]:
    blocks = []
    while data:
        block, data = _decode_pem(data)
        if block is None:
            break
        blocks.append(block)
    return blocks


def filter_pem(pem_blocks: bytes, predicate: Callable[[_PEMBlock], bool]) -> bytes:
    """Check every PEM block of *pem_blocks* with *predicate*.

    Returns the data with surrounding whitespace removed. Raises ValueError
    if the data is not PEM or a block does not pass the predicate.
    """
    pem_blocks = bytes(pem_blocks).strip()
    rest = pem_blocks
    while rest:
        block, rest = _decode_pem(rest)
        if block is None:
            raise ValueError("https: no valid PEM data")
        if not predicate(block):
            raise ValueError("https: unsupported PEM data block")
    return pem_blocks


def _is_private_key(kind: str) -> bool:
    return kind == "PRIVATE KEY" or kind.endswith(" PRIVATE KEY")


def _read_certificate(path: str | os.PathLike[str]) -> bytes:
    data = Path(path).read_bytes()
    return filter_pem(data, lambda block: block.type == "CERTIFICATE")


def _read_private_key(path: str | os.PathLike[str], password: str | None) -> PrivateKeyTypes:
    data = filter_pem(
        Path(path).read_bytes(),
        lambda block: block.type == "CERTIFICATE" or _is_private_key(block.type),
    )
    for block in _blocks(data):
        if not _is_private_key(block.type):
            continue
        if "DEK-Info" in block.headers:
            if not password:
                raise ValueError("https: private key is encrypted: password required")
            return serialization.load_pem_private_key(_encode_pem(block), password=password.encode())
        try:
            return serialization.load_pem_private_key(_encode_pem(block), password=None)
        except TypeError as exc:
            raise ValueError(str(exc)) from None
    raise ValueError("https: no PEM-encoded private key found")


def _spki(key: object) -> bytes:
    return key.public_bytes(  # type: ignore[attr-defined]
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


@dataclass(frozen=True)
class TLSCertificate:
    """A certificate chain, leaf first, together with the leaf's private key."""

    certificates: list[x509.Certificate]
    private_key: PrivateKeyTypes = field(repr=False)

    @property
    def leaf(self) -> x509.Certificate:
        return self.certificates[0]


def certificate_from_file(
    cert_file: str | os.PathLike[str],
    key_file: str | os.PathLike[str],
    password: str | None = None,
) -> TLSCertificate:
    """Load a certificate chain and its private key from PEM files.

    A legacy encrypted PEM private key is decrypted with *password*. That
    encryption does not authenticate the ciphertext and is insecure.
    """
    cert_data = _read_certificate(cert_file)
    key = _read_private_key(key_file, password)
    certificates = [x509.load_der_x509_certificate(block.bytes) for block in _blocks(cert_data)]
    if not certificates:
        raise ValueError("tls: failed to find any PEM data in certificate input")
    if _spki(certificates[0].public_key()) != _spki(key.public_key()):
        raise ValueError("tls: private key does not match public key")
    return TLSCertificate(certificates=certificates, private_key=key)


def _append_certificate(context: ssl.SSLContext, filename: str) -> None:
    data = _read_certificate(filename)
    try:
        if not data:
            raise ValueError("empty")
        x509.load_pem_x509_certificates(data)
        context.load_verify_locations(cadata=data.decode("ascii"))
    except (ValueError, ssl.SSLError, UnicodeDecodeError):
        raise ValueError(f"https: failed to add '{filename}' as CA certificate") from None


def cert_pool_from_file(filename: str | os.PathLike[str]) -> ssl.SSLContext:
    """Return a TLS context trusting the system roots plus the given CA certificates.

    If *filename* is a directory, every regular entry in it is loaded as a
    PEM certificate file; sub-directories are skipped.
    """
    name = os.fspath(filename)
    is_dir = Path(name).is_dir() if os.stat(name) else False
    context = ssl.create_default_context()
    if not is_dir:
        _append_certificate(context, name)
        return context
    with os.scandir(name) as entries:
        files = sorted(entries, key=lambda entry: entry.name)
    for entry in files:
        if entry.is_dir(follow_symlinks=False):
            continue
        _append_certificate(context, os.path.join(name, entry.name))
    return context
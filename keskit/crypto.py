"""Secret keys, HMAC keys and their versioned, encoded representation."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import re
import struct
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from . import fips
from .ciphertext import DecryptError, parse_ciphertext

SECRET_KEY_SIZE = 32
HMAC_KEY_SIZE = 32
_RAND_SIZE = 28
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SecretKeyType(IntEnum):
    """Secret key types; keys of different types are not compatible."""

    AES256 = 1
    CHACHA20 = 2

    def __str__(self) -> str:
        return "AES256" if self is SecretKeyType.AES256 else "ChaCha20"


class Hash(IntEnum):
    """Cryptographic hash functions for HMAC keys."""

    SHA256 = 1

    def __str__(self) -> str:
        return "SHA256"


def parse_secret_key_type(name: str) -> SecretKeyType:
    """Parse a secret key type name, including legacy names."""
    if name in ("AES256", "AES256-GCM_SHA256"):
        return SecretKeyType.AES256
    if name in ("ChaCha20", "XCHACHA20-POLY1305"):
        return SecretKeyType.CHACHA20
    raise ValueError(f"crypto: secret key type '{name}' is not supported")


_MASK = 0xFFFFFFFF


def _rotl(v: int, c: int) -> int:
    return ((v << c) & _MASK) | (v >> (32 - c))


def _quarter_round(s: list[int], a: int, b: int, c: int, d: int) -> None:
    s[a] = (s[a] + s[b]) & _MASK
    s[d] = _rotl(s[d] ^ s[a], 16)
    s[c] = (s[c] + s[d]) & _MASK
    s[b] = _rotl(s[b] ^ s[c], 12)
    s[a] = (s[a] + s[b]) & _MASK
    s[d] = _rotl(s[d] ^ s[a], 8)
    s[c] = (s[c] + s[d]) & _MASK
    s[b] = _rotl(s[b] ^ s[c], 7)


def hchacha20(key: bytes, nonce: bytes) -> bytes:
    """Derive a 32-byte subkey from a 32-byte key and a 16-byte nonce."""
    if len(key) != 32:
        raise ValueError("crypto: hchacha20 key must be 32 bytes")
    if len(nonce) != 16:
        raise ValueError("crypto: hchacha20 nonce must be 16 bytes")
    s = [
        0x61707865, 0x3320646E, 0x79622D32, 0x6B206574,
        *struct.unpack("<8I", key),
        *struct.unpack("<4I", nonce),
    ]
    for _ in range(10):
        _quarter_round(s, 0, 4, 8, 12)
        _quarter_round(s, 1, 5, 9, 13)
        _quarter_round(s, 2, 6, 10, 14)
        _quarter_round(s, 3, 7, 11, 15)
        _quarter_round(s, 0, 5, 10, 15)
        _quarter_round(s, 1, 6, 11, 12)
        _quarter_round(s, 2, 7, 8, 13)
        _quarter_round(s, 3, 4, 9, 14)
    return struct.pack("<8I", *s[0:4], *s[12:16])


class _Reader(Protocol):
    def read(self, n: int) -> bytes: ...


def _read_random(random: _Reader | None, n: int) -> bytes:
    if random is None:
        return os.urandom(n)
    data = random.read(n)
    if len(data) != n:
        raise ValueError("crypto: not enough random bytes")
    return data


@dataclass(frozen=True)
class SecretKey:
    """A 256-bit key for authenticated encryption."""

    cipher: SecretKeyType
    key: bytes = field(repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "cipher", SecretKeyType(self.cipher))
        object.__setattr__(self, "key", bytes(self.key))
        if len(self.key) != SECRET_KEY_SIZE:
            raise ValueError(f"crypto: invalid key length '{len(self.key)}' for '{self.cipher}'")

    def overhead(self) -> int:
        """Return the size difference between a plaintext and its ciphertext."""
        return _RAND_SIZE + 16

    def _check_fips(self) -> None:
        if fips.ENABLED and self.cipher is not SecretKeyType.AES256:
            raise ValueError("crypto: cipher not available in FIPS mode")

    def _aead(self, iv: bytes) -> AESGCM | ChaCha20Poly1305:
        if self.cipher is SecretKeyType.AES256:
            return AESGCM(hmac.new(self.key, iv, hashlib.sha256).digest())
        return ChaCha20Poly1305(hchacha20(self.key, iv))

    def encrypt(self, plaintext: bytes, associated_data: bytes | None = None) -> bytes:
        """Encrypt *plaintext* and authenticate it together with *associated_data*."""
        self._check_fips()
        random = os.urandom(_RAND_SIZE)
        iv, nonce = random[:16], random[16:]
        sealed = self._aead(iv).encrypt(nonce, bytes(plaintext), associated_data or None)
        return sealed + random

    def decrypt(self, ciphertext: bytes, associated_data: bytes | None = None) -> bytes:
        """Decrypt and authenticate *ciphertext*; raises DecryptError on failure."""
        self._check_fips()
        data = parse_ciphertext(ciphertext)
        if len(data) <= _RAND_SIZE:
            raise DecryptError()
        sealed, random = data[:-_RAND_SIZE], data[-_RAND_SIZE:]
        iv, nonce = random[:16], random[16:]
        try:
            return self._aead(iv).decrypt(nonce, sealed, associated_data or None)
        except InvalidTag:
            raise DecryptError() from None


@dataclass(frozen=True)
class HMACKey:
    """A 256-bit key for computing HMAC checksums."""

    hash: Hash
    key: bytes = field(repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "hash", Hash(self.hash))
        object.__setattr__(self, "key", bytes(self.key))
        if len(self.key) != HMAC_KEY_SIZE:
            raise ValueError(f"crypto: invalid key length '{len(self.key)}' for '{self.hash}'")

    def sum(self, message: bytes) -> bytes:
        """Compute the HMAC checksum of *message*."""
        return hmac.new(self.key, bytes(message), hashlib.sha256).digest()

    def equal(self, mac1: bytes, mac2: bytes) -> bool:
        """Compare two checksums in constant time."""
        return hmac.compare_digest(bytes(mac1), bytes(mac2))


def generate_secret_key(cipher: SecretKeyType, random: _Reader | None = None) -> SecretKey:
    """Generate a random secret key; *random* defaults to the OS source."""
    return SecretKey(cipher, _read_random(random, SECRET_KEY_SIZE))


def generate_hmac_key(hash: Hash, random: _Reader | None = None) -> HMACKey:
    """Generate a random HMAC key; *random* defaults to the OS source."""
    return HMACKey(hash, _read_random(random, HMAC_KEY_SIZE))


@dataclass(frozen=True)
class KeyVersion:
    """One version of a secret key with its metadata."""

    key: SecretKey | None = None
    hmac_key: HMACKey | None = None
    created_at: datetime | None = None
    created_by: str = ""

    def has_hmac_key(self) -> bool:
        """Report whether this version has an HMAC key (older keys do not)."""
        return self.hmac_key is not None


# Protocol buffer wire format.

def _varint(n: int) -> bytes:
    n &= (1 << 64) - 1
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def _field_varint(num: int, value: int) -> bytes:
    return _varint(num << 3) + _varint(value) if value else b""


def _field_bytes(num: int, value: bytes) -> bytes:
    return _varint(num << 3 | 2) + _varint(len(value)) + value if value else b""


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise ValueError("crypto: truncated protobuf data")
        b = data[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        if not b & 0x80:
            return result & ((1 << 64) - 1), pos
    raise ValueError("crypto: invalid protobuf varint")


def _fields(data: bytes) -> Iterator[tuple[int, int | bytes]]:
    pos = 0
    while pos < len(data):
        tag, pos = _read_varint(data, pos)
        num, wire = tag >> 3, tag & 7
        if wire == 0:
            value, pos = _read_varint(data, pos)
            yield num, value
        elif wire == 2:
            size, pos = _read_varint(data, pos)
            if pos + size > len(data):
                raise ValueError("crypto: truncated protobuf data")
            yield num, data[pos : pos + size]
            pos += size
        elif wire in (1, 5):
            pos += 8 if wire == 1 else 4
            if pos > len(data):
                raise ValueError("crypto: truncated protobuf data")
        else:
            raise ValueError(f"crypto: unsupported protobuf wire type '{wire}'")


def _message(data: bytes) -> dict[int, int | bytes]:
    return dict(_fields(data))


def _encode_secret_key(key: SecretKey | None) -> bytes:
    if key is None:
        raise ValueError("crypto: secret key is not initialized")
    return _field_bytes(1, key.key) + _field_varint(2, int(key.cipher))


def _encode_hmac_key(key: HMACKey | None) -> bytes:
    if key is None:
        raise ValueError("crypto: HMAC key is not initialized")
    return _field_bytes(1, key.key) + _field_varint(2, int(key.hash))


def _encode_time(t: datetime) -> bytes:
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    delta = t - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return _field_varint(1, seconds) + _field_varint(2, delta.microseconds * 1000)


def encode_key_version(version: KeyVersion) -> bytes:
    """Encode *version* as base64 of its binary representation."""
    body = _field_bytes(1, _encode_secret_key(version.key)) or _varint(1 << 3 | 2) + b"\x00"
    body += _field_bytes(2, _encode_hmac_key(version.hmac_key))
    if version.created_at is not None:
        body += _varint(3 << 3 | 2) + _varint(len(ts := _encode_time(version.created_at))) + ts
    body += _field_bytes(4, version.created_by.encode())
    return base64.b64encode(body)


def _bytes_of(msg: dict[int, int | bytes], num: int) -> bytes:
    value = msg.get(num, b"")
    if not isinstance(value, bytes):
        raise ValueError("crypto: invalid protobuf field")
    return value


def _int_of(msg: dict[int, int | bytes], num: int) -> int:
    value = msg.get(num, 0)
    if not isinstance(value, int):
        raise ValueError("crypto: invalid protobuf field")
    return value


def _decode_secret_key(data: bytes) -> SecretKey:
    msg = _message(data)
    key, kind = _bytes_of(msg, 1), _int_of(msg, 2)
    if len(key) != SECRET_KEY_SIZE:
        raise ValueError(f"crypto: invalid secret key length '{len(key)}'")
    if kind not in (SecretKeyType.AES256, SecretKeyType.CHACHA20):
        raise ValueError(f"crypto: invalid secret key type '{kind}'")
    return SecretKey(SecretKeyType(kind), key)


def _decode_hmac_key(data: bytes) -> HMACKey:
    msg = _message(data)
    key, kind = _bytes_of(msg, 1), _int_of(msg, 2)
    if len(key) != HMAC_KEY_SIZE:
        raise ValueError(f"crypto: invalid HMAC key length '{len(key)}'")
    if kind != Hash.SHA256:
        raise ValueError(f"crypto: invalid HMAC key hash '{kind}'")
    return HMACKey(Hash(kind), key)


def _decode_time(data: bytes) -> datetime:
    msg = _message(data)
    seconds, nanos = _int_of(msg, 1), _int_of(msg, 2)
    if seconds >= 1 << 63:
        seconds -= 1 << 64
    if nanos >= 1 << 31:
        nanos -= 1 << 64
    return _EPOCH + timedelta(seconds=seconds, microseconds=nanos // 1000)


_FRACTION = re.compile(r"(\.\d{6})\d+")


def _parse_time(text: str) -> datetime:
    t = datetime.fromisoformat(_FRACTION.sub(r"\1", text))
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)


def _parse_json_version(value: Any) -> KeyVersion:
    if not isinstance(value, dict):
        raise ValueError("crypto: invalid key version")
    raw = value.get("bytes") or ""
    algorithm = value.get("algorithm") or ""
    created_at = value.get("created_at")
    created_by = value.get("created_by") or ""
    if not all(isinstance(v, str) for v in (raw, algorithm, created_by)):
        raise ValueError("crypto: invalid key version")
    cipher = parse_secret_key_type(algorithm) if algorithm else SecretKeyType.AES256
    key = SecretKey(cipher, base64.b64decode(raw, validate=True))
    when = None
    if created_at is not None:
        if not isinstance(created_at, str):
            raise ValueError("crypto: invalid created_at timestamp")
        when = _parse_time(created_at)
    return KeyVersion(key=key, created_at=when, created_by=created_by)


def parse_key_version(data: bytes | str) -> KeyVersion:
    """Parse an encoded key version, either legacy JSON or base64 binary."""
    if isinstance(data, str):
        data = data.encode()
    try:
        value = json.loads(data)
    except ValueError:
        pass
    else:
        return _parse_json_version(value)

    msg = _message(base64.b64decode(data, validate=True))
    created_at = _decode_time(msg[3]) if isinstance(msg.get(3), bytes) else None
    return KeyVersion(
        key=_decode_secret_key(_bytes_of(msg, 1)),
        hmac_key=_decode_hmac_key(_bytes_of(msg, 2)),
        created_at=created_at,
        created_by=_bytes_of(msg, 4).decode(),
    )
"""Parsing of legacy structured ciphertext formats (MessagePack and JSON)."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any

import msgpack

_IV_SIZE = 16
_NONCE_SIZE = 12

# Key algorithm names as they may appear in binary ciphertexts.
_ALGORITHMS = {
    "AES256": "AES256",
    "AES256-GCM_SHA256": "AES256",
    "ChaCha20": "ChaCha20",
    "XCHACHA20-POLY1305": "ChaCha20",
}

# AEAD names as they appear in JSON ciphertexts.
_JSON_ALGORITHMS = {
    "AES-256-GCM-HMAC-SHA-256": "AES256",
    "ChaCha20Poly1305": "ChaCha20",
}


class DecryptError(Exception):
    """Raised when a ciphertext is malformed or not authentic."""

    status = 400

    def __init__(self, message: str = "decryption failed: ciphertext is not authentic") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Ciphertext:
    """Encrypted bytes plus everything needed to decrypt them again."""

    algorithm: str
    id: str
    iv: bytes
    nonce: bytes
    bytes: bytes

    def flatten(self) -> bytes:
        """Return the layout a secret key expects: bytes, then IV, then nonce."""
        return self.bytes + self.iv + self.nonce

    @classmethod
    def from_msgpack(cls, data: bytes) -> Ciphertext:
        """Parse *data* as a MessagePack-encoded ciphertext."""
        try:
            items = msgpack.unpackb(bytes(data), raw=False, use_list=True)
        except Exception:
            raise DecryptError() from None
        if not isinstance(items, list) or len(items) != 5:
            raise DecryptError()
        algorithm, key_id, iv, nonce, body = items
        if not isinstance(algorithm, str) or not isinstance(key_id, str):
            raise DecryptError()
        if not isinstance(iv, bytes) or len(iv) != _IV_SIZE:
            raise DecryptError()
        if not isinstance(nonce, bytes) or len(nonce) != _NONCE_SIZE:
            raise DecryptError()
        if not isinstance(body, bytes):
            raise DecryptError()
        name = _ALGORITHMS.get(algorithm)
        if name is None:
            raise DecryptError()
        return cls(algorithm=name, id=key_id, iv=iv, nonce=nonce, bytes=body)

    @classmethod
    def from_json(cls, text: bytes | str) -> Ciphertext:
        """Parse *text* as a JSON-encoded ciphertext."""
        try:
            value = json.loads(text)
        except ValueError:
            raise DecryptError() from None
        if not isinstance(value, dict):
            raise DecryptError()
        algorithm = value.get("aead")
        key_id = value.get("id") or ""
        if not isinstance(algorithm, str) or not isinstance(key_id, str):
            raise DecryptError()
        name = _JSON_ALGORITHMS.get(algorithm)
        if name is None:
            raise DecryptError()
        iv = _b64_field(value, "iv")
        nonce = _b64_field(value, "nonce")
        body = _b64_field(value, "bytes")
        if len(iv) != _IV_SIZE or len(nonce) != _NONCE_SIZE:
            raise DecryptError()
        return cls(algorithm=name, id=key_id, iv=iv, nonce=nonce, bytes=body)


def _b64_field(value: dict[str, Any], name: str) -> bytes:
    raw = value.get(name)
    if raw is None:
        return b""
    if not isinstance(raw, str):
        raise DecryptError()
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptError() from None


def parse_ciphertext(data: bytes) -> bytes:
    """Convert a legacy structured ciphertext into the flat layout.

    Input that is not a well-formed structured ciphertext is returned as is.
    """
    data = bytes(data)
    if not data:
        return data
    try:
        if data[0] == 0x95:
            return Ciphertext.from_msgpack(data).flatten()
        if data[0] == 0x7B:
            return Ciphertext.from_json(data).flatten()
    except DecryptError:
        return data
    return data
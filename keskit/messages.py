"""Request and response messages exchanged with a KES server, and their JSON form."""

import base64
import binascii
import dataclasses
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import UnionType
from typing import Any, Union, get_args, get_origin

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _json(name: str, *, omitempty: bool = False, **kwargs: Any) -> Any:
    return field(metadata={"json": name, "omitempty": omitempty}, **kwargs)


# Requests


@dataclass
class ImportKeyRequest:
    """Sent by clients calling the ImportKey API."""

    key: bytes = _json("key", default=b"")
    cipher: str = _json("cipher", default="")


@dataclass
class EncryptKeyRequest:
    """Sent by clients calling the EncryptKey API."""

    plaintext: bytes = _json("plaintext", default=b"")
    context: bytes = _json("context", default=b"")
    version: str = _json("version", default="")


@dataclass
class GenerateKeyRequest:
    """Sent by clients calling the GenerateKey API."""

    context: bytes = _json("context", default=b"")
    version: str = _json("version", default="")


@dataclass
class DecryptKeyRequest:
    """Sent by clients calling the DecryptKey API."""

    ciphertext: bytes = _json("ciphertext", default=b"")
    context: bytes = _json("context", default=b"")
    version: str = _json("version", default="")


@dataclass
class HMACRequest:
    """Sent by clients calling the HMAC API."""

    message: bytes = _json("message", default=b"")
    version: str = _json("version", default="")


# Responses


@dataclass
class VersionResponse:
    """Returned by the Version API."""

    version: str = _json("version", default="")
    commit: str = _json("commit", default="")


@dataclass
class StatusResponse:
    """Returned by the Status API."""

    version: str = _json("version", default="")
    os: str = _json("os", default="")
    arch: str = _json("arch", default="")
    uptime: int = _json("uptime", default=0)  # seconds
    cpus: int = _json("num_cpu", default=0)
    usable_cpus: int = _json("num_cpu_used", default=0)
    heap_alloc: int = _json("mem_heap_used", default=0)
    stack_alloc: int = _json("mem_stack_used", default=0)
    keystore_latency: int = _json("keystore_latency", omitempty=True, default=0)  # microseconds
    keystore_unreachable: bool = _json("keystore_unreachable", omitempty=True, default=False)


@dataclass
class DescribeRouteResponse:
    """Describes one API route in a List APIs response."""

    method: str = _json("method", default="")
    path: str = _json("path", default="")
    max_body: int = _json("max_body", default=0)
    timeout: int = _json("timeout", default=0)  # seconds


ListAPIsResponse = list[DescribeRouteResponse]


@dataclass
class DescribeKeyResponse:
    """Returned by the DescribeKey API."""

    name: str = _json("name", default="")
    algorithm: str = _json("algorithm", omitempty=True, default="")
    created_at: datetime = _json("created_at", default=_ZERO_TIME)
    created_by: str = _json("created_by", omitempty=True, default="")


@dataclass
class ListKeysResponse:
    """Returned by the ListKeys API."""

    names: list[str] = _json("names", default_factory=list)
    continue_at: str = _json("continue_at", omitempty=True, default="")


@dataclass
class EncryptKeyResponse:
    """Returned by the EncryptKey API."""

    ciphertext: bytes = _json("ciphertext", default=b"")
    version: str = _json("version", omitempty=True, default="")


@dataclass
class GenerateKeyResponse:
    """Returned by the GenerateKey API."""

    plaintext: bytes = _json("plaintext", default=b"")
    ciphertext: bytes = _json("ciphertext", default=b"")
    version: str = _json("version", omitempty=True, default="")


@dataclass
class DecryptKeyResponse:
    """Returned by the DecryptKey API."""

    plaintext: bytes = _json("plaintext", default=b"")


@dataclass
class HMACResponse:
    """Returned by the HMAC API."""

    sum: bytes = _json("hmac", default=b"")
    version: str = _json("version", omitempty=True, default="")


@dataclass
class ReadPolicyResponse:
    """Returned by the ReadPolicy API."""

    name: str = _json("name", default="")
    allow: set[str] = _json("allow", omitempty=True, default_factory=set)
    deny: set[str] = _json("deny", omitempty=True, default_factory=set)
    created_at: datetime = _json("created_at", default=_ZERO_TIME)
    created_by: str = _json("created_by", default="")


@dataclass
class DescribePolicyResponse:
    """Returned by the DescribePolicy API."""

    name: str = _json("name", default="")
    created_at: datetime = _json("created_at", default=_ZERO_TIME)
    created_by: str = _json("created_by", default="")


@dataclass
class ListPoliciesResponse:
    """Returned by the ListPolicies API."""

    names: list[str] = _json("names", default_factory=list)
    continue_at: str = _json("continue_at", default="")


@dataclass
class DescribeIdentityResponse:
    """Returned by the DescribeIdentity API."""

    is_admin: bool = _json("admin", omitempty=True, default=False)
    policy: str = _json("policy", omitempty=True, default="")
    created_at: datetime = _json("created_at", default=_ZERO_TIME)
    created_by: str = _json("created_by", omitempty=True, default="")


@dataclass
class ListIdentitiesResponse:
    """Returned by the ListIdentities API."""

    identities: list[str] = _json("identities", default_factory=list)
    continue_at: str = _json("continue_at", default="")


@dataclass
class SelfDescribeIdentityResponse:
    """Returned by the SelfDescribeIdentity API."""

    identity: str = _json("identity", default="")
    is_admin: bool = _json("admin", omitempty=True, default=False)
    created_at: datetime = _json("created_at", default=_ZERO_TIME)
    created_by: str = _json("created_by", omitempty=True, default="")
    policy: ReadPolicyResponse | None = _json("policy", omitempty=True, default=None)


@dataclass
class AuditLogRequest:
    """A client request as described in an audit log event."""

    ip: str = _json("ip", omitempty=True, default="")
    api_path: str = _json("path", default="")
    identity: str = _json("identity", omitempty=True, default="")


@dataclass
class AuditLogResponse:
    """A server response as described in an audit log event."""

    status_code: int = _json("code", default=0)
    time: int = _json("time", default=0)  # microseconds


@dataclass
class AuditLogEvent:
    """One event of the audit log stream."""

    time: datetime = _json("time", default=_ZERO_TIME)
    request: AuditLogRequest = _json("request", default_factory=AuditLogRequest)
    response: AuditLogResponse = _json("response", default_factory=AuditLogResponse)


@dataclass
class ErrorLogEvent:
    """One event of the error log stream."""

    message: str = _json("message", default="")


# Encoding


def _format_time(t: datetime) -> str:
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    text = (
        f"{t.year:04d}-{t.month:02d}-{t.day:02d}"
        f"T{t.hour:02d}:{t.minute:02d}:{t.second:02d}"
    )
    if t.microsecond:
        text += ("." + f"{t.microsecond:06d}").rstrip("0")
    offset = t.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


_TIME = re.compile(r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})")


def _parse_time(text: str) -> datetime:
    match = _TIME.fullmatch(text)
    if match is None:
        raise ValueError(f"json: invalid timestamp '{text}'")
    base, fraction, zone = match.groups()
    micros = (fraction or "")[:6].ljust(6, "0")
    if zone == "Z":
        zone = "+00:00"
    return datetime.fromisoformat(f"{base}.{micros}{zone}")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in dataclasses.fields(value):
            item = getattr(value, f.name)
            if f.metadata.get("omitempty") and _is_empty(item):
                continue
            out[f.metadata.get("json", f.name)] = _encode(item)
        return out
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime):
        return _format_time(value)
    if isinstance(value, (set, frozenset)):
        return {key: {} for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _escape(text: str) -> str:
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def to_json(message: Any) -> str:
    """Encode a message (or a list of messages) as compact JSON."""
    return _escape(json.dumps(_encode(message), separators=(",", ":"), ensure_ascii=False))


# Decoding


def _from_dict(cls: type, raw: Any) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"json: cannot decode {type(raw).__name__} into {cls.__name__}")
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        name = f.metadata.get("json", f.name)
        if name in raw:
            kwargs[f.name] = _decode(f.type, raw[name])
    return cls(**kwargs)


def _decode(tp: Any, raw: Any) -> Any:
    origin = get_origin(tp)
    if origin in (Union, UnionType):
        if raw is None:
            return None
        inner = [arg for arg in get_args(tp) if arg is not type(None)]
        return _decode(inner[0], raw)
    if origin is list:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ValueError("json: expected an array")
        (item,) = get_args(tp)
        return [_decode(item, value) for value in raw]
    if origin is set:
        if raw is None:
            return set()
        if not isinstance(raw, dict):
            raise ValueError("json: expected an object")
        return set(raw)
    if dataclasses.is_dataclass(tp):
        return _from_dict(tp, raw)
    if tp is bytes:
        if raw is None:
            return b""
        if not isinstance(raw, str):
            raise ValueError("json: expected a base64 string")
        try:
            return base64.b64decode(raw, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"json: invalid base64 data: {exc}") from None
    if tp is datetime:
        if raw is None:
            return _ZERO_TIME
        if not isinstance(raw, str):
            raise ValueError("json: expected a timestamp string")
        return _parse_time(raw)
    if tp is bool:
        if raw is None:
            return False
        if not isinstance(raw, bool):
            raise ValueError("json: expected a boolean")
        return raw
    if tp is int:
        if raw is None:
            return 0
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError("json: expected an integer")
        return raw
    if tp is str:
        if raw is None:
            return ""
        if not isinstance(raw, str):
            raise ValueError("json: expected a string")
        return raw
    raise TypeError(f"json: unsupported type {tp!r}")


def from_json(cls: Any, text: str | bytes) -> Any:
    """Decode JSON *text* into a message of type *cls* (or a list type of messages)."""
    return _decode(cls, json.loads(text))
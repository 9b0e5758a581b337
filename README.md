# keskit

Building blocks for a key management server. The package covers
authenticated encryption with versioned secret keys and the parsing of older
ciphertext formats. It also has concurrency-safe caches, the JSON messages and
error bodies of the API, an HTTP client that retries on transient failures,
and verification of requests forwarded by a TLS proxy.

## Installation

```
pip install keskit
```

For running the tests:

```
pip install "keskit[test]"
pytest
```

## Encrypting with a secret key

```python
from keskit.crypto import SecretKeyType, generate_secret_key

key = generate_secret_key(SecretKeyType.AES256, None)
sealed = key.encrypt(b"hello", b"context")
assert key.decrypt(sealed, b"context") == b"hello"
```

`SecretKeyType.CHACHA20` selects XChaCha20-Poly1305 in place of AES-256-GCM.
Under AES256, a per-message key is derived with HMAC-SHA256 from a random IV.
Under CHACHA20, the derivation uses `hchacha20`. A ciphertext is the sealed
data followed by 28 random bytes, so `SecretKey.overhead()` is 44.

If decryption fails, `decrypt` raises `keskit.ciphertext.DecryptError`.
`decrypt` also accepts ciphertexts in the older JSON and MessagePack formats.
`keskit.ciphertext.parse_ciphertext` converts them to the current layout, and
leaves any other input unchanged. `Ciphertext.from_json` and
`Ciphertext.from_msgpack` parse one of these formats directly.

## Key versions

`keskit.crypto.parse_key_version` reads a stored key version. It accepts two
forms:

- the legacy JSON form, with `bytes`, `algorithm`, `created_at` and
  `created_by` fields;
- the base64-encoded binary form, which `encode_key_version` writes.

A `KeyVersion` holds the `SecretKey`, an optional `HMACKey`, the creation time
and the creator's identity. `has_hmac_key()` reports whether an HMAC key is
present. `HMACKey.sum` computes an HMAC-SHA256 checksum and `HMACKey.equal`
compares two checksums in constant time. `generate_hmac_key` creates a new
HMAC key, and `parse_secret_key_type` accepts both current and legacy type
names.

## FIPS mode

`keskit.fips.ENABLED` is `False`. With FIPS mode off, `tls_ciphers()` and
`tls_curve_ids()` return the full lists of TLS cipher suites and curves. With
it on, they return only the FIPS-approved ones, and secret keys of any type
other than AES256 refuse to encrypt or decrypt.

## Caches

- `keskit.cache.Cow` is a copy-on-write mapping with an optional capacity.
  Reads take no lock; every update swaps in a new dict. At capacity,
  `add` and `set` refuse new keys, but `set` still replaces existing ones.
- `keskit.cache.Barrier` holds one lock per key. Use `lock`/`unlock`, or the
  `locked(key)` context manager. Unlocking a key that is not locked raises
  `RuntimeError`.

## HTTP pieces

- `keskit.headers.accepts` checks whether an `Accept` header admits a content
  type. It understands `*/*` and patterns such as `text/*`.
- `keskit.retry.Retry` sends `requests` requests. On temporary network errors
  and on 5xx responses it tries again, by default twice, and waits 0.2 s plus
  a random jitter of up to 0.8 s between attempts. It provides `get`, `head`,
  `post`, `post_form` and `send`. A body that cannot be sent again, such as a
  file that cannot seek, is rejected with `RetryError`. `is_temporary` and
  `drain_body` are also available.
- `keskit.apierror.APIError` carries an HTTP status with its message:
  - `encode_error` produces the JSON error body sent to clients;
  - `read_error` turns an error response back into an `APIError`;
  - `find_error` searches an exception's cause chain for an error that carries
    a status.
- `keskit.messages` defines the request and response messages of the API as
  dataclasses. `to_json` and `from_json` convert them to and from JSON.
- `keskit.multicast.Multicast` writes the same data to every writer that has
  been added to it. `LogWriter` writes each chunk it receives as one JSON
  error-log event and then flushes.

## TLS

- `keskit.certs.certificate_from_file` loads a certificate chain together with
  its private key and returns a `TLSCertificate`. The key may be a legacy
  encrypted PEM key, which needs a password.
- `keskit.certs.cert_pool_from_file` returns an `ssl.SSLContext` that trusts
  the system roots plus the CA certificates found in a file or directory.
- `keskit.certs.filter_pem` checks every block of PEM data against a
  predicate.
- `keskit.proxy.identify` computes a client's identity: the hex SHA-256 of its
  certificate's public key info.
- `keskit.proxy.TLSProxy` recognises registered proxy identities and takes the
  real client certificate from a request header. It can verify that
  certificate, and it picks up the client IP from `X-Forwarded-For`. Requests
  are described by `ProxiedRequest`.
- `keskit.proxy.FlushOnWrite` wraps a writer and flushes it after each write.

## Terminal output

`keskit.cli` provides:

- `Buffer`, which accumulates text through chainable calls;
- `Style` and `fg`, for foreground colours, which are shown only on a terminal
  unless forced;
- `fatal`, `fatalf`, `ensure` and `ensuref`, which print an error to stderr
  and exit with status 1.

## What this package does not do

The package has no server. It includes no request routing, no handlers for
the API endpoints, and no authentication of incoming HTTP requests beyond
what `TLSProxy` does. It has no key storage back-ends and no command-line
program. The messages, errors and helpers here are the pieces such a server
would be built from.
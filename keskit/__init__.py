"""Building blocks for a key management server: keys, ciphertexts, caches, API messages, HTTP and TLS helpers."""

__version__ = "0.1.0"
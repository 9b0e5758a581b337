[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "keskit"
version = "0.1.0"
description = "Building blocks for a key management server: secret keys, ciphertext formats, caches, API messages and errors, retrying HTTP and TLS proxy handling."
requires-python = ">=3.11"
keywords = ["kms", "encryption", "aes-gcm", "chacha20-poly1305", "hmac", "tls", "key-management"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]
dependencies = [
    "cryptography",
    "msgpack",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["keskit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true

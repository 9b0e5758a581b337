from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from keskit.certs import cert_pool_from_file, certificate_from_file, filter_pem


def make_key():
    return ec.generate_private_key(ec.SECP256R1())


def make_cert(key, common_name="keskit test", ca=False):
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )


def cert_pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def key_pem(key, password=None, traditional=False):
    if password is not None:
        return key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.BestAvailableEncryption(password.encode()),
        )
    fmt = serialization.PrivateFormat.TraditionalOpenSSL if traditional else serialization.PrivateFormat.PKCS8
    return key.private_bytes(serialization.Encoding.PEM, fmt, serialization.NoEncryption())


def public_der(key):
    return key.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def ca_names(context):
    return {
        value
        for cert in context.get_ca_certs()
        for rdn in cert["subject"]
        for attr, value in rdn
        if attr == "commonName"
    }


# filter_pem


def test_filter_pem_trims_whitespace():
    pem = cert_pem(make_cert(make_key()))
    assert filter_pem(b"\n  " + pem + b"\n\n", lambda block: True) == pem.strip()


def test_filter_pem_empty_input():
    assert filter_pem(b"  \n\t", lambda block: False) == b""


def test_filter_pem_rejects_non_pem():
    with pytest.raises(ValueError, match="no valid PEM data"):
        filter_pem(b"hello world", lambda block: True)


def test_filter_pem_rejects_trailing_garbage():
    pem = cert_pem(make_cert(make_key()))
    with pytest.raises(ValueError, match="no valid PEM data"):
        filter_pem(pem + b"garbage", lambda block: True)


def test_filter_pem_predicate_sees_every_block():
    key = make_key()
    cert = make_cert(key)
    seen = []

    def record(block):
        seen.append(block)
        return True

    filter_pem(cert_pem(cert) + key_pem(key), record)
    assert [block.type for block in seen] == ["CERTIFICATE", "PRIVATE KEY"]
    assert seen[0].bytes == cert.public_bytes(serialization.Encoding.DER)


def test_filter_pem_rejects_unsupported_block():
    key = make_key()
    data = cert_pem(make_cert(key)) + key_pem(key)
    with pytest.raises(ValueError, match="unsupported PEM data block"):
        filter_pem(data, lambda block: block.type == "CERTIFICATE")


# certificate_from_file


def test_certificate_from_file(tmp_path):
    key = make_key()
    cert = make_cert(key)
    (tmp_path / "cert.pem").write_bytes(cert_pem(cert))
    (tmp_path / "key.pem").write_bytes(key_pem(key))

    loaded = certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem")
    assert loaded.certificates == [cert]
    assert loaded.leaf == cert
    assert public_der(loaded.private_key) == public_der(key)


def test_certificate_from_file_chain(tmp_path):
    ca_key, key = make_key(), make_key()
    ca = make_cert(ca_key, "ca", ca=True)
    leaf = make_cert(key, "leaf")
    (tmp_path / "cert.pem").write_bytes(cert_pem(leaf) + cert_pem(ca))
    (tmp_path / "key.pem").write_bytes(key_pem(key, traditional=True))

    loaded = certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem")
    assert loaded.certificates == [leaf, ca]


def test_certificate_from_file_key_file_with_certificate(tmp_path):
    key = make_key()
    cert = make_cert(key)
    (tmp_path / "cert.pem").write_bytes(cert_pem(cert))
    (tmp_path / "combined.pem").write_bytes(cert_pem(cert) + key_pem(key))

    loaded = certificate_from_file(tmp_path / "cert.pem", tmp_path / "combined.pem")
    assert public_der(loaded.private_key) == public_der(key)


def test_certificate_from_file_encrypted_key(tmp_path):
    password = "password"
    key = make_key()
    cert = make_cert(key)
    (tmp_path / "cert.pem").write_bytes(cert_pem(cert))
    (tmp_path / "key.pem").write_bytes(key_pem(key, password=password))

    loaded = certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem", password=password)
    assert public_der(loaded.private_key) == public_der(key)


def test_certificate_from_file_encrypted_key_requires_password(tmp_path):
    password = "password"
    key = make_key()
    (tmp_path / "cert.pem").write_bytes(cert_pem(make_cert(key)))
    (tmp_path / "key.pem").write_bytes(key_pem(key, password=password))

    with pytest.raises(ValueError, match="password required"):
        certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem")


def test_certificate_from_file_wrong_password(tmp_path):
    password = "password"
    key = make_key()
    (tmp_path / "cert.pem").write_bytes(cert_pem(make_cert(key)))
    (tmp_path / "key.pem").write_bytes(key_pem(key, password=password))

    wrong = "secret"
    with pytest.raises(ValueError):
        certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem", password=wrong)


def test_certificate_from_file_key_mismatch(tmp_path):
    (tmp_path / "cert.pem").write_bytes(cert_pem(make_cert(make_key())))
    (tmp_path / "key.pem").write_bytes(key_pem(make_key()))

    with pytest.raises(ValueError, match="does not match"):
        certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem")


def test_certificate_from_file_no_private_key(tmp_path):
    cert = make_cert(make_key())
    (tmp_path / "cert.pem").write_bytes(cert_pem(cert))
    (tmp_path / "key.pem").write_bytes(cert_pem(cert))

    with pytest.raises(ValueError, match="no PEM-encoded private key found"):
        certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem")


def test_certificate_from_file_rejects_key_in_cert_file(tmp_path):
    key = make_key()
    (tmp_path / "cert.pem").write_bytes(cert_pem(make_cert(key)) + key_pem(key))
    (tmp_path / "key.pem").write_bytes(key_pem(key))

    with pytest.raises(ValueError, match="unsupported PEM data block"):
        certificate_from_file(tmp_path / "cert.pem", tmp_path / "key.pem")


def test_certificate_from_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        certificate_from_file(tmp_path / "absent.pem", tmp_path / "absent.key")


# cert_pool_from_file


def test_cert_pool_from_single_file(tmp_path):
    path = tmp_path / "ca.pem"
    path.write_bytes(cert_pem(make_cert(make_key(), "keskit single ca", ca=True)))

    context = cert_pool_from_file(path)
    assert "keskit single ca" in ca_names(context)


def test_cert_pool_from_directory(tmp_path):
    (tmp_path / "a.pem").write_bytes(cert_pem(make_cert(make_key(), "keskit ca one", ca=True)))
    (tmp_path / "b.pem").write_bytes(cert_pem(make_cert(make_key(), "keskit ca two", ca=True)))
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "junk.txt").write_bytes(b"not a certificate")

    names = ca_names(cert_pool_from_file(tmp_path))
    assert {"keskit ca one", "keskit ca two"} <= names


def test_cert_pool_rejects_invalid_file_in_directory(tmp_path):
    (tmp_path / "a.pem").write_bytes(cert_pem(make_cert(make_key(), "keskit ca", ca=True)))
    (tmp_path / "b.txt").write_bytes(b"not a certificate")

    with pytest.raises(ValueError, match="no valid PEM data"):
        cert_pool_from_file(tmp_path)


def test_cert_pool_rejects_empty_file(tmp_path):
    path = tmp_path / "empty.pem"
    path.write_bytes(b"")
    with pytest.raises(ValueError, match="failed to add"):
        cert_pool_from_file(path)


def test_cert_pool_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        cert_pool_from_file(tmp_path / "absent.pem")
"""Tests for firmapdf.core.certificates -- e.firma and PKCS#12 ingestion."""

import base64
import datetime
import logging
import types

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12

from firmapdf.core.certificates import (
    Certificate,
    PrivateKeySession,
    is_valid,
    load_certificate,
    load_from_pair,
    load_from_pkcs12,
    load_private_key,
    summarize,
)
from firmapdf.errors import (
    CannotDecryptKey,
    CertificateError,
    CertificateOrKeyMissingInPFX,
    KeyCertificateMismatch,
    UnsupportedKeyFormat,
    WrongPassword,
)

from .conftest import PASSWORD, make_certificate

_ONE_SECOND = datetime.timedelta(seconds=1)


# ── load_certificate ────────────────────────────────────────────────


def test_load_certificate_der(cer_bytes, certificate):
    cert = load_certificate(cer_bytes)
    assert cert.common_name == "JUAN PEREZ LOPEZ"
    assert cert.subject["O"] == "FIRMAPDF PRUEBAS SA DE CV"
    assert cert.subject["serialNumber"] == "PELJ800101HDFRPN09"
    assert cert.serial_number == certificate.serial_number
    assert cert.der == cer_bytes
    assert cert.subject_dn.startswith("CN=JUAN PEREZ LOPEZ")


def test_load_certificate_pem(certificate):
    pem = certificate.public_bytes(serialization.Encoding.PEM)
    cert = load_certificate(pem)
    assert cert.der == certificate.public_bytes(serialization.Encoding.DER)


def test_load_certificate_garbage():
    with pytest.raises(CertificateError, match="X.509"):
        load_certificate(b"definitely not a certificate")


def test_issuer_der_matches_self_signed_subject(cer_bytes):
    cert = load_certificate(cer_bytes)
    assert cert.issuer_der == cert.asn1.subject.dump()


def test_expired_certificate_warns(rsa_key, caplog):
    now = datetime.datetime.now(datetime.timezone.utc)
    expired = make_certificate(
        rsa_key,
        not_before=now - datetime.timedelta(days=400),
        not_after=now - datetime.timedelta(days=30),
    )
    with caplog.at_level(logging.WARNING, logger="firmapdf.core.certificates"):
        load_certificate(expired.public_bytes(serialization.Encoding.DER))
    assert "expired" in caplog.text


# ── e.firma pair ────────────────────────────────────────────────────


def test_load_from_pair(cer_bytes, key_bytes):
    with load_from_pair(cer_bytes, key_bytes, PASSWORD) as creds:
        assert creds.certificate.common_name == "JUAN PEREZ LOPEZ"
        assert creds.key.key_size == 2048
        assert not creds.key.closed
    assert creds.key.closed


def test_load_from_pair_wrong_password(cer_bytes, key_bytes):
    with pytest.raises(CannotDecryptKey, match="password"):
        load_from_pair(cer_bytes, key_bytes, "wrong")


def test_load_from_pair_mismatched_key(cer_bytes, other_rsa_key):
    other_key = other_rsa_key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    )
    with pytest.raises(KeyCertificateMismatch):
        load_from_pair(cer_bytes, other_key, PASSWORD)


def test_load_private_key_encrypted_pem(rsa_key):
    pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    )
    assert b"ENCRYPTED PRIVATE KEY" in pem
    key = load_private_key(pem, PASSWORD)
    assert key.private_numbers() == rsa_key.private_numbers()


def test_load_private_key_traditional_pem(rsa_key):
    """PKCS#5 style PEM with Proc-Type/DEK-Info headers."""
    pem = rsa_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    )
    assert b"Proc-Type" in pem
    key = load_private_key(pem, PASSWORD)
    assert key.private_numbers() == rsa_key.private_numbers()


def test_load_private_key_bare_base64(key_bytes, rsa_key):
    key = load_private_key(base64.b64encode(key_bytes), PASSWORD)
    assert key.private_numbers() == rsa_key.private_numbers()


def test_load_private_key_bytes_password(key_bytes, rsa_key):
    key = load_private_key(key_bytes, PASSWORD.encode())
    assert key.public_key().public_numbers() == rsa_key.public_key().public_numbers()


def test_load_private_key_not_rsa():
    ec_key = ec.generate_private_key(ec.SECP256R1()).private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    )
    with pytest.raises(UnsupportedKeyFormat, match="RSA"):
        load_private_key(ec_key, PASSWORD)


def test_load_private_key_garbage():
    with pytest.raises(CannotDecryptKey):
        load_private_key(b"\x00\x01\x02 not a key", PASSWORD)


# ── PKCS#12 ─────────────────────────────────────────────────────────


def test_load_from_pkcs12(pfx_bytes, cer_bytes):
    creds = load_from_pkcs12(pfx_bytes, PASSWORD)
    assert creds.certificate.der == cer_bytes
    assert creds.key.key_size == 2048
    creds.close()
    assert creds.key.closed


def test_load_from_pkcs12_wrong_password(pfx_bytes):
    with pytest.raises(WrongPassword):
        load_from_pkcs12(pfx_bytes, "not-the-password")


def test_load_from_pkcs12_not_a_container():
    with pytest.raises(UnsupportedKeyFormat, match="PKCS#12"):
        load_from_pkcs12(b"garbage bytes that are not ASN.1", PASSWORD)


def test_load_from_pkcs12_without_key(certificate):
    cert_only = pkcs12.serialize_key_and_certificates(
        b"solo-certificado",
        None,
        certificate,
        None,
        serialization.BestAvailableEncryption(PASSWORD.encode()),
    )
    with pytest.raises(CertificateOrKeyMissingInPFX, match="private key"):
        load_from_pkcs12(cert_only, PASSWORD)


# ── PrivateKeySession ───────────────────────────────────────────────


def test_key_session_closed_refuses_to_sign(rsa_key):
    session = PrivateKeySession(rsa_key)
    with session:
        assert len(session.sign(b"data")) == 256
    assert session.closed
    with pytest.raises(CertificateError, match="closed"):
        session.sign(b"data")
    assert "closed" in repr(session)


def test_key_session_closes_on_exception(rsa_key):
    session = PrivateKeySession(rsa_key)
    with pytest.raises(RuntimeError), session:
        raise RuntimeError("boom")
    assert session.closed


# ── Validity ────────────────────────────────────────────────────────


def test_is_valid_inclusive_bounds(cer_bytes):
    cert = load_certificate(cer_bytes)
    assert is_valid(cert, cert.not_before)
    assert is_valid(cert, cert.not_after)
    assert not is_valid(cert, cert.not_before - _ONE_SECOND)
    assert not is_valid(cert, cert.not_after + _ONE_SECOND)


def test_is_valid_naive_datetime_is_utc(cer_bytes):
    cert = load_certificate(cer_bytes)
    naive = cert.not_before.replace(tzinfo=None)
    assert is_valid(cert, naive)


def test_is_valid_now(cer_bytes):
    assert is_valid(load_certificate(cer_bytes))


# ── Summary ─────────────────────────────────────────────────────────


def test_summarize(cer_bytes):
    cert = load_certificate(cer_bytes)
    summary = summarize(cert, cert.not_before)
    assert summary["name"] == "JUAN PEREZ LOPEZ"
    assert summary["organization"] == "FIRMAPDF PRUEBAS SA DE CV"
    assert summary["curp"] == "PELJ800101HDFRPN09"
    assert summary["rfc"] is None
    assert summary["serial_number"] == format(cert.serial_number, "x")
    assert summary["days_remaining"] == (cert.not_after - cert.not_before).days
    assert summary["is_valid"] is True
    assert summary["valid_from"] == cert.not_before.isoformat()


def test_summarize_sat_rfc():
    """The RFC of a legal person's certificate carries the representative after '/'."""
    start = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    cert = Certificate(
        subject=types.MappingProxyType(
            {"CN": "EMPRESA SA", "x500UniqueIdentifier": "EMP010101AB1 / PELJ800101XX0"}
        ),
        issuer=types.MappingProxyType({"CN": "AC DEL SAT"}),
        subject_dn="CN=EMPRESA SA",
        issuer_dn="CN=AC DEL SAT",
        serial_number=255,
        not_before=start,
        not_after=start + datetime.timedelta(days=4 * 365),
        der=b"",
    )
    summary = summarize(cert, start + datetime.timedelta(days=10))
    assert summary["rfc"] == "EMP010101AB1"
    assert summary["serial_number"] == "ff"
    assert summary["issuer"] == "CN=AC DEL SAT"
    assert summary["is_valid"] is True


def test_summarize_expired():
    start = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
    cert = Certificate(
        subject=types.MappingProxyType({"CN": "VENCIDO"}),
        issuer=types.MappingProxyType({}),
        subject_dn="CN=VENCIDO",
        issuer_dn="",
        serial_number=1,
        not_before=start,
        not_after=start + datetime.timedelta(days=10),
        der=b"",
    )
    summary = summarize(cert, start + datetime.timedelta(days=20))
    assert summary["is_valid"] is False
    assert summary["days_remaining"] < 0

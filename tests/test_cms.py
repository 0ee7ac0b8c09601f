"""Tests for detached CMS construction and inspection."""

import datetime
import hashlib

import pytest
from asn1crypto import cms
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from firmapdf.constants import CONTENTS_CAPACITY_STEP, MIN_CONTENTS_CAPACITY
from firmapdf.core.cms import (
    build_signed_attributes,
    estimate_signature_capacity,
    retag_implicit,
    sign_detached,
)
from firmapdf.core.pdf.asn1 import der_length, extract_der_from_padded_hex, split_tlv
from firmapdf.core.pdf.cms_info import (
    extract_digest_info,
    extract_signer_info,
    inspect_cms_blob,
    resolve_hash_algo,
)
from firmapdf.errors import PDFError, SignatureTooLarge

_DIGEST = hashlib.sha256(b"contenido del documento").digest()
_SIGNING_TIME = datetime.datetime(2024, 3, 5, 14, 7, 9, tzinfo=datetime.timezone.utc)


@pytest.fixture
def signed_der(credentials):
    with credentials:
        signature_hex = sign_detached(
            _DIGEST, credentials.certificate, credentials.key, signing_time=_SIGNING_TIME
        )
    return bytes.fromhex(signature_hex)


def _signer_info(der: bytes) -> cms.SignerInfo:
    return cms.ContentInfo.load(der)["content"]["signer_infos"][0]


# ── Signed attributes ───────────────────────────────────────────────


def test_signed_attributes_universal_set():
    der = build_signed_attributes(_DIGEST, _SIGNING_TIME)
    assert der[0] == 0x31
    attrs = cms.CMSAttributes.load(der)
    values = {attr["type"].native: attr["values"][0].native for attr in attrs}
    assert values["content_type"] == "data"
    assert values["message_digest"] == _DIGEST
    assert values["signing_time"] == _SIGNING_TIME


def test_signed_attributes_drop_microseconds():
    moment = _SIGNING_TIME.replace(microsecond=123456)
    assert build_signed_attributes(_DIGEST, moment) == build_signed_attributes(
        _DIGEST, _SIGNING_TIME
    )


def test_signed_attributes_require_sha256_digest():
    with pytest.raises(PDFError, match="32-byte"):
        build_signed_attributes(b"\x00" * 20)


def test_retag_implicit():
    assert retag_implicit(b"\x31\x03abc") == b"\xa0\x03abc"
    with pytest.raises(PDFError, match="0x31"):
        retag_implicit(b"\x30\x03abc")


# ── SignedData ──────────────────────────────────────────────────────


def test_signed_data_shape(signed_der, cer_bytes):
    content_info = cms.ContentInfo.load(signed_der)
    assert content_info["content_type"].native == "signed_data"
    signed_data = content_info["content"]
    assert signed_data["version"].native == "v1"
    assert signed_data["encap_content_info"]["content_type"].native == "data"
    assert signed_data["encap_content_info"]["content"].native is None
    assert [a["algorithm"].native for a in signed_data["digest_algorithms"]] == ["sha256"]
    assert len(signed_data["certificates"]) == 1
    assert signed_data["certificates"][0].chosen.dump() == cer_bytes
    assert len(signed_data["signer_infos"]) == 1


def test_signer_info_fields(signed_der, certificate):
    signer_info = _signer_info(signed_der)
    assert signer_info["version"].native == "v1"
    assert signer_info["sid"].chosen["serial_number"].native == certificate.serial_number
    assert signer_info["digest_algorithm"]["algorithm"].native == "sha256"
    assert signer_info["signature_algorithm"]["algorithm"].native == "sha256_rsa"
    assert signer_info["signed_attrs"].dump()[0] == 0xA0


def test_signature_verifies_over_set_encoding(signed_der, certificate):
    signer_info = _signer_info(signed_der)
    signed_attrs = b"\x31" + signer_info["signed_attrs"].dump()[1:]
    certificate.public_key().verify(
        signer_info["signature"].native,
        signed_attrs,
        padding.PKCS1v15(),
        hashes.SHA256(),
    )


def test_sign_detached_capacity_exceeded(credentials):
    with credentials, pytest.raises(SignatureTooLarge) as exc_info:
        sign_detached(_DIGEST, credentials.certificate, credentials.key, capacity=1000)
    assert exc_info.value.capacity == 1000
    assert exc_info.value.required > 1000


def test_estimate_fits_signature(credentials):
    with credentials:
        capacity = estimate_signature_capacity(credentials.certificate, credentials.key.key_size)
        signature_hex = sign_detached(
            _DIGEST, credentials.certificate, credentials.key, capacity=capacity
        )
    assert capacity >= MIN_CONTENTS_CAPACITY
    assert capacity % CONTENTS_CAPACITY_STEP == 0
    assert len(signature_hex) <= capacity


# ── Inspection ──────────────────────────────────────────────────────


def test_extract_digest_info(signed_der):
    assert extract_digest_info(signed_der) == ("sha256", _DIGEST)


def test_extract_signer_info(signed_der, certificate):
    signer = extract_signer_info(signed_der)
    assert signer["name"] == "JUAN PEREZ LOPEZ"
    assert signer["organization"] == "FIRMAPDF PRUEBAS SA DE CV"
    assert signer["serial_number"] == format(certificate.serial_number, "x")


def test_inspect_cms_blob(signed_der):
    inspection = inspect_cms_blob(signed_der)
    assert inspection["content_type"] == "signed_data"
    assert inspection["detached"] is True
    assert inspection["signer_count"] == 1
    assert inspection["certificate_count"] == 1
    assert inspection["digest_algorithm"] == "sha256"
    assert inspection["signing_time"] == _SIGNING_TIME.isoformat()
    assert "Signer: JUAN PEREZ LOPEZ" in inspection["details"]


def test_inspect_rejects_small_and_non_sequence_blobs():
    assert "too small" in inspect_cms_blob(b"\x30\x03abc")["details"][0]
    assert "SEQUENCE" in inspect_cms_blob(b"\x04" * 200)["details"][0]


def test_extract_digest_info_garbage():
    assert extract_digest_info(b"\x30\x03abc") is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("sha256", "sha256"),
        ("sha256_rsa", "sha256"),
        ("1.2.840.113549.1.1.5", "sha1"),
        ("md2_rsa", None),
    ],
)
def test_resolve_hash_algo(raw, expected):
    assert resolve_hash_algo(raw) == expected


# ── DER helpers ─────────────────────────────────────────────────────


def test_der_length():
    assert der_length(0x7F) == b"\x7f"
    assert der_length(0x80) == b"\x81\x80"
    assert der_length(0x1234) == b"\x82\x12\x34"
    with pytest.raises(ValueError, match="Negative"):
        der_length(-1)


def test_split_tlv():
    assert split_tlv(b"\x30\x03abc") == (0x30, 2, 3)
    assert split_tlv(b"\x30\x82\x01\x00") == (0x30, 4, 256)
    with pytest.raises(ValueError, match="Indefinite"):
        split_tlv(b"\x30\x80")


def test_padded_hex_keeps_trailing_zero_bytes():
    assert extract_der_from_padded_hex("3003020100" + "0" * 20) == bytes.fromhex("3003020100")


def test_padded_hex_rejects_bad_input():
    with pytest.raises(ValueError, match="SEQUENCE"):
        extract_der_from_padded_hex("0403abcdef")
    with pytest.raises(ValueError, match="exceeds available"):
        extract_der_from_padded_hex("3010abcd")
